"""Shared contract and routing for item searchers (roles, entitlements)."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from govsearch.backends.base import SelectorObject
from govsearch.errors import ConfigurationError, DataIntegrityError

from . import columns
from .access import CurrentAccess
from .context import SearchContext
from .filters import Filter, MatchMode, eq, ge, has_join, has_restricted_filter, in_
from .options import ObjectType, SearchMode, SearchOptions, SearchType, TypeOptions
from .query import Ordering, QueryInfo, QueryOptions
from .results import (
    PopulationStatistics,
    Row,
    SearchResults,
    SortKey,
    sort_rows,
    trim_results,
)

logger = logging.getLogger(__name__)

STANDARD_COLUMNS = [columns.ID, columns.DISPLAY_NAME]

# Ids per IN-list query when searching across many ids
ID_BATCH_SIZE = 100

REQUEST_ACCESS_ACTION = "requestAccess"

_OBJECT_CLASS_TYPES = {
    "Role": ObjectType.ROLE,
    "Bundle": ObjectType.ROLE,
    "Entitlement": ObjectType.ENTITLEMENT,
    "ManagedAttribute": ObjectType.ENTITLEMENT,
}


class PopulationCounter(ABC):
    """Counts the identities of a population that hold the item in a row."""

    @abstractmethod
    def count(self, row: Row) -> int:
        pass


class ItemSearcher(ABC):
    """Runs the four query shapes for one item type.

    Subclasses supply the per-type hooks (object type, search term filters,
    keyword scoping) and the three search shapes; this class owns
    validation, full-text versus relational routing, row conversion,
    population statistics and sort/trim.

    A searcher is built for one request and holds no state beyond its
    options and context.
    """

    quick_link_action: str = REQUEST_ACCESS_ACTION

    def __init__(self, options: SearchOptions, context: SearchContext):
        self.options = options
        self.context = context

    # Per-type hooks

    @property
    @abstractmethod
    def object_type(self) -> ObjectType:
        pass

    @property
    @abstractmethod
    def catalog_type(self) -> str:
        """Catalog object type queried in the store (columns.ROLE, ...)."""
        pass

    @property
    @abstractmethod
    def default_columns(self) -> List[str]:
        pass

    @abstractmethod
    def add_search_terms(self, ops: QueryOptions, terms: Optional[Sequence[str]]) -> QueryOptions:
        """Return a copy of ops with filters matching the search terms."""
        pass

    @abstractmethod
    def keyword_query_info(self) -> QueryInfo:
        pass

    @abstractmethod
    def search_keyword(self, terms: Optional[Sequence[str]], mode: SearchMode) -> SearchResults:
        pass

    @abstractmethod
    def search_identity(self, mode: SearchMode) -> SearchResults:
        pass

    @abstractmethod
    def search_current_access(self, terms: Optional[Sequence[str]], mode: SearchMode) -> SearchResults:
        pass

    # Entry point

    def search(
        self,
        terms: Optional[Sequence[str]] = None,
        mode: SearchMode = SearchMode.STANDALONE
    ) -> SearchResults:
        """Validate the options and run the search type they ask for.

        Args:
            terms: Keyword search terms (ignored by identity searches)
            mode: STANDALONE to sort and page, COMBINED to leave that to the caller

        Raises:
            ConfigurationError: Options are invalid (before any backend call)
        """
        self.validate()
        if not self.is_access_type_enabled():
            logger.debug(f"{self.object_type.value} search not enabled for requester")
            return SearchResults.empty()

        search_type = self.options.search_type
        if search_type.is_identity_search:
            return self.search_identity(mode)
        if search_type == SearchType.KEYWORD:
            return self.search_keyword(terms, mode)
        return self.search_current_access(terms, mode)

    def validate(self):
        validate_options(self.options, [self.object_type])

    def is_access_type_enabled(self) -> bool:
        """Whether the requester may search this item type at all.

        Current access always shows both item types.
        """
        if self.options.search_type == SearchType.CURRENT_ACCESS:
            return True
        return self.context.authority.is_enabled(
            self.object_type,
            self.options.requester,
            self.options.target_identity,
            self.options.quick_link,
            self.is_self_service(),
        )

    # Option helpers

    @property
    def config(self):
        return self.context.config

    @property
    def store(self):
        return self.context.store

    @property
    def type_options(self) -> TypeOptions:
        return self.options.type_options_for(self.object_type)

    @property
    def match_mode(self) -> MatchMode:
        return MatchMode(self.config.match_mode)

    def is_self_service(self) -> bool:
        return self.options.is_self_service()

    def full_columns(self) -> List[str]:
        """Requested columns plus the standard ones, requested order first."""
        full = list(self.type_options.columns or self.default_columns)
        for column in STANDARD_COLUMNS:
            if column not in full:
                full.append(column)
        return full

    def query_options(
        self,
        filters: Iterable[Optional[Filter]],
        start: Optional[int] = None,
        limit: Optional[int] = None,
        sort_column: Optional[str] = None
    ) -> QueryOptions:
        """Build QueryOptions with paging from the search options by default.

        Results are ordered case-insensitively so rows merged from several
        queries can be re-sorted in memory with the same order.
        """
        start = self.options.start if start is None else start
        limit = self.options.limit if limit is None else limit

        ops = QueryOptions()
        ops.add(*filters)
        if start > 0:
            ops.first_row = start
        if limit > 0:
            ops.result_limit = limit
        if sort_column is not None:
            ops.orderings.append(Ordering(sort_column, ascending=True, ignore_case=True))
        return ops

    # Routing

    def can_use_fulltext(self, filters: Iterable[Filter], terms: Optional[Sequence[str]]) -> bool:
        """Whether a query with these filters and terms can run on the full-text index.

        All must hold: keyword search, non-empty terms, no join anywhere in
        the filters, no equality on a configured skip field, and an enabled
        full-text backend. Re-evaluated for every query.
        """
        filters = list(filters)
        return (
            self.options.search_type == SearchType.KEYWORD
            and bool(terms)
            and not has_join(filters)
            and not has_restricted_filter(filters, self.config.fulltext.skip_fields)
            and self.context.is_fulltext_enabled()
        )

    def get_results(self, ops: QueryOptions, terms: Optional[Sequence[str]]) -> SearchResults:
        if self.can_use_fulltext(ops.filters, terms):
            logger.debug(f"Routing {self.object_type.value} query to full text")
            return self.fulltext_results(self.with_object_class(ops, self.object_type), terms)
        logger.debug(f"Routing {self.object_type.value} query to catalog store")
        return self.relational_results(ops, terms)

    def fulltext_results(self, ops: QueryOptions, terms: Optional[Sequence[str]]) -> SearchResults:
        result = self.context.fulltext.search(list(terms or []), ops)
        rows = [dict(row) for row in result.rows]
        self.enhance_rows(rows)
        return SearchResults(rows, min(self.options.max_result_count, result.total_rows))

    def relational_results(self, ops: QueryOptions, terms: Optional[Sequence[str]]) -> SearchResults:
        full_ops = self.add_search_terms(ops, terms)
        total = min(self.options.max_result_count, self.store.count(self.catalog_type, full_ops))
        rows = self.get_rows(self.catalog_type, full_ops, self.full_columns())
        return SearchResults(rows, total)

    @staticmethod
    def with_object_class(ops: QueryOptions, object_type: ObjectType) -> QueryOptions:
        """Copy of ops restricted to one full-text object class, discriminator first."""
        ft_ops = ops.copy()
        ft_ops.filters = [object_class_filter(object_type)] + ft_ops.filters
        return ft_ops

    # Rows

    def get_rows(self, catalog_type: str, ops: QueryOptions, cols: List[str]) -> List[Row]:
        started = time.time()
        rows = self.store.search(catalog_type, ops, cols)
        converted = self.convert_rows(rows, cols)
        logger.debug(f"get_rows on {catalog_type} took {(time.time() - started) * 1000:.0f} ms")
        return converted

    def convert_rows(self, rows: Iterator[Sequence[Any]], cols: List[str]) -> List[Row]:
        """Zip projection tuples with their column names and enhance each row."""
        converted = []
        for values in rows:
            row = dict(zip(cols, values))
            self.enhance_row(row)
            converted.append(row)
        return converted

    def enhance_rows(self, rows: List[Row]):
        for row in rows:
            self.enhance_row(row)

    def enhance_row(self, row: Row):
        """Tag the row with its object type and restore numeric columns.

        An object class with no known item type falls back to the searcher's type.

        Raises:
            DataIntegrityError: Neither the row nor the searcher knows the type
        """
        object_type = _OBJECT_CLASS_TYPES.get(row.get(columns.OBJECT_CLASS)) or self.object_type
        if object_type is None:
            raise DataIntegrityError(f"Unable to determine object type of row {row.get(columns.ID)}")
        row[columns.OBJECT_TYPE] = object_type

        for column in columns.NUMERIC_COLUMNS:
            if column in row:
                row[column] = to_int(row[column])

    def search_across_ids(
        self,
        catalog_type: str,
        ids: Sequence[str],
        filters: Iterable[Optional[Filter]],
        cols: List[str]
    ) -> Iterator[Sequence[Any]]:
        """Search objects by id in batches of ID_BATCH_SIZE, applying filters to each batch."""
        filters = [f for f in filters if f is not None]
        ids = list(ids)
        for i in range(0, len(ids), ID_BATCH_SIZE):
            ops = QueryOptions().add(in_(columns.ID, ids[i:i + ID_BATCH_SIZE]), *filters)
            yield from self.store.search(catalog_type, ops, cols)

    def authority_filter(self, selector: SelectorObject) -> QueryInfo:
        """Authorization scope for a selector object.

        Returns the QueryInfo itself, not its filter: a None filter alone
        cannot tell "no restriction" from "return nothing".
        """
        return self.context.authority.selector_query_info(
            self.options.requester,
            self.options.target_identity,
            selector,
            self.is_self_service(),
        )

    # Population statistics

    def add_population_stats(
        self,
        rows: List[Row],
        identity_filters: List[Filter],
        total: int,
        counter: PopulationCounter
    ):
        """Attach PopulationStatistics to every row.

        The population has a high-risk identity when any identity matching
        identity_filters scores at or above the highest score band.
        """
        has_high_risk = False
        band = self.config.high_risk_band()
        if band is not None:
            ops = QueryOptions(list(identity_filters))
            ops.add(ge(columns.COMPOSITE_SCORE, band.lower_bound))
            has_high_risk = self.store.count(columns.IDENTITY, ops) > 0

        for row in rows:
            row[columns.POP_STATS] = PopulationStatistics(
                count=counter.count(row),
                total=total,
                has_high_risk=has_high_risk,
            )

    def population_minimum(self) -> int:
        value = self.type_options.attributes.get(TypeOptions.OPTION_POPULATION_MINIMUM)
        if value is None:
            return self.config.population_minimum
        return to_int(value)

    def filter_by_percent(self, rows: List[Row]) -> List[Row]:
        """Drop rows held by less than the population minimum percentage."""
        minimum = self.population_minimum()
        if minimum <= 0:
            return list(rows)
        kept = []
        for row in rows:
            stats = row.get(columns.POP_STATS)
            if stats is not None and stats.percent < minimum:
                continue
            kept.append(row)
        return kept

    # Sort and trim

    def sort_and_cleanup(
        self,
        rows: List[Row],
        key: SortKey,
        reverse: bool,
        mode: SearchMode
    ) -> List[Row]:
        """Sort and trim rows to the requested page; COMBINED leaves them untouched."""
        if mode == SearchMode.COMBINED:
            return rows
        ordered = sort_rows(rows, key, reverse)
        return self.trim_results(ordered, self.options.start, self.options.limit)

    def cleanup_max_results(self, rows: List[Row], key: SortKey, reverse: bool = False) -> List[Row]:
        """Sort and keep at most max_result_count rows from the top."""
        ordered = sort_rows(rows, key, reverse)
        return self.trim_results(ordered, 0, self.options.max_result_count)

    def trim_results(self, rows: List[Row], start: int, limit: int) -> List[Row]:
        return trim_results(rows, start, limit, self.options.max_result_count)

    # Current access

    def convert_to_results(self, entries: Sequence[CurrentAccess]) -> SearchResults:
        if not entries:
            return SearchResults.empty()
        rows = [self.convert_to_result(entry) for entry in entries]
        return SearchResults(rows, len(rows))

    def convert_to_result(self, entry: CurrentAccess) -> Row:
        obj = self.lookup_object(entry)
        row = dict(obj) if obj is not None else {}
        row.update(self.current_access_columns(entry))
        self.enhance_row(row)
        return row

    def lookup_object(self, entry: CurrentAccess) -> Optional[Row]:
        """Catalog row for a current-access entry, projected to full_columns."""
        return None

    def find_by_id(self, catalog_type: str, object_id: str, cols: List[str]) -> Optional[Row]:
        ops = QueryOptions().add(eq(columns.ID, object_id))
        for values in self.store.search(catalog_type, ops, cols):
            return dict(zip(cols, values))
        return None

    def current_access_columns(self, entry: CurrentAccess) -> Dict[str, Any]:
        row = {
            columns.STATUS: entry.status.value,
            columns.DISPLAYABLE_STATUS: entry.displayable_status,
            columns.REMOVE_PENDING: entry.remove_request_pending,
            columns.REMOVABLE: entry.removable,
        }
        if entry.sunrise is not None:
            row[columns.SUNRISE] = entry.sunrise
        if entry.sunset is not None:
            row[columns.SUNSET] = entry.sunset
        return row


def validate_options(options: SearchOptions, object_types: Sequence[ObjectType]):
    """Check search options before any backend call.

    Raises:
        ConfigurationError: On the first invalid option found
    """
    if options.requester is None:
        raise ConfigurationError("requester must be defined")
    if options.start < 0:
        raise ConfigurationError(f"start must not be negative: {options.start}")
    if options.limit < 0:
        raise ConfigurationError(f"limit must not be negative: {options.limit}")
    if options.max_result_count <= 0:
        raise ConfigurationError("max_result_count must be set to a value greater than 0")
    if options.search_type.is_identity_search:
        for object_type in object_types:
            if not options.type_options_for(object_type).identity_filters:
                raise ConfigurationError(
                    f"identity_filters must be defined for {options.search_type.value} search of "
                    f"{object_type.value}"
                )
    if options.search_type == SearchType.CURRENT_ACCESS and options.target_identity is None:
        raise ConfigurationError("target identity must be defined for CurrentAccess search")


def object_class_filter(object_type: ObjectType) -> Filter:
    return eq(columns.OBJECT_CLASS, object_type.value)


def to_int(value: Any) -> int:
    """Lenient int conversion: numbers and numeric strings convert, anything else is 0."""
    if value is None or isinstance(value, bool):
        return int(bool(value))
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return 0
