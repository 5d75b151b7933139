"""Entitlement searcher and entitlement population statistics."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

from govsearch.backends.base import SelectorObject
from govsearch.errors import CapacityError, DataIntegrityError

from . import columns
from .access import CurrentAccessEntitlement
from .base import ID_BATCH_SIZE, ItemSearcher, PopulationCounter
from .filters import Filter, and_, eq, ilike, in_, ne, or_, prefix_properties
from .matcher import MapMatcher
from .options import ObjectType, SearchMode, TypeOptions
from .query import QueryInfo, QueryOptions
from .results import Row, SearchResults, identity_sort_key, keyword_sort_key

logger = logging.getLogger(__name__)

APPLICATION_PREFIX = "application."


@dataclass
class EntitlementPopulation:
    """Identities in a population and how many of them hold each entitlement."""
    total_identities: int = 0
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def entitlement_ids(self) -> List[str]:
        return list(self.counts)

    def count(self, entitlement_id: str) -> int:
        return self.counts.get(entitlement_id, 0)


class EntitlementStatistician:
    """Computes entitlement holder counts for an identity population.

    There is no searchable association from identities to entitlements, so
    the population is walked through its IdentityEntitlement links.
    """

    def __init__(self, store, size_limit: int):
        self.store = store
        self.size_limit = size_limit

    def crunch(
        self,
        identity_filters: List[Filter],
        application_filter: Optional[Filter] = None,
        entitlement_filter: Optional[Filter] = None
    ) -> EntitlementPopulation:
        """Count holders per entitlement still allowed by the given filters.

        Args:
            identity_filters: Filters selecting the population
            application_filter: Filter over Application objects (unprefixed)
            entitlement_filter: Filter over entitlements

        Raises:
            CapacityError: The population is larger than size_limit
        """
        identity_ops = QueryOptions(list(identity_filters))
        identity_ids = [values[0] for values in self.store.search(columns.IDENTITY, identity_ops, [columns.ID])]
        if len(identity_ids) > self.size_limit:
            raise CapacityError(len(identity_ids), self.size_limit)
        if not identity_ids:
            return EntitlementPopulation()

        holders: Dict[str, Set[str]] = {}
        link_columns = [columns.IDENTITY_ID, columns.ENTITLEMENT_ID]
        for batch in _batches(identity_ids):
            ops = QueryOptions().add(in_(columns.IDENTITY_ID, batch))
            for identity_id, entitlement_id in self.store.search(columns.IDENTITY_ENTITLEMENT, ops, link_columns):
                if entitlement_id:
                    holders.setdefault(entitlement_id, set()).add(identity_id)

        filters = [prefix_properties(application_filter, APPLICATION_PREFIX), entitlement_filter]
        allowed: Set[str] = set()
        for batch in _batches(list(holders)):
            ops = QueryOptions().add(in_(columns.ID, batch), *filters)
            allowed.update(values[0] for values in self.store.search(columns.ENTITLEMENT, ops, [columns.ID]))

        counts = {ent_id: len(ids) for ent_id, ids in holders.items() if ent_id in allowed}
        logger.debug(f"Population of {len(identity_ids)} identities holds {len(counts)} entitlements")
        return EntitlementPopulation(len(identity_ids), counts)


class StatisticsCounter(PopulationCounter):
    def __init__(self, population: EntitlementPopulation):
        self.population = population

    def count(self, row: Row) -> int:
        return self.population.count(row.get(columns.ID))


def _batches(ids: List[str]) -> List[List[str]]:
    return [ids[i:i + ID_BATCH_SIZE] for i in range(0, len(ids), ID_BATCH_SIZE)]


class EntitlementItemSearcher(ItemSearcher):
    """Searches requestable entitlements."""

    @property
    def object_type(self) -> ObjectType:
        return ObjectType.ENTITLEMENT

    @property
    def catalog_type(self) -> str:
        return columns.ENTITLEMENT

    @property
    def default_columns(self) -> List[str]:
        return columns.ENTITLEMENT_COLUMNS

    def add_search_terms(self, ops: QueryOptions, terms: Optional[Sequence[str]]) -> QueryOptions:
        return ops.copy().add(*self.search_term_filters(terms))

    def search_term_filters(self, terms: Optional[Sequence[str]]) -> List[Filter]:
        """Each term must match the application name or the display name."""
        return [
            or_(
                ilike(columns.APPLICATION_NAME, term, self.match_mode),
                ilike(columns.DISPLAY_NAME, term, self.match_mode),
            )
            for term in terms or []
        ]

    def requestable_filter(self) -> Optional[Filter]:
        if self.type_options.attributes.get(TypeOptions.OPTION_INCLUDE_NON_REQUESTABLE):
            return None
        return eq(columns.REQUESTABLE, True)

    def keyword_query_info(self) -> QueryInfo:
        """Type filters, entitlements only, requestable only, and both authority scopes.

        The entitlement scope is not resolved once the application scope
        already returns nothing.
        """
        filters: List[Filter] = list(self.type_options.filters)
        filters.append(ne(columns.TYPE, columns.PERMISSION_TYPE))

        requestable = self.requestable_filter()
        if requestable is not None:
            filters.append(requestable)

        app_query = self.authority_filter(SelectorObject.APPLICATION)
        return_nothing = app_query.return_none
        if app_query.filter is not None:
            filters.append(prefix_properties(app_query.filter, APPLICATION_PREFIX))

        if not return_nothing:
            entitlement_query = self.authority_filter(SelectorObject.ENTITLEMENT)
            return_nothing = entitlement_query.return_none
            if entitlement_query.filter is not None:
                filters.append(entitlement_query.filter)

        if return_nothing:
            return QueryInfo.nothing()
        return QueryInfo.restrict(and_(*filters))

    # Keyword search

    def search_keyword(
        self,
        terms: Optional[Sequence[str]],
        mode: SearchMode = SearchMode.STANDALONE
    ) -> SearchResults:
        query_info = self.keyword_query_info()
        if query_info.return_none:
            return SearchResults.empty()
        ops = self.query_options([query_info.filter], sort_column=columns.DISPLAY_NAME)
        return self.get_results(ops, terms)

    # Identity search

    def search_identity(self, mode: SearchMode = SearchMode.STANDALONE) -> SearchResults:
        """Entitlements held in the population, most held first.

        Raises:
            CapacityError: The population is too large for statistics
        """
        scope = self.context.authority.identity_scope_filters(
            self.options.requester, self.options.quick_link, self.quick_link_action
        )
        identity_filters = list(self.type_options.identity_filters)
        if scope is not None:
            identity_filters.extend(scope)

        app_query = self.authority_filter(SelectorObject.APPLICATION)
        if app_query.return_none:
            return SearchResults.empty()
        entitlement_query = self.authority_filter(SelectorObject.ENTITLEMENT)
        if entitlement_query.return_none:
            return SearchResults.empty()

        entitlement_filter = entitlement_query.filter
        requestable = self.requestable_filter()
        if requestable is not None:
            entitlement_filter = requestable if entitlement_filter is None else and_(entitlement_filter, requestable)

        # Nobody in scope, which differs from an unrestricted population
        if scope is None:
            return SearchResults.empty()

        statistician = EntitlementStatistician(self.store, self.config.population_size_limit)
        population = statistician.crunch(identity_filters, app_query.filter, entitlement_filter)
        if not population.entitlement_ids:
            return SearchResults.empty()

        cols = self.full_columns()
        rows = self.convert_rows(self.search_across_ids(columns.ENTITLEMENT, population.entitlement_ids, [], cols), cols)
        self.add_population_stats(rows, identity_filters, population.total_identities, StatisticsCounter(population))
        rows = self.filter_by_percent(rows)

        total = min(len(rows), self.options.max_result_count)
        rows = self.sort_and_cleanup(rows, identity_sort_key, True, mode)
        return SearchResults(rows, total)

    # Current access

    def search_current_access(
        self,
        terms: Optional[Sequence[str]],
        mode: SearchMode = SearchMode.STANDALONE
    ) -> SearchResults:
        """Entitlements the target holds or has requested.

        Entries resolvable to a catalog entitlement are filtered in the store;
        the rest are matched in memory against the same filters. Rows are
        sorted and trimmed on a light projection before the detailed
        conversion, so only returned rows cost catalog lookups.

        Raises:
            DataIntegrityError: An entry names a catalog entitlement that no longer exists
        """
        entries = self.context.current_access.get_entitlements(self.options.target_identity, self.options.status)

        unresolved: List[CurrentAccessEntitlement] = []
        by_id: Dict[str, List[CurrentAccessEntitlement]] = {}
        for entry in entries:
            logger.debug(
                f"Entitlement value = {entry.value}, attribute = {entry.attribute}, "
                f"application = {entry.application_name}"
            )
            entitlement_id = self.resolve_entitlement_id(entry)
            if entitlement_id is None:
                unresolved.append(entry)
            else:
                by_id.setdefault(entitlement_id, []).append(entry)

        filters = self.current_access_filters(terms)
        display_names = self.filtered_entitlement_names(list(by_id), filters)

        simple_rows: List[Row] = []
        for entitlement_id, display_name in display_names.items():
            for entry in by_id[entitlement_id]:
                simple_rows.append(self.simple_result(entitlement_id, display_name, entry))

        matcher = MapMatcher(and_(*filters))
        for entry in unresolved:
            if matcher.matches(self.matcher_view(entry)):
                simple_rows.append(self.simple_result(None, None, entry))

        total = min(len(simple_rows), self.options.max_result_count)
        if mode == SearchMode.COMBINED:
            # The merging caller pages; keep at most max_result_count for it
            clean = self.cleanup_max_results(simple_rows, keyword_sort_key)
        else:
            clean = self.sort_and_cleanup(simple_rows, keyword_sort_key, False, mode)
        return self.convert_to_detailed_results(clean, total)

    def resolve_entitlement_id(self, entry: CurrentAccessEntitlement) -> Optional[str]:
        """Catalog id of a held entitlement, or None when the catalog has no such entitlement.

        Raises:
            DataIntegrityError: The entry carries an id the catalog no longer has
        """
        if entry.entitlement_id:
            if self.find_by_id(columns.ENTITLEMENT, entry.entitlement_id, [columns.ID]) is None:
                raise DataIntegrityError(f"Current access entitlement does not exist: {entry.entitlement_id}")
            return entry.entitlement_id

        ops = QueryOptions().add(
            eq(columns.APPLICATION_NAME, entry.application_name),
            eq(columns.ATTRIBUTE, entry.attribute),
            eq(columns.VALUE, entry.value),
        )
        for (entitlement_id,) in self.store.search(columns.ENTITLEMENT, ops, [columns.ID]):
            return entitlement_id
        return None

    def current_access_filters(self, terms: Optional[Sequence[str]]) -> List[Filter]:
        filters: List[Filter] = list(self.type_options.filters)
        filters.extend(self.search_term_filters(terms))
        rule_filter = self.context.current_access.entitlement_rule_filter(self.options.target_identity)
        if rule_filter is not None:
            filters.append(rule_filter)
        return filters

    def filtered_entitlement_names(self, entitlement_ids: List[str], filters: List[Filter]) -> Dict[str, Any]:
        """Map of id to display name for the entitlements matching the filters."""
        cols = [columns.ID, columns.DISPLAY_NAME]
        return {
            entitlement_id: display_name
            for entitlement_id, display_name in self.search_across_ids(columns.ENTITLEMENT, entitlement_ids, filters, cols)
        }

    def matcher_view(self, entry: CurrentAccessEntitlement) -> Dict[str, Any]:
        """Flattened view of an unresolved entry, keyed like the catalog columns filters use."""
        view = {
            columns.APPLICATION_NAME: entry.application_name,
            columns.ATTRIBUTE: entry.attribute,
            columns.VALUE: entry.value,
            columns.DISPLAY_NAME: entry.value,
        }
        application_id = entry.application_id or self.application_id(entry.application_name)
        if application_id is not None:
            view[columns.APPLICATION_ID] = application_id
        return view

    def application_id(self, application_name: str) -> Optional[str]:
        ops = QueryOptions().add(eq(columns.NAME, application_name))
        for (application_id,) in self.store.search(columns.APPLICATION, ops, [columns.ID]):
            return application_id
        return None

    @staticmethod
    def simple_result(
        entitlement_id: Optional[str],
        display_name: Optional[str],
        entry: CurrentAccessEntitlement
    ) -> Row:
        row: Row = {columns.DISPLAY_NAME: display_name or entry.value, _ENTRY: entry}
        if entitlement_id:
            row[columns.ID] = entitlement_id
        return row

    def convert_to_detailed_results(self, simple_rows: List[Row], total: int) -> SearchResults:
        if not simple_rows:
            return SearchResults.empty()
        return SearchResults([self.detailed_result(row) for row in simple_rows], total)

    def detailed_result(self, simple_row: Row) -> Row:
        entry: CurrentAccessEntitlement = simple_row[_ENTRY]
        entitlement_id = simple_row.get(columns.ID)

        obj = None
        if entitlement_id is not None:
            obj = self.find_by_id(columns.ENTITLEMENT, entitlement_id, self.full_columns())
        row = dict(obj) if obj is not None else {}
        row.update(self.current_access_columns(entry))
        self.enhance_row(row)

        if obj is None:
            row[columns.DISPLAY_NAME] = entry.value
            row[columns.ATTRIBUTE] = entry.attribute
            row[columns.VALUE] = entry.value
            row[columns.APPLICATION_NAME] = entry.application_name
        if entry.instance:
            row[columns.INSTANCE] = entry.instance
        row[columns.NATIVE_IDENTITY] = entry.native_identity
        row[columns.ACCOUNT] = entry.account
        return row


# Key carrying the source entry through the light projection
_ENTRY = "_current_access"
