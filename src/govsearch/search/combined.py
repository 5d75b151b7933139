"""Cross-type search merging roles and entitlements into one page."""

import logging
from typing import List, Optional, Sequence

from . import columns
from .base import ItemSearcher, object_class_filter, validate_options
from .context import SearchContext
from .entitlements import EntitlementItemSearcher
from .filters import Filter, and_, or_
from .options import SearchMode, SearchOptions, SearchType
from .query import QueryInfo
from .results import (
    Row,
    SearchResults,
    SortKey,
    identity_sort_key,
    keyword_sort_key,
    sort_rows,
    trim_results,
)
from .roles import RoleItemSearcher

logger = logging.getLogger(__name__)


class CombinedSearcher:
    """Searches roles and entitlements together.

    Holds one searcher per item type and merges their output. Keyword
    searches decide full-text eligibility over both types' filters at once;
    other search types run each searcher in COMBINED mode and sort and page
    the union.
    """

    def __init__(self, options: SearchOptions, context: SearchContext):
        self.options = options
        self.context = context
        self.roles = RoleItemSearcher(options, context)
        self.entitlements = EntitlementItemSearcher(options, context)

    @property
    def searchers(self) -> List[ItemSearcher]:
        return [self.roles, self.entitlements]

    def search(self, terms: Optional[Sequence[str]] = None) -> SearchResults:
        """Run the search type the options ask for over both item types.

        Raises:
            ConfigurationError: Options are invalid for either item type
        """
        validate_options(self.options, [searcher.object_type for searcher in self.searchers])

        search_type = self.options.search_type
        if search_type == SearchType.KEYWORD:
            return self.search_keyword(terms)
        if search_type.is_identity_search:
            return self.merge([s.search(None, SearchMode.COMBINED) for s in self.searchers], identity_sort_key, True)
        return self.merge([s.search(terms, SearchMode.COMBINED) for s in self.searchers], keyword_sort_key, False)

    # Keyword search

    def query_info(self, searcher: ItemSearcher) -> QueryInfo:
        """Keyword scope of one type; a type the requester may not search returns nothing."""
        if not searcher.is_access_type_enabled():
            logger.debug(f"{searcher.object_type.value} search not enabled for requester")
            return QueryInfo.nothing()
        return searcher.keyword_query_info()

    def search_keyword(self, terms: Optional[Sequence[str]]) -> SearchResults:
        role_info = self.query_info(self.roles)
        entitlement_info = self.query_info(self.entitlements)
        if role_info.return_none and entitlement_info.return_none:
            return SearchResults.empty()

        permitted: List[Row] = []
        if not role_info.return_none:
            permitted = self.roles.get_permitted_roles(self.options.target_identity, terms)

        filters = [info.filter for info in (role_info, entitlement_info) if info.filter is not None]
        if self.roles.can_use_fulltext(filters, terms):
            logger.debug("Routing combined query to full text")
            return self.fulltext_keyword(terms, role_info, entitlement_info, permitted)
        logger.debug("Routing combined query to catalog store")
        return self.relational_keyword(terms, role_info, entitlement_info, permitted)

    def fulltext_keyword(
        self,
        terms: Optional[Sequence[str]],
        role_info: QueryInfo,
        entitlement_info: QueryInfo,
        permitted: List[Row]
    ) -> SearchResults:
        """One full-text query over both object classes, permitted roles merged ahead of it."""
        branches: List[Filter] = []
        for searcher, info in ((self.roles, role_info), (self.entitlements, entitlement_info)):
            if not info.return_none:
                branches.append(and_(object_class_filter(searcher.object_type), info.filter))

        start = self.options.start
        limit = self.options.limit
        ops = self.roles.query_options([or_(*branches)], sort_column=columns.DISPLAY_NAME)
        ops = self.roles.adjust_for_permitted_roles(ops, len(permitted), start, limit)
        initial = self.roles.fulltext_results(ops, terms)
        return self.roles.handle_permitted_roles(initial, permitted, start, limit)

    def relational_keyword(
        self,
        terms: Optional[Sequence[str]],
        role_info: QueryInfo,
        entitlement_info: QueryInfo,
        permitted: List[Row]
    ) -> SearchResults:
        """Fetch up to max_result_count rows per type, then sort and page the union.

        Paging after the merge keeps pages stable across requests.
        """
        max_results = self.options.max_result_count
        rows: List[Row] = []
        total = len(permitted)
        for searcher, info in ((self.roles, role_info), (self.entitlements, entitlement_info)):
            if info.return_none:
                continue
            ops = searcher.query_options([info.filter], 0, max_results, columns.DISPLAY_NAME)
            results = searcher.relational_results(ops, terms)
            rows.extend(results.rows)
            total += results.total_result_count

        merged = list(permitted) + sort_rows(rows, keyword_sort_key)
        page = trim_results(merged, self.options.start, self.options.limit, max_results)
        return SearchResults(page, min(total, max_results))

    # Identity and current access

    def merge(self, results: List[SearchResults], key: SortKey, reverse: bool) -> SearchResults:
        """Sort the concatenated rows of each type and trim to the requested page."""
        rows: List[Row] = []
        total = 0
        for result in results:
            rows.extend(result.rows)
            total += result.total_result_count

        ordered = sort_rows(rows, key, reverse)
        max_results = self.options.max_result_count
        page = trim_results(ordered, self.options.start, self.options.limit, max_results)
        return SearchResults(page, min(total, max_results))
