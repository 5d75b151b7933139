"""Role searcher: assignable roles, permitted-role injection and role populations."""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from govsearch.errors import DataIntegrityError

from . import columns
from .access import CurrentAccess, CurrentAccessRole
from .base import ItemSearcher, PopulationCounter
from .filters import Filter, and_, eq, ilike, in_, not_, or_
from .options import ObjectType, SearchMode
from .query import QueryInfo, QueryOptions
from .results import Row, SearchResults, identity_sort_key, keyword_sort_key

logger = logging.getLogger(__name__)

TOO_MANY_ROLES = (
    "Identity search found more roles than max_roles_returned allows; "
    "remaining roles are ignored. Refine the identity filters."
)


class RoleHolderCounter(PopulationCounter):
    """Counts identities of a population assigned or detected with a role."""

    def __init__(self, store, identity_ops: QueryOptions):
        self.store = store
        self.identity_ops = identity_ops

    def count(self, row: Row) -> int:
        ops = self.identity_ops.copy()
        role_id = row.get(columns.ID)
        ops.add(or_(eq(columns.ASSIGNED_ROLES, role_id), eq(columns.DETECTED_ROLES, role_id)))
        return self.store.count(columns.IDENTITY, ops)


class EmptyPopulationCounter(PopulationCounter):
    """Counter for a population with nobody in scope."""

    def count(self, row: Row) -> int:
        return 0


class RoleItemSearcher(ItemSearcher):
    """Searches roles.

    Keyword searches surface the target's permitted roles (roles permitted
    by an assigned role or by any role it inherits from) ahead of the
    assignable roles, with paging computed over the concatenation.
    """

    @property
    def object_type(self) -> ObjectType:
        return ObjectType.ROLE

    @property
    def catalog_type(self) -> str:
        return columns.ROLE

    @property
    def default_columns(self) -> List[str]:
        return columns.ROLE_COLUMNS

    def add_search_terms(self, ops: QueryOptions, terms: Optional[Sequence[str]]) -> QueryOptions:
        return ops.copy().add(*self.search_term_filters(terms))

    def search_term_filters(self, terms: Optional[Sequence[str]]) -> List[Filter]:
        return [ilike(columns.DISPLAY_NAME, term, self.match_mode) for term in terms or []]

    def keyword_query_info(self, permitted: bool = False, role_id: Optional[str] = None) -> QueryInfo:
        """Scope for assignable roles, or for permitted roles when ``permitted`` is set.

        Args:
            permitted: Scope permitted roles instead of assignable ones
            role_id: For permitted roles, the role whose permits are wanted;
                None means every directly assigned role of the target
        """
        filters = list(self.type_options.filters)

        if not self.is_enabled(permitted):
            selector = QueryInfo.nothing()
        else:
            selector = self.context.authority.role_selector_query_info(
                self.options.requester,
                self.options.target_identity,
                assignable=not permitted,
                permitted=permitted,
                role_id=role_id,
                self_service=self.is_self_service(),
            )

        if selector.return_none:
            return selector
        if selector.filter is not None:
            filters.append(selector.filter)
        return QueryInfo.restrict(and_(*filters)) if filters else QueryInfo.no_restriction()

    def is_enabled(self, permitted: bool) -> bool:
        return self.context.authority.is_role_request_allowed(permitted, self.is_self_service())

    def is_access_type_enabled(self) -> bool:
        # Nothing to search when neither assignable nor permitted roles may be requested
        return super().is_access_type_enabled() and (self.is_enabled(False) or self.is_enabled(True))

    # Keyword search

    def search_keyword(
        self,
        terms: Optional[Sequence[str]],
        mode: SearchMode = SearchMode.STANDALONE
    ) -> SearchResults:
        start = self.options.start
        limit = self.options.limit

        query_info = self.keyword_query_info()
        if query_info.return_none:
            return SearchResults.empty()

        ops = self.query_options([query_info.filter], sort_column=columns.DISPLAY_NAME)
        permitted = self.get_permitted_roles(self.options.target_identity, terms)
        initial = self.get_results(self.adjust_for_permitted_roles(ops, len(permitted), start, limit), terms)
        return self.handle_permitted_roles(initial, permitted, start, limit)

    def adjust_for_permitted_roles(
        self,
        ops: QueryOptions,
        permitted_count: int,
        start: int,
        limit: int
    ) -> QueryOptions:
        """Page bounds for the assignable query when permitted roles come first.

        The requested page is ``[start, start + limit)`` of permitted roles
        followed by assignable roles, so the assignable query must return
        assignable rows ``[max(0, start - permitted), start + limit - permitted)``.
        When that range is empty the page is all permitted roles and only
        the count is fetched.

        Returns:
            Copy of ops with adjusted first_row / result_limit
        """
        if permitted_count <= 0:
            return ops

        if limit <= 0:
            return ops.paged(max(0, start - permitted_count), 0)

        end_index = start + limit - permitted_count
        if end_index <= 0:
            adjusted = ops.paged(0, 0)
            adjusted.fetch_rows = False
            return adjusted

        first_row = max(0, end_index - limit)
        return ops.paged(first_row, end_index - first_row)

    def handle_permitted_roles(
        self,
        initial: SearchResults,
        permitted: List[Row],
        start: int,
        limit: int
    ) -> SearchResults:
        """Merge permitted roles into a page fetched with adjust_for_permitted_roles.

        The total counts permitted roles too, capped at max_result_count.
        """
        permitted_count = len(permitted)
        if permitted_count == 0:
            return initial

        total = min(initial.total_result_count + permitted_count, self.options.max_result_count)
        rows = initial.rows
        if start < permitted_count:
            if limit > 0:
                needed = max(0, start + limit - permitted_count)
                combined = list(permitted) + rows[:needed]
                rows = combined[start:min(start + limit, len(combined))]
            else:
                rows = (list(permitted) + rows)[start:]
        elif limit > 0:
            rows = rows[:limit]
        return SearchResults(rows, total)

    # Permitted roles

    def get_permitted_roles(self, identity, terms: Optional[Sequence[str]]) -> List[Row]:
        """Roles the identity may request because an assigned role permits them.

        Collects the permits of every directly assigned role, then walks each
        assigned role's inheritance depth first collecting ancestors'
        permits. Each ancestor is walked once; an inheritance cycle is cut
        at the repeated role and logged. Rows are de-duplicated by id and
        flagged with ``permitted_role``.
        """
        if identity is None:
            return []
        assigned = self.assigned_role_ids(identity.id)
        if not assigned:
            return []

        permitted = self.permitted_roles_for(terms, None)
        visited: Set[str] = set()
        for role_id in assigned:
            self._collect_inherited_permitted(terms, role_id, permitted, visited, (role_id,))

        unique = []
        seen = set()
        for row in permitted:
            row_id = row.get(columns.ID)
            if row_id in seen:
                continue
            seen.add(row_id)
            unique.append(row)
        return unique

    def _collect_inherited_permitted(
        self,
        terms: Optional[Sequence[str]],
        role_id: str,
        permitted: List[Row],
        visited: Set[str],
        path: Tuple[str, ...]
    ):
        for parent_id in self.role_inheritance(role_id):
            if parent_id in path:
                logger.warning(
                    f"Role inheritance cycle: {' -> '.join(path + (parent_id,))}; "
                    f"not following '{parent_id}' again"
                )
                continue
            if parent_id in visited:
                continue
            visited.add(parent_id)
            permitted.extend(self.permitted_roles_for(terms, parent_id))
            self._collect_inherited_permitted(terms, parent_id, permitted, visited, path + (parent_id,))

    def permitted_roles_for(self, terms: Optional[Sequence[str]], role_id: Optional[str]) -> List[Row]:
        """All roles permitted by one role, or by the target's assigned roles when role_id is None.

        Always relational and unpaged. Roles of manually assignable types
        are excluded since they already appear among the assignable roles.
        """
        query_info = self.keyword_query_info(permitted=True, role_id=role_id)
        if query_info.return_none:
            return []

        ops = self.query_options([query_info.filter], 0, 0, columns.DISPLAY_NAME)
        for role_type in self.config.manually_assignable_role_types:
            ops.add(not_(eq(columns.TYPE, role_type)))

        results = self.relational_results(ops, terms)
        for row in results.rows:
            row[columns.PERMITTED_ROLE] = True
        return results.rows

    def assigned_role_ids(self, identity_id: str) -> List[str]:
        ops = QueryOptions().add(eq(columns.ID, identity_id))
        for (assigned,) in self.store.search(columns.IDENTITY, ops, [columns.ASSIGNED_ROLES]):
            return list(assigned or [])
        return []

    def role_inheritance(self, role_id: str) -> List[str]:
        ops = QueryOptions().add(eq(columns.ID, role_id))
        for (inheritance,) in self.store.search(columns.ROLE, ops, [columns.INHERITANCE]):
            return list(inheritance or [])
        return []

    # Identity search

    def search_identity(self, mode: SearchMode = SearchMode.STANDALONE) -> SearchResults:
        if not self.is_enabled(False):
            return SearchResults.empty()

        ops = self.add_identity_search_filters(self.query_options(self.type_options.filters, 0, 0))
        # No identities in scope for this requester
        if ops is None:
            return SearchResults.empty()

        assignable = self.context.authority.role_selector_query_info(
            self.options.requester,
            self.options.target_identity,
            assignable=True,
            permitted=False,
            self_service=self.is_self_service(),
        )
        if assignable.return_none:
            return SearchResults.empty()
        ops.add(assignable.filter)

        rows = self.get_rows(columns.ROLE, ops, self.full_columns())
        if not self.config.disable_role_population_stats:
            self.add_role_population_stats(rows)
            rows = self.filter_by_percent(rows)

        total = min(len(rows), self.options.max_result_count)
        rows = self.sort_and_cleanup(rows, identity_sort_key, True, mode)
        return SearchResults(rows, total)

    def identity_population_ops(self) -> Optional[QueryOptions]:
        """Query options selecting the population, or None when nobody is in scope."""
        scope = self.context.authority.identity_scope_filters(
            self.options.requester, self.options.quick_link, self.quick_link_action
        )
        if scope is None:
            return None
        return QueryOptions(list(scope) + list(self.type_options.identity_filters))

    def add_identity_search_filters(self, ops: QueryOptions) -> Optional[QueryOptions]:
        """Restrict ops to roles assigned to or detected on the population.

        Returns None when no identity is in scope. With no candidate roles
        the id restriction matches nothing rather than everything.
        """
        identity_ops = self.identity_population_ops()
        if identity_ops is None:
            return None

        max_roles = self.config.max_roles_returned
        role_ids: List[str] = []
        seen: Set[str] = set()
        warned = False

        started = time.time()
        cols = [columns.ASSIGNED_ROLES, columns.DETECTED_ROLES]
        for assigned, detected in self.store.search(columns.IDENTITY, identity_ops, cols):
            for role_id in list(assigned or []) + list(detected or []):
                if role_id in seen:
                    continue
                if max_roles > -1 and len(role_ids) >= max_roles:
                    if not warned:
                        logger.warning(TOO_MANY_ROLES)
                        warned = True
                    continue
                seen.add(role_id)
                role_ids.append(role_id)
        logger.debug(f"Role candidate search took {(time.time() - started) * 1000:.0f} ms")

        new_ops = ops.copy()
        new_ops.filters.insert(0, in_(columns.ID, role_ids or [""]))
        return new_ops

    def add_role_population_stats(self, rows: List[Row]):
        identity_ops = self.identity_population_ops()
        if identity_ops is None:
            total = 0
            counter = EmptyPopulationCounter()
        else:
            total = self.store.count(columns.IDENTITY, identity_ops)
            counter = RoleHolderCounter(self.store, identity_ops)
        self.add_population_stats(rows, list(self.type_options.identity_filters), total, counter)

    # Current access

    def search_current_access(
        self,
        terms: Optional[Sequence[str]],
        mode: SearchMode = SearchMode.STANDALONE
    ) -> SearchResults:
        """Roles the target holds or has requested, filtered like a keyword search.

        Raises:
            DataIntegrityError: A held role no longer exists in the catalog
        """
        identity = self.options.target_identity
        entries = self.context.current_access.get_roles(identity, self.options.status)

        by_role: Dict[str, List[CurrentAccessRole]] = {}
        for entry in entries:
            by_role.setdefault(entry.role_id, []).append(entry)

        role_ids = list(by_role)
        existing = {values[0] for values in self.search_across_ids(columns.ROLE, role_ids, [], [columns.ID])}
        missing = [role_id for role_id in role_ids if role_id not in existing]
        if missing:
            raise DataIntegrityError(f"Current access role does not exist: {', '.join(missing)}")

        allowed = self.filtered_role_ids(role_ids, terms)
        kept = [entry for role_id, group in by_role.items() if role_id in allowed for entry in group]

        results = self.convert_to_results(kept)
        total = min(results.total_result_count, self.options.max_result_count)
        rows = self.sort_and_cleanup(results.rows, keyword_sort_key, False, mode)
        return SearchResults(rows, total)

    def filtered_role_ids(self, role_ids: List[str], terms: Optional[Sequence[str]]) -> Set[str]:
        filters: List[Optional[Filter]] = list(self.type_options.filters)
        filters.extend(self.search_term_filters(terms))
        filters.append(self.context.current_access.role_rule_filter(self.options.target_identity))
        return {values[0] for values in self.search_across_ids(columns.ROLE, role_ids, filters, [columns.ID])}

    def lookup_object(self, entry: CurrentAccessRole) -> Optional[Row]:
        return self.find_by_id(columns.ROLE, entry.role_id, self.full_columns())

    def current_access_columns(self, entry: CurrentAccess) -> Dict[str, Any]:
        row = super().current_access_columns(entry)
        row[columns.ASSIGNMENT_ID] = entry.assignment_id
        row[columns.ASSIGNMENT_NOTE] = entry.assignment_note
        row[columns.ROLE_TARGETS] = entry.role_targets
        row[columns.ROLE_LOCATION] = entry.role_location
        return row
