"""Authorization scoping driven by the search configuration."""

import logging
from typing import List, Optional

from govsearch.config import SearchConfig
from govsearch.errors import ConfigurationError
from govsearch.search import columns
from govsearch.search.filters import NOTHING, Filter, and_, eq, in_, parse_filter
from govsearch.search.options import IdentityRef, ObjectType
from govsearch.search.query import QueryInfo, QueryOptions

from .base import AuthorityService, CatalogStore, SelectorObject

logger = logging.getLogger(__name__)


def selector_query_info(dsl: Optional[str]) -> QueryInfo:
    """QueryInfo for a selector DSL string.

    An unset selector means no restriction; the literal ``none`` means
    nothing is in scope.

    Raises:
        ConfigurationError: The DSL string is malformed
    """
    if dsl is None or not dsl.strip():
        return QueryInfo.no_restriction()
    if dsl.strip().lower() == NOTHING:
        return QueryInfo.nothing()
    try:
        return QueryInfo.restrict(parse_filter(dsl))
    except ValueError as e:
        raise ConfigurationError(f"Invalid selector '{dsl}': {e}") from e


class ConfiguredAuthority(AuthorityService):
    """Scopes searches with the request controls and selectors of a SearchConfig.

    Permitted roles come from the catalog: the ``permits`` of one role, or of
    every role directly assigned to the target.
    """

    def __init__(self, config: SearchConfig, store: CatalogStore):
        self.config = config
        self.store = store

    @property
    def controls(self):
        return self.config.request_controls

    def is_enabled(
        self,
        object_type: ObjectType,
        requester: Optional[IdentityRef],
        target: Optional[IdentityRef],
        quick_link: Optional[str] = None,
        self_service: bool = False
    ) -> bool:
        if requester is None:
            return False
        if object_type == ObjectType.ROLE:
            return self.controls.allow_roles
        return self.controls.allow_entitlements

    def is_role_request_allowed(self, permitted: bool, self_service: bool) -> bool:
        if permitted:
            return self.controls.allow_permitted_roles_self if self_service else self.controls.allow_permitted_roles_others
        return self.controls.allow_assignable_roles_self if self_service else self.controls.allow_assignable_roles_others

    def selector_query_info(
        self,
        requester: Optional[IdentityRef],
        target: Optional[IdentityRef],
        selector: SelectorObject,
        self_service: bool = False
    ) -> QueryInfo:
        return selector_query_info(self.config.selectors.get(selector.value))

    def role_selector_query_info(
        self,
        requester: Optional[IdentityRef],
        target: Optional[IdentityRef],
        assignable: bool,
        permitted: bool,
        role_id: Optional[str] = None,
        self_service: bool = False
    ) -> QueryInfo:
        role_scope = self.selector_query_info(requester, target, SelectorObject.ROLE, self_service)
        if role_scope.return_none:
            return role_scope

        if permitted:
            permits = self.permitted_role_ids(target, role_id)
            if not permits:
                return QueryInfo.nothing()
            scope: Filter = in_(columns.ID, permits)
        else:
            scope = in_(columns.TYPE, self.config.manually_assignable_role_types)
        return QueryInfo.restrict(and_(scope, role_scope.filter))

    def permitted_role_ids(self, target: Optional[IdentityRef], role_id: Optional[str]) -> List[str]:
        """Ids permitted by one role, or by every role directly assigned to the target."""
        if role_id is not None:
            role_ids = [role_id]
        elif target is not None:
            role_ids = self._assigned_roles(target.id)
        else:
            return []
        if not role_ids:
            return []

        permits: List[str] = []
        ops = QueryOptions().add(in_(columns.ID, role_ids))
        for (role_permits,) in self.store.search(columns.ROLE, ops, [columns.PERMITS]):
            for permit in role_permits or []:
                if permit not in permits:
                    permits.append(permit)
        return permits

    def _assigned_roles(self, identity_id: str) -> List[str]:
        ops = QueryOptions().add(eq(columns.ID, identity_id))
        for (assigned,) in self.store.search(columns.IDENTITY, ops, [columns.ASSIGNED_ROLES]):
            return list(assigned or [])
        return []

    def identity_scope_filters(
        self,
        requester: Optional[IdentityRef],
        quick_link: Optional[str] = None,
        action: Optional[str] = None
    ) -> Optional[List[Filter]]:
        dsl = self.config.identity_scope
        if action in self.config.action_identity_scopes:
            dsl = self.config.action_identity_scopes[action]
        scope = selector_query_info(dsl)
        if scope.return_none:
            logger.debug("No identities in scope for requester")
            return None
        return [scope.filter] if scope.filter is not None else []
