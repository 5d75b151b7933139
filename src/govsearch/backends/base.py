"""Collaborator interfaces consumed by the searchers.

The search layer owns no state: catalog rows live in a CatalogStore, text
matching in a FullTextBackend, authorization scoping in an
AuthorityService and held access in a CurrentAccessProvider.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from govsearch.search.access import CurrentAccessEntitlement, CurrentAccessRole
from govsearch.search.filters import Filter
from govsearch.search.options import CurrentAccessStatus, IdentityRef, ObjectType
from govsearch.search.query import QueryInfo, QueryOptions


class CatalogStore(ABC):
    """Relational access to catalog objects (Role, Entitlement, Identity, ...)."""

    @abstractmethod
    def count(self, object_type: str, options: QueryOptions) -> int:
        """Count objects of a type matching the options' filters."""
        pass

    @abstractmethod
    def search(
        self,
        object_type: str,
        options: QueryOptions,
        columns: Sequence[str]
    ) -> Iterator[Tuple[Any, ...]]:
        """Yield one tuple per matching object, values in ``columns`` order.

        Honors first_row, result_limit (0 = unbounded), orderings and
        fetch_rows.
        """
        pass


@dataclass
class FullTextResult:
    """Rows returned by the full-text index and the index's match count."""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    total_rows: int = 0


class FullTextBackend(ABC):
    """Text index over roles and entitlements.

    Indexed documents carry an ``object_class`` discriminator ("Role" or
    "Entitlement") and string-typed numeric fields.
    """

    @abstractmethod
    def is_search_enabled(self) -> bool:
        pass

    @abstractmethod
    def search(self, terms: Sequence[str], options: QueryOptions) -> FullTextResult:
        """Run a text query restricted by the options' filters and paging."""
        pass


class SelectorObject(str, Enum):
    """Catalog objects an authorization selector can scope."""
    APPLICATION = "application"
    ENTITLEMENT = "entitlement"
    ROLE = "role"


class AuthorityService(ABC):
    """Authorization scoping for a requester acting on a target identity."""

    @abstractmethod
    def is_enabled(
        self,
        object_type: ObjectType,
        requester: Optional[IdentityRef],
        target: Optional[IdentityRef],
        quick_link: Optional[str] = None,
        self_service: bool = False
    ) -> bool:
        """Whether the requester may request this item type at all."""
        pass

    @abstractmethod
    def is_role_request_allowed(self, permitted: bool, self_service: bool) -> bool:
        """Whether assignable (permitted=False) or permitted roles may be requested."""
        pass

    @abstractmethod
    def selector_query_info(
        self,
        requester: Optional[IdentityRef],
        target: Optional[IdentityRef],
        selector: SelectorObject,
        self_service: bool = False
    ) -> QueryInfo:
        pass

    @abstractmethod
    def role_selector_query_info(
        self,
        requester: Optional[IdentityRef],
        target: Optional[IdentityRef],
        assignable: bool,
        permitted: bool,
        role_id: Optional[str] = None,
        self_service: bool = False
    ) -> QueryInfo:
        """Scope for assignable or permitted roles.

        For permitted roles, ``role_id`` None means "roles permitted by any
        of the target's directly assigned roles", otherwise "roles
        permitted by that role".
        """
        pass

    @abstractmethod
    def identity_scope_filters(
        self,
        requester: Optional[IdentityRef],
        quick_link: Optional[str] = None,
        action: Optional[str] = None
    ) -> Optional[List[Filter]]:
        """Filters limiting the identities the requester may see when acting through a quick link action.

        Returns None when no identity is in scope, which is not the same as
        an empty list (no restriction).
        """
        pass


class CurrentAccessProvider(ABC):
    """Source of the items a target identity holds or has requested."""

    @abstractmethod
    def get_roles(
        self,
        identity: IdentityRef,
        status: Optional[CurrentAccessStatus] = None
    ) -> List[CurrentAccessRole]:
        pass

    @abstractmethod
    def get_entitlements(
        self,
        identity: IdentityRef,
        status: Optional[CurrentAccessStatus] = None
    ) -> List[CurrentAccessEntitlement]:
        pass

    @abstractmethod
    def role_rule_filter(self, identity: IdentityRef) -> Optional[Filter]:
        """Filter over roles the requester may see in current access."""
        pass

    @abstractmethod
    def entitlement_rule_filter(self, identity: IdentityRef) -> Optional[Filter]:
        pass
