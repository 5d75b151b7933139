"""Current access read from identity objects in the catalog store.

An Identity object carries its held access inline:

    role_assignments:   [{role_id, assignment_id, assignment_note, role_targets, role_location, sunrise, sunset}]
    entitlements:       [{application, attribute, value, entitlement_id, native_identity, account, instance}]
    pending_requests:   [{object_type: Role | Entitlement, ...same fields...}]

Assignments and entitlements are active; pending requests are requested.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from govsearch.config import SearchConfig
from govsearch.search import columns
from govsearch.search.access import CurrentAccessEntitlement, CurrentAccessRole
from govsearch.search.filters import Filter, in_
from govsearch.search.options import CurrentAccessStatus, IdentityRef
from govsearch.search.query import QueryOptions

from .authority import selector_query_info
from .base import CatalogStore, CurrentAccessProvider

logger = logging.getLogger(__name__)

IDENTITY_ACCESS_COLUMNS = [columns.ROLE_ASSIGNMENTS, columns.ENTITLEMENTS, columns.PENDING_REQUESTS]


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class CatalogCurrentAccessProvider(CurrentAccessProvider):
    """Current access of identities stored in a CatalogStore."""

    def __init__(self, store: CatalogStore, config: SearchConfig):
        self.store = store
        self.config = config

    def identity_access(self, identity: IdentityRef) -> Dict[str, List[Dict[str, Any]]]:
        ops = QueryOptions().add(in_(columns.ID, [identity.id]))
        for values in self.store.search(columns.IDENTITY, ops, IDENTITY_ACCESS_COLUMNS):
            return {column: list(value or []) for column, value in zip(IDENTITY_ACCESS_COLUMNS, values)}
        logger.debug(f"Identity {identity.id} not found; no current access")
        return {column: [] for column in IDENTITY_ACCESS_COLUMNS}

    def _entries(
        self,
        identity: IdentityRef,
        held_column: str,
        object_type: str,
        status: Optional[CurrentAccessStatus]
    ) -> List[tuple]:
        access = self.identity_access(identity)
        entries = []
        if status in (None, CurrentAccessStatus.ACTIVE):
            entries.extend((item, CurrentAccessStatus.ACTIVE) for item in access[held_column])
        if status in (None, CurrentAccessStatus.REQUESTED):
            entries.extend(
                (item, CurrentAccessStatus.REQUESTED)
                for item in access[columns.PENDING_REQUESTS]
                if item.get(columns.OBJECT_TYPE) == object_type
            )
        return entries

    def get_roles(
        self,
        identity: IdentityRef,
        status: Optional[CurrentAccessStatus] = None
    ) -> List[CurrentAccessRole]:
        return [
            CurrentAccessRole(
                role_id=item['role_id'],
                status=entry_status,
                sunrise=_timestamp(item.get(columns.SUNRISE)),
                sunset=_timestamp(item.get(columns.SUNSET)),
                remove_request_pending=bool(item.get(columns.REMOVE_PENDING, False)),
                removable=entry_status == CurrentAccessStatus.ACTIVE,
                assignment_id=item.get(columns.ASSIGNMENT_ID),
                assignment_note=item.get(columns.ASSIGNMENT_NOTE),
                role_targets=list(item.get(columns.ROLE_TARGETS) or []),
                role_location=item.get(columns.ROLE_LOCATION),
            )
            for item, entry_status in self._entries(identity, columns.ROLE_ASSIGNMENTS, columns.ROLE, status)
        ]

    def get_entitlements(
        self,
        identity: IdentityRef,
        status: Optional[CurrentAccessStatus] = None
    ) -> List[CurrentAccessEntitlement]:
        return [
            CurrentAccessEntitlement(
                application_name=item['application'],
                attribute=item['attribute'],
                value=item['value'],
                status=entry_status,
                sunrise=_timestamp(item.get(columns.SUNRISE)),
                sunset=_timestamp(item.get(columns.SUNSET)),
                remove_request_pending=bool(item.get(columns.REMOVE_PENDING, False)),
                removable=entry_status == CurrentAccessStatus.ACTIVE,
                application_id=item.get('application_id'),
                entitlement_id=item.get(columns.ENTITLEMENT_ID),
                native_identity=item.get(columns.NATIVE_IDENTITY),
                account=item.get(columns.ACCOUNT),
                instance=item.get(columns.INSTANCE),
            )
            for item, entry_status in self._entries(
                identity, columns.ENTITLEMENTS, columns.ENTITLEMENT, status
            )
        ]

    def _rule_filter(self, item_type: str) -> Optional[Filter]:
        rule = selector_query_info(self.config.removal_rules.get(item_type))
        if rule.return_none:
            return in_(columns.ID, [])
        return rule.filter

    def role_rule_filter(self, identity: IdentityRef) -> Optional[Filter]:
        return self._rule_filter("role")

    def entitlement_rule_filter(self, identity: IdentityRef) -> Optional[Filter]:
        return self._rule_filter("entitlement")
