"""Items an identity currently holds or has requested."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .options import CurrentAccessStatus


@dataclass(kw_only=True)
class CurrentAccess:
    """Common state of a held or requested item."""
    status: CurrentAccessStatus = CurrentAccessStatus.ACTIVE
    sunrise: Optional[datetime] = None
    sunset: Optional[datetime] = None
    remove_request_pending: bool = False
    removable: bool = True

    @property
    def displayable_status(self) -> str:
        return self.status.value.capitalize()


@dataclass(kw_only=True)
class CurrentAccessRole(CurrentAccess):
    """A role assignment, detected role, or pending role request."""
    role_id: str
    assignment_id: Optional[str] = None
    assignment_note: Optional[str] = None
    role_targets: List[dict] = field(default_factory=list)
    role_location: Optional[str] = None


@dataclass(kw_only=True)
class CurrentAccessEntitlement(CurrentAccess):
    """An entitlement held on an application account.

    ``entitlement_id`` is set when the holder already knows the catalog
    entitlement; otherwise it is resolved from application, attribute and
    value, and may not exist in the catalog at all.
    """
    application_name: str
    attribute: str
    value: str
    application_id: Optional[str] = None
    entitlement_id: Optional[str] = None
    native_identity: Optional[str] = None
    account: Optional[str] = None
    instance: Optional[str] = None
