"""Query scoping and backend query options."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

from .filters import Filter


class QueryScope(Enum):
    """The three outcomes of resolving an authorization scope."""
    NO_RESTRICTION = "no_restriction"
    FILTER = "filter"
    RETURN_NONE = "return_none"


@dataclass(frozen=True)
class QueryInfo:
    """Result of scoping a query for a requester.

    NO_RESTRICTION and RETURN_NONE both carry no filter, and they mean
    opposite things: the first runs the query unrestricted, the second
    must short-circuit to empty results without querying. Check
    ``return_none`` first, never ``filter is None``.
    """
    scope: QueryScope
    filter: Optional[Filter] = None

    @classmethod
    def no_restriction(cls) -> "QueryInfo":
        return cls(QueryScope.NO_RESTRICTION)

    @classmethod
    def restrict(cls, f: Optional[Filter]) -> "QueryInfo":
        """Restrict to a filter; a None filter means no restriction."""
        if f is None:
            return cls.no_restriction()
        return cls(QueryScope.FILTER, f)

    @classmethod
    def nothing(cls) -> "QueryInfo":
        return cls(QueryScope.RETURN_NONE)

    @property
    def return_none(self) -> bool:
        return self.scope == QueryScope.RETURN_NONE


@dataclass(frozen=True)
class Ordering:
    """Sort column for a backend query."""
    column: str
    ascending: bool = True
    ignore_case: bool = True


@dataclass
class QueryOptions:
    """Options for one backend count/search call.

    ``result_limit`` of 0 means unbounded. ``fetch_rows`` False asks for the
    count only: search() returns no rows.
    """
    filters: List[Filter] = field(default_factory=list)
    first_row: int = 0
    result_limit: int = 0
    orderings: List[Ordering] = field(default_factory=list)
    fetch_rows: bool = True

    def copy(self, **changes) -> "QueryOptions":
        """Copy with independent lists, applying any field changes."""
        copied = replace(self, filters=list(self.filters), orderings=list(self.orderings))
        return replace(copied, **changes) if changes else copied

    def add(self, *filters: Optional[Filter]) -> "QueryOptions":
        """Append filters in place, skipping None. Returns self."""
        self.filters.extend(f for f in filters if f is not None)
        return self

    def paged(self, first_row: int, result_limit: int) -> "QueryOptions":
        return self.copy(first_row=first_row, result_limit=result_limit)
