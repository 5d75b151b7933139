"""Search orchestration over the governance catalog.

Searchers live in their own modules (roles, entitlements, combined, facade);
only the value types are re-exported here.
"""

from .filters import and_, eq, ilike, in_, not_, or_, parse_filter, parse_filters, describe_filter
from .options import (
    CurrentAccessStatus,
    IdentityRef,
    ObjectType,
    SearchMode,
    SearchOptions,
    SearchType,
    TypeOptions,
)
from .query import QueryInfo, QueryOptions
from .results import PopulationStatistics, SearchResults

__all__ = [
    # Filters
    "and_",
    "eq",
    "ilike",
    "in_",
    "not_",
    "or_",
    "parse_filter",
    "parse_filters",
    "describe_filter",
    # Options
    "CurrentAccessStatus",
    "IdentityRef",
    "ObjectType",
    "SearchMode",
    "SearchOptions",
    "SearchType",
    "TypeOptions",
    # Query
    "QueryInfo",
    "QueryOptions",
    # Results
    "PopulationStatistics",
    "SearchResults",
]
