"""Search result types, sort keys and page trimming."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from . import columns


Row = Dict[str, Any]
SortKey = Callable[[Row], Any]


@dataclass(order=True, frozen=True)
class PopulationStatistics:
    """How many identities of a population hold an item.

    Ordered by ``count`` so identity searches can sort on it.
    """
    count: int
    total: int = field(compare=False)
    has_high_risk: bool = field(default=False, compare=False)

    @property
    def percent(self) -> int:
        """Whole percentage of the population holding the item (0 for an empty population)."""
        if self.total <= 0:
            return 0
        return int(self.count * 100 / self.total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "count": self.count,
            "has_high_risk": self.has_high_risk,
            "percent": self.percent,
        }


@dataclass
class SearchResults:
    """One page of rows plus the total number of matches.

    ``total_result_count`` never exceeds the search's max result count.
    """
    rows: List[Row] = field(default_factory=list)
    total_result_count: int = 0

    @classmethod
    def empty(cls) -> "SearchResults":
        return cls([], 0)

    def __len__(self) -> int:
        return len(self.rows)


def keyword_sort_key(row: Row) -> Any:
    """Display name, case-insensitive; rows without one sort first."""
    value = row.get(columns.DISPLAY_NAME)
    if value is None:
        return (0, "")
    return (1, str(value).casefold())


def identity_sort_key(row: Row) -> Any:
    """Population count; rows without statistics sort first."""
    stats = row.get(columns.POP_STATS)
    if stats is None:
        return (0, 0)
    return (1, stats.count)


def sort_rows(rows: List[Row], key: SortKey, reverse: bool = False) -> List[Row]:
    """Stable ascending sort, then a full reversal when asked.

    Reversal happens after sorting (not ``sorted(reverse=True)``) so ties
    keep the reversed order of the ascending sort.
    """
    ordered = sorted(rows, key=key)
    if reverse:
        ordered.reverse()
    return ordered


def trim_results(rows: List[Row], start: int, limit: int, max_result_count: int) -> List[Row]:
    """Slice the page ``[start, start + limit)`` out of rows.

    A limit of 0 means "to the end". The end index never passes
    max_result_count, so a caller holding max_result_count rows cannot
    produce a last page beyond the cap.
    """
    if start >= len(rows):
        return []
    if limit <= 0:
        limit = len(rows)
    end = min(start + limit, len(rows))
    end = min(end, max_result_count)
    return rows[start:end]
