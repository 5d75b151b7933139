"""Result formatters for search output."""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from . import columns
from .results import PopulationStatistics, Row, SearchResults


def format_value(value: Any) -> Any:
    """Convert a row value to something JSON can carry."""
    if isinstance(value, PopulationStatistics):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: format_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [format_value(v) for v in value]
    return value


def row_to_dict(row: Row) -> Dict[str, Any]:
    return {key: format_value(value) for key, value in row.items()}


def format_json_results(
    terms: Sequence[str],
    search_type: str,
    results: SearchResults,
    start: int = 0,
    limit: int = 0
) -> str:
    """Format search results as JSON.

    Output structure:
        {
            "terms": ["admin"],
            "search_type": "Keyword",
            "total_results": 23,
            "start": 0,
            "limit": 10,
            "results": [{"id": "r1", "display_name": "Admin", "object_type": "Role", ...}]
        }
    """
    output = {
        "terms": list(terms),
        "search_type": search_type,
        "total_results": results.total_result_count,
        "start": start,
        "limit": limit,
        "results": [row_to_dict(row) for row in results.rows],
    }
    return json.dumps(output, indent=2)


def format_summary(routing: Dict[str, Any], filter_descriptions: Optional[Dict[str, str]] = None) -> str:
    """Summary of a search plan for the explain command."""
    lines = ["Search plan:"]
    for key, value in routing.items():
        lines.append(f"  {key}: {value}")
    for object_type, description in (filter_descriptions or {}).items():
        lines.append(f"  {object_type} filter: {description}")
    return "\n".join(lines)


TABLE_COLUMNS = ["#", "Type", "Name", "Id", "Application", "Population", "Status"]


def table_cells(position: int, row: Row) -> List[str]:
    """Cells of one result row for the TABLE_COLUMNS layout."""
    name = str(row.get(columns.DISPLAY_NAME) or row.get(columns.VALUE) or "")
    if row.get(columns.PERMITTED_ROLE):
        name = f"{name} (permitted)"

    population = ""
    stats = row.get(columns.POP_STATS)
    if stats is not None:
        population = f"{stats.count}/{stats.total} ({stats.percent}%)"
        if stats.has_high_risk:
            population += " high risk"

    return [
        str(position),
        str(format_value(row.get(columns.OBJECT_TYPE)) or ""),
        name,
        str(row.get(columns.ID) or ""),
        str(row.get(columns.APPLICATION_NAME) or ""),
        population,
        str(row.get(columns.DISPLAYABLE_STATUS) or ""),
    ]


def format_page_summary(results: SearchResults, start: int = 0) -> str:
    """Example: "Showing 1-10 of 23 results"."""
    shown = len(results.rows)
    total = results.total_result_count
    if not shown:
        return f"No results (total {total})"
    return f"Showing {start + 1}-{start + shown} of {total} result{'s' if total != 1 else ''}"
