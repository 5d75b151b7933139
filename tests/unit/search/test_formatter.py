"""Tests for search result formatting."""

import json
from datetime import datetime

from govsearch.search.formatter import (
    TABLE_COLUMNS,
    format_json_results,
    format_page_summary,
    format_summary,
    format_value,
    row_to_dict,
    table_cells,
)
from govsearch.search.options import ObjectType
from govsearch.search.results import PopulationStatistics, SearchResults


class TestFormatValue:
    """Test conversion of row values for JSON."""

    def test_population_statistics(self):
        assert format_value(PopulationStatistics(1, 2)) == {
            "total": 2, "count": 1, "has_high_risk": False, "percent": 50,
        }

    def test_enum_and_datetime(self):
        assert format_value(ObjectType.ROLE) == "Role"
        assert format_value(datetime(2026, 1, 5, 9, 30)) == "2026-01-05T09:30:00"

    def test_containers(self):
        assert format_value([ObjectType.ENTITLEMENT, {"k": ObjectType.ROLE}]) == ["Entitlement", {"k": "Role"}]

    def test_row_to_dict(self):
        row = {"id": "r1", "object_type": ObjectType.ROLE, "risk_score_weight": 100}
        assert row_to_dict(row) == {"id": "r1", "object_type": "Role", "risk_score_weight": 100}


class TestFormatJsonResults:
    """Test the JSON results document."""

    def test_structure(self):
        results = SearchResults(
            [{"id": "r1", "display_name": "Sales", "object_type": ObjectType.ROLE,
              "pop_stats": PopulationStatistics(2, 3, True)}],
            23,
        )
        output = json.loads(format_json_results(["sales"], "Keyword", results, 0, 10))

        assert output["terms"] == ["sales"]
        assert output["search_type"] == "Keyword"
        assert output["total_results"] == 23
        assert output["start"] == 0
        assert output["limit"] == 10
        assert output["results"][0]["object_type"] == "Role"
        assert output["results"][0]["pop_stats"]["percent"] == 66

    def test_empty(self):
        output = json.loads(format_json_results([], "Identity", SearchResults.empty()))
        assert output["results"] == []
        assert output["total_results"] == 0


class TestTextFormatting:
    """Test table cells and summaries."""

    def test_table_cells(self):
        row = {
            "id": "e1", "display_name": "Domain Admins", "object_type": ObjectType.ENTITLEMENT,
            "application.name": "AD", "pop_stats": PopulationStatistics(3, 3, True),
            "displayable_status": "Active",
        }
        cells = table_cells(1, row)
        assert len(cells) == len(TABLE_COLUMNS)
        assert cells == ["1", "Entitlement", "Domain Admins", "e1", "AD", "3/3 (100%) high risk", "Active"]

    def test_permitted_role_marked(self):
        cells = table_cells(2, {"id": "r12", "display_name": "Admin Tools", "permitted_role": True})
        assert cells[2] == "Admin Tools (permitted)"
        assert cells[1] == ""

    def test_unresolved_entry_uses_value(self):
        assert table_cells(1, {"value": "CN=Legacy"})[2] == "CN=Legacy"

    def test_page_summary(self):
        results = SearchResults([{"id": "a"}, {"id": "b"}], 23)
        assert format_page_summary(results, 10) == "Showing 11-12 of 23 results"
        assert format_page_summary(SearchResults([{"id": "a"}], 1)) == "Showing 1-1 of 1 result"
        assert format_page_summary(SearchResults([], 4), 10) == "No results (total 4)"

    def test_summary(self):
        text = format_summary({"route": "catalog store"}, {"Role": "type in [business]"})
        assert text.splitlines() == ["Search plan:", "  route: catalog store", "  Role filter: type in [business]"]
