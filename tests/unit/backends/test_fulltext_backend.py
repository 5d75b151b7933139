"""Tests for the MeiliSearch full-text backend."""

from unittest.mock import MagicMock

import meilisearch
import pytest

from govsearch.backends.fulltext import MAX_HITS, MeiliFullTextBackend, to_meili_filter
from govsearch.config import FullTextConfig
from govsearch.errors import BackendError
from govsearch.search.filters import (
    MatchMode,
    and_,
    eq,
    ge,
    ilike,
    in_,
    is_empty,
    is_null,
    join,
    like,
    ne,
    not_,
    or_,
)
from govsearch.search.query import Ordering, QueryOptions


class TestToMeiliFilter:
    """Test translation of filters to MeiliSearch filter expressions."""

    def test_leaves(self):
        assert to_meili_filter(eq("object_class", "Role")) == 'object_class = "Role"'
        assert to_meili_filter(ne("type", "Permission")) == 'type != "Permission"'
        assert to_meili_filter(ge("risk_score_weight", 500)) == "risk_score_weight >= 500"
        assert to_meili_filter(eq("requestable", True)) == "requestable = true"

    def test_in(self):
        assert to_meili_filter(in_("id", ["r1", "r2"])) == 'id IN ["r1", "r2"]'

    def test_like_modes(self):
        assert to_meili_filter(like("display_name", "adm", MatchMode.START)) == 'display_name STARTS WITH "adm"'
        assert to_meili_filter(ilike("display_name", "adm")) == 'display_name CONTAINS "adm"'
        assert to_meili_filter(like("value", "CN=X", MatchMode.EXACT)) == 'value = "CN=X"'

    def test_null_checks(self):
        assert to_meili_filter(is_null("sunset")) == "sunset IS NULL"
        assert to_meili_filter(is_empty("description")) == "description IS EMPTY"
        assert to_meili_filter(eq("sunset", None)) == "sunset IS NULL"
        assert to_meili_filter(ne("sunset", None)) == "sunset IS NOT NULL"

    def test_composites(self):
        f = and_(eq("type", "it"), or_(eq("a", 1), eq("b", 2)))
        assert to_meili_filter(f) == '(type = "it") AND ((a = 1) OR (b = 2))'
        assert to_meili_filter(not_(eq("requestable", True))) == "NOT (requestable = true)"

    def test_single_child_is_not_wrapped(self):
        assert to_meili_filter(and_(eq("type", "it"))) == 'type = "it"'

    def test_empty_and_is_no_filter(self):
        assert to_meili_filter(and_()) is None
        assert to_meili_filter(None) is None

    def test_empty_or_rejected(self):
        with pytest.raises(BackendError, match="Empty OR"):
            to_meili_filter(or_())

    def test_join_rejected(self):
        with pytest.raises(BackendError, match="Join"):
            to_meili_filter(join("id", "IdentityEntitlement.entitlement_id"))

    def test_quotes_escaped(self):
        assert to_meili_filter(eq("display_name", 'say "hi"')) == 'display_name = "say \\"hi\\""'


class TestSearchParams:
    """Test MeiliSearch search parameters built from query options."""

    def test_paging_filter_and_sort(self):
        ops = QueryOptions(
            filters=[eq("object_class", "Role")],
            first_row=20,
            result_limit=10,
            orderings=[Ordering("display_name")],
        )
        assert MeiliFullTextBackend.search_params(ops) == {
            'offset': 20,
            'limit': 10,
            'filter': 'object_class = "Role"',
            'sort': ['display_name:asc'],
        }

    def test_several_filters_are_anded(self):
        ops = QueryOptions(filters=[eq("a", 1), eq("b", 2)])
        assert MeiliFullTextBackend.search_params(ops)['filter'] == "(a = 1) AND (b = 2)"

    def test_unbounded_limit_stops_at_max_hits(self):
        params = MeiliFullTextBackend.search_params(QueryOptions(first_row=100))
        assert params['limit'] == MAX_HITS - 100
        assert 'filter' not in params
        assert 'sort' not in params

    def test_count_only(self):
        params = MeiliFullTextBackend.search_params(QueryOptions(result_limit=10, fetch_rows=False))
        assert params['limit'] == 0

    def test_descending_sort(self):
        ops = QueryOptions(orderings=[Ordering("risk_score_weight", ascending=False)])
        assert MeiliFullTextBackend.search_params(ops)['sort'] == ['risk_score_weight:desc']


class TestMeiliFullTextBackend:
    """Test the backend against a mocked meilisearch client."""

    @pytest.fixture
    def backend(self, mock_meili_client):
        return MeiliFullTextBackend("http://localhost:7700", index_name="catalog", client=mock_meili_client)

    def test_search(self, backend, mock_meili_client):
        index = mock_meili_client.index.return_value
        index.search.return_value = {
            'hits': [{'id': 'r3', 'display_name': 'Admin Business', 'object_class': 'Role'}],
            'estimatedTotalHits': 7,
        }

        result = backend.search(["admin", "business"], QueryOptions(result_limit=5))

        mock_meili_client.index.assert_called_with("catalog")
        index.search.assert_called_once_with("admin business", {'offset': 0, 'limit': 5})
        assert result.rows == [{'id': 'r3', 'display_name': 'Admin Business', 'object_class': 'Role'}]
        assert result.total_rows == 7

    def test_exhaustive_total_preferred(self, backend, mock_meili_client):
        mock_meili_client.index.return_value.search.return_value = {
            'hits': [], 'totalHits': 12, 'estimatedTotalHits': 10,
        }
        assert backend.search(["x"], QueryOptions()).total_rows == 12

    def test_search_failure(self, backend, mock_meili_client):
        error = meilisearch.errors.MeilisearchError("connection refused")
        mock_meili_client.index.return_value.search.side_effect = error

        with pytest.raises(BackendError, match="Full-text search failed") as exc_info:
            backend.search(["admin"], QueryOptions())
        assert exc_info.value.__cause__ is error

    def test_untranslatable_filter(self, backend, mock_meili_client):
        with pytest.raises(BackendError):
            backend.search(["admin"], QueryOptions(filters=[join("id", "Identity.assigned_roles")]))
        mock_meili_client.index.return_value.search.assert_not_called()

    def test_index_exists(self, backend, mock_meili_client):
        assert backend.index_exists()

        response = MagicMock(
            status_code=404,
            text='{"message": "Index `catalog` not found.", "code": "index_not_found", '
                 '"type": "invalid_request", "link": "https://docs.meilisearch.com"}',
        )
        mock_meili_client.get_index.side_effect = meilisearch.errors.MeilisearchApiError("not found", response)
        assert not backend.index_exists()

    def test_health_check(self, backend, mock_meili_client):
        assert backend.health_check()
        mock_meili_client.health.side_effect = meilisearch.errors.MeilisearchError("down")
        assert not backend.health_check()

    def test_from_config(self, mock_meili_client):
        config = FullTextConfig(url="http://meili:7700", index="roles", enabled=False)
        backend = MeiliFullTextBackend.from_config(config, client=mock_meili_client)
        assert backend.index_name == "roles"
        assert backend.is_search_enabled() is False
        assert backend.client is mock_meili_client
