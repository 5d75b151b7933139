"""Tests for the Qdrant catalog store."""

from unittest.mock import MagicMock

import pytest
from qdrant_client.http import models
from qdrant_client.http.exceptions import ResponseHandlingException

from govsearch.backends.qdrant_store import (
    CATALOG_TYPE_KEY,
    SCROLL_BATCH_SIZE,
    QdrantCatalogStore,
    build_scroll_filter,
    to_qdrant_condition,
)
from govsearch.errors import BackendError
from govsearch.search.filters import and_, eq, ge, ilike, in_, join, ne, or_
from govsearch.search.query import Ordering, QueryOptions


def point(payload):
    return MagicMock(payload=payload)


def match(key, value):
    return models.FieldCondition(key=key, match=models.MatchValue(value=value))


class TestToQdrantCondition:
    """Only conditions Qdrant evaluates exactly are translated."""

    def test_eq(self):
        assert to_qdrant_condition(eq("type", "it")) == match("type", "it")

    def test_ne(self):
        assert to_qdrant_condition(ne("type", "it")) == models.Filter(must_not=[match("type", "it")])

    def test_in(self):
        condition = to_qdrant_condition(in_("id", ["r1", "r2"]))
        assert condition == models.FieldCondition(key="id", match=models.MatchAny(any=["r1", "r2"]))
        assert to_qdrant_condition(in_("id", [])) is None

    def test_range(self):
        condition = to_qdrant_condition(ge("risk_score_weight", 500))
        assert condition == models.FieldCondition(key="risk_score_weight", range=models.Range(gte=500))

    def test_inexact_leaves(self):
        assert to_qdrant_condition(ilike("display_name", "adm")) is None
        assert to_qdrant_condition(eq("sunset", None)) is None

    def test_composites(self):
        assert to_qdrant_condition(or_(eq("a", "x"), eq("b", "y"))) == models.Filter(
            should=[match("a", "x"), match("b", "y")]
        )
        assert to_qdrant_condition(and_(eq("a", "x"), ilike("b", "y"))) is None

    def test_build_scroll_filter_splits_top_level_and(self):
        scroll_filter, exact = build_scroll_filter(
            "Role", [and_(eq("type", "business"), ilike("display_name", "adm"))]
        )
        assert scroll_filter == models.Filter(must=[match(CATALOG_TYPE_KEY, "Role"), match("type", "business")])
        assert exact is False

    def test_build_scroll_filter_exact(self):
        _, exact = build_scroll_filter("Role", [eq("type", "it")])
        assert exact is True


class TestQdrantCatalogStore:
    """Test count and search against a mocked QdrantClient."""

    @pytest.fixture
    def store(self, mock_qdrant_client):
        return QdrantCatalogStore(mock_qdrant_client, "catalog")

    def test_exact_count_uses_count_api(self, store, mock_qdrant_client):
        mock_qdrant_client.count.return_value = MagicMock(count=3)

        assert store.count("Role", QueryOptions([eq("type", "it")])) == 3

        kwargs = mock_qdrant_client.count.call_args.kwargs
        assert kwargs["collection_name"] == "catalog"
        assert kwargs["exact"] is True
        assert kwargs["count_filter"] == models.Filter(must=[match(CATALOG_TYPE_KEY, "Role"), match("type", "it")])
        mock_qdrant_client.scroll.assert_not_called()

    def test_inexact_count_matches_in_memory(self, store, mock_qdrant_client):
        mock_qdrant_client.scroll.return_value = (
            [point({"id": "r3", "display_name": "Admin Business"}), point({"id": "r1", "display_name": "Sales"})],
            None,
        )
        assert store.count("Role", QueryOptions([ilike("display_name", "adm")])) == 1
        mock_qdrant_client.count.assert_not_called()

    def test_search_pages_through_scroll(self, store, mock_qdrant_client):
        mock_qdrant_client.scroll.side_effect = [
            ([point({"id": "r2", "display_name": "Staff"}), point({"id": "r1", "display_name": "admin"})], "next"),
            ([point({"id": "r3", "display_name": "Sales"})], None),
        ]
        ops = QueryOptions(orderings=[Ordering("display_name")], first_row=1, result_limit=2)

        rows = list(store.search("Role", ops, ["id", "display_name"]))

        assert rows == [("r3", "Sales"), ("r2", "Staff")]
        first, second = mock_qdrant_client.scroll.call_args_list
        assert first.kwargs["offset"] is None
        assert first.kwargs["with_vectors"] is False
        assert first.kwargs["limit"] == SCROLL_BATCH_SIZE
        assert second.kwargs["offset"] == "next"

    def test_count_only_search_skips_scroll(self, store, mock_qdrant_client):
        assert list(store.search("Role", QueryOptions(fetch_rows=False), ["id"])) == []
        mock_qdrant_client.scroll.assert_not_called()

    def test_join_resolved_from_joined_type(self, store, mock_qdrant_client):
        payloads = {
            "IdentityEntitlement": [point({"identity": {"id": "u1"}, "entitlement_id": "e1"})],
            "Entitlement": [point({"id": "e1", "display_name": "Domain Admins"})],
        }

        def scroll(collection_name, scroll_filter, **kwargs):
            return payloads[scroll_filter.must[0].match.value], None

        mock_qdrant_client.scroll.side_effect = scroll
        ops = QueryOptions([join("id", "IdentityEntitlement.entitlement_id")])

        rows = list(store.search("Entitlement", ops, ["id"]))

        assert rows == [("e1",)]
        entitlement_filter = mock_qdrant_client.scroll.call_args.kwargs["scroll_filter"]
        assert models.FieldCondition(key="id", match=models.MatchAny(any=["e1"])) in entitlement_filter.must

    def test_scroll_failure(self, store, mock_qdrant_client):
        mock_qdrant_client.scroll.side_effect = ResponseHandlingException(Exception("timeout"))
        with pytest.raises(BackendError, match="scroll on catalog failed"):
            list(store.search("Role", QueryOptions(), ["id"]))

    def test_count_failure(self, store, mock_qdrant_client):
        mock_qdrant_client.count.side_effect = ResponseHandlingException(Exception("timeout"))
        with pytest.raises(BackendError, match="count on catalog failed"):
            store.count("Role", QueryOptions([eq("type", "it")]))
