"""Catalog store backed by Qdrant point payloads.

Every catalog object is one point in a single collection; its payload is
the object itself plus a ``catalog_type`` discriminator. Vectors are never
read. Conditions Qdrant can evaluate exactly run server side; the complete
filter is then re-checked with MapMatcher so both sides agree on
case-insensitive and LIKE semantics.
"""

import logging
import time
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from qdrant_client import QdrantClient
from qdrant_client.http import models
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from govsearch.errors import BackendError
from govsearch.search.filters import (
    CompositeFilter,
    Filter,
    LeafFilter,
    Logic,
    Op,
    and_,
    has_join,
    resolve_joins,
)
from govsearch.search.matcher import MapMatcher, resolve_path
from govsearch.search.query import QueryOptions

from .base import CatalogStore
from .memory import select_rows

logger = logging.getLogger(__name__)

CATALOG_TYPE_KEY = "catalog_type"
SCROLL_BATCH_SIZE = 256

_RANGE_ARGS = {Op.LT: "lt", Op.LE: "lte", Op.GT: "gt", Op.GE: "gte"}


def to_qdrant_condition(f: Filter) -> Optional[Any]:
    """Translate a filter to a Qdrant condition, or None when it is not exactly expressible.

    Case-insensitive leaves, LIKE, null checks and comparisons against None
    have no exact Qdrant equivalent and are left to in-memory matching.
    """
    if isinstance(f, CompositeFilter):
        children = [to_qdrant_condition(c) for c in f.children]
        if any(c is None for c in children):
            return None
        if f.op == Logic.AND:
            return models.Filter(must=children)
        if f.op == Logic.OR:
            return models.Filter(should=children) if children else None
        return models.Filter(must_not=children)
    return _leaf_condition(f)


def _leaf_condition(leaf: LeafFilter) -> Optional[Any]:
    if leaf.ignore_case and leaf.op != Op.IN and isinstance(leaf.value, str):
        return None
    if leaf.op == Op.EQ and leaf.value is not None:
        return models.FieldCondition(key=leaf.property, match=models.MatchValue(value=leaf.value))
    if leaf.op == Op.NE and leaf.value is not None:
        return models.Filter(must_not=[
            models.FieldCondition(key=leaf.property, match=models.MatchValue(value=leaf.value))
        ])
    if leaf.op == Op.IN and not leaf.ignore_case and leaf.value:
        return models.FieldCondition(key=leaf.property, match=models.MatchAny(any=list(leaf.value)))
    if leaf.op in _RANGE_ARGS and isinstance(leaf.value, (int, float)) and not isinstance(leaf.value, bool):
        return models.FieldCondition(
            key=leaf.property,
            range=models.Range(**{_RANGE_ARGS[leaf.op]: leaf.value})
        )
    return None


def build_scroll_filter(object_type: str, filters: Sequence[Filter]) -> Tuple[models.Filter, bool]:
    """Server-side filter for a query and whether it is exact.

    Only top-level conjuncts are translated; each one Qdrant cannot
    express makes the result inexact.
    """
    must: List[Any] = [
        models.FieldCondition(key=CATALOG_TYPE_KEY, match=models.MatchValue(value=object_type))
    ]
    exact = True
    for f in filters:
        conjuncts = f.children if isinstance(f, CompositeFilter) and f.op == Logic.AND else (f,)
        for conjunct in conjuncts:
            condition = to_qdrant_condition(conjunct)
            if condition is None:
                exact = False
            else:
                must.append(condition)
    return models.Filter(must=must), exact


class QdrantCatalogStore(CatalogStore):
    """Catalog store over a Qdrant collection of payload-only points."""

    def __init__(self, client: QdrantClient, collection_name: str):
        self.client = client
        self.collection_name = collection_name

    def count(self, object_type: str, options: QueryOptions) -> int:
        filters = self._resolve_joins(options.filters)
        scroll_filter, exact = build_scroll_filter(object_type, filters)
        if exact:
            try:
                result = self.client.count(
                    collection_name=self.collection_name,
                    count_filter=scroll_filter,
                    exact=True,
                )
            except (UnexpectedResponse, ResponseHandlingException) as e:
                raise BackendError(f"Qdrant count on {self.collection_name} failed: {e}") from e
            return result.count
        return len(self._matching(object_type, filters))

    def search(
        self,
        object_type: str,
        options: QueryOptions,
        columns: Sequence[str]
    ) -> Iterator[Tuple[Any, ...]]:
        if not options.fetch_rows:
            return iter(())
        filters = self._resolve_joins(options.filters)
        return select_rows(self._matching(object_type, filters), options, columns)

    def _resolve_joins(self, filters: List[Filter]) -> List[Filter]:
        """Replace joins with IN filters over the joined objects' values."""
        if not has_join(filters):
            return list(filters)
        try:
            return [resolve_joins(f, self._join_values) for f in filters]
        except ValueError as e:
            raise BackendError(str(e)) from e

    def _join_values(self, object_type: str, path: str) -> Iterator[Any]:
        scroll_filter, _ = build_scroll_filter(object_type, [])
        for payload in self._scroll(scroll_filter):
            yield from resolve_path(payload, path)

    def _matching(self, object_type: str, filters: List[Filter]) -> List[Dict[str, Any]]:
        scroll_filter, exact = build_scroll_filter(object_type, filters)
        matcher = None if exact else MapMatcher(and_(*filters))

        started = time.time()
        payloads = []
        for payload in self._scroll(scroll_filter):
            if matcher is None or matcher.matches(payload):
                payloads.append(payload)
        logger.debug(
            f"Scrolled {len(payloads)} {object_type} objects in {(time.time() - started) * 1000:.0f} ms "
            f"(server filter exact: {exact})"
        )
        return payloads

    def _scroll(self, scroll_filter: models.Filter) -> Iterator[Dict[str, Any]]:
        offset = None
        while True:
            try:
                points, offset = self.client.scroll(
                    collection_name=self.collection_name,
                    scroll_filter=scroll_filter,
                    with_vectors=False,
                    with_payload=True,
                    limit=SCROLL_BATCH_SIZE,
                    offset=offset,
                )
            except (UnexpectedResponse, ResponseHandlingException) as e:
                raise BackendError(f"Qdrant scroll on {self.collection_name} failed: {e}") from e

            for point in points:
                yield dict(point.payload or {})

            if not points or offset is None:
                break
