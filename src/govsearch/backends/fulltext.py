"""MeiliSearch full-text backend for roles and entitlements."""

import json
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import meilisearch

from govsearch.errors import BackendError
from govsearch.search.filters import CompositeFilter, Filter, LeafFilter, Logic, MatchMode, Op
from govsearch.search.query import QueryOptions

from .base import FullTextBackend, FullTextResult

logger = logging.getLogger(__name__)

# MeiliSearch refuses offsets past its maxTotalHits setting (1000 by default)
MAX_HITS = 1000


def _literal(value: Any) -> str:
    """Render a value as a MeiliSearch filter literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(str(value))


def to_meili_filter(f: Optional[Filter]) -> Optional[str]:
    """Translate a Filter into a MeiliSearch filter expression.

    LIKE with a START match becomes ``STARTS WITH``, other LIKE modes become
    ``CONTAINS`` (both need the index's containsFilter feature). An empty
    AND translates to None (no filter).

    Raises:
        BackendError: The filter holds a join or an empty OR, which an index cannot express
    """
    if f is None:
        return None

    if isinstance(f, CompositeFilter):
        if f.op == Logic.NOT:
            inner = to_meili_filter(f.children[0])
            return None if inner is None else f"NOT ({inner})"
        parts = [p for p in (to_meili_filter(c) for c in f.children) if p is not None]
        if not parts:
            if f.op == Logic.OR:
                raise BackendError("Empty OR filter cannot be sent to the full-text index")
            return None
        if len(parts) == 1:
            return parts[0]
        joined = f" {f.op.value.upper()} ".join(f"({p})" for p in parts)
        return joined

    return _leaf_filter(f)


def _leaf_filter(leaf: LeafFilter) -> str:
    field = leaf.property
    if leaf.op == Op.JOIN:
        raise BackendError(f"Join on '{field}' cannot be sent to the full-text index")
    if leaf.op == Op.IS_NULL:
        return f"{field} IS NULL"
    if leaf.op == Op.NOT_NULL:
        return f"{field} IS NOT NULL"
    if leaf.op == Op.IS_EMPTY:
        return f"{field} IS EMPTY"
    if leaf.op == Op.IN:
        values = ", ".join(_literal(v) for v in leaf.value)
        return f"{field} IN [{values}]"
    if leaf.op == Op.LIKE:
        if leaf.match_mode == MatchMode.EXACT:
            return f"{field} = {_literal(leaf.value)}"
        if leaf.match_mode == MatchMode.START:
            return f"{field} STARTS WITH {_literal(leaf.value)}"
        return f"{field} CONTAINS {_literal(leaf.value)}"
    if leaf.op == Op.EQ and leaf.value is None:
        return f"{field} IS NULL"
    if leaf.op == Op.NE and leaf.value is None:
        return f"{field} IS NOT NULL"

    symbol = {
        Op.EQ: "=",
        Op.NE: "!=",
        Op.LT: "<",
        Op.LE: "<=",
        Op.GT: ">",
        Op.GE: ">=",
    }[leaf.op]
    return f"{field} {symbol} {_literal(leaf.value)}"


class MeiliFullTextBackend(FullTextBackend):
    """Full-text search over one MeiliSearch index of catalog documents."""

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        index_name: str = "catalog",
        enabled: bool = True,
        client: Optional[meilisearch.Client] = None
    ):
        """
        Initialize the backend.

        Args:
            url: MeiliSearch server URL (e.g., http://localhost:7700)
            api_key: Master key for authentication (required in production)
            index_name: Index holding role and entitlement documents
            enabled: Whether keyword searches may route here
            client: Pre-built client (tests)
        """
        self.url = url
        self.index_name = index_name
        self.enabled = enabled
        self.client = client or meilisearch.Client(url, api_key)

    @classmethod
    def from_config(cls, config, client: Optional[meilisearch.Client] = None) -> "MeiliFullTextBackend":
        return cls(config.url, config.api_key, config.index, config.enabled, client)

    def is_search_enabled(self) -> bool:
        return self.enabled

    def search(self, terms: Sequence[str], options: QueryOptions) -> FullTextResult:
        """Search the index.

        Args:
            terms: Search terms, joined into one query string
            options: Filters, paging and orderings

        Returns:
            Hits as rows plus the index's total hit count

        Raises:
            BackendError: MeiliSearch failed or the filters cannot be expressed
        """
        query = " ".join(terms)
        params = self.search_params(options)
        logger.debug(f"MeiliSearch query '{query}' on {self.index_name}: {params}")

        started = time.time()
        try:
            response = self.client.index(self.index_name).search(query, params)
        except meilisearch.errors.MeilisearchError as e:
            raise BackendError(f"Full-text search failed: {e}") from e
        logger.debug(f"MeiliSearch took {(time.time() - started) * 1000:.0f} ms")

        hits = list(response.get('hits', []))
        total = response.get('totalHits', response.get('estimatedTotalHits', len(hits)))
        return FullTextResult(rows=hits, total_rows=total)

    @staticmethod
    def search_params(options: QueryOptions) -> Dict[str, Any]:
        """MeiliSearch search parameters for query options."""
        params: Dict[str, Any] = {'offset': options.first_row}
        if not options.fetch_rows:
            params['limit'] = 0
        elif options.result_limit > 0:
            params['limit'] = options.result_limit
        else:
            params['limit'] = max(0, MAX_HITS - options.first_row)

        filters = [p for p in (to_meili_filter(f) for f in options.filters) if p is not None]
        if filters:
            params['filter'] = filters[0] if len(filters) == 1 else " AND ".join(f"({p})" for p in filters)

        sort: List[str] = [
            f"{o.column}:{'asc' if o.ascending else 'desc'}" for o in options.orderings
        ]
        if sort:
            params['sort'] = sort
        return params

    def index_exists(self) -> bool:
        """Check if the catalog index exists."""
        try:
            self.client.get_index(self.index_name)
            return True
        except meilisearch.errors.MeilisearchApiError as e:
            if e.code == "index_not_found":
                return False
            raise BackendError(f"Could not read index {self.index_name}: {e}") from e

    def health_check(self) -> bool:
        """Check if MeiliSearch server is healthy."""
        try:
            health = self.client.health()
            return health.get('status') == 'available'
        except meilisearch.errors.MeilisearchError:
            return False
