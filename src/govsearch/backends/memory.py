"""In-memory catalog store over a YAML or JSON catalog file.

The catalog file maps catalog object types to lists of objects:

    Role:
      - {id: r1, display_name: Admin, type: it, permits: [r2]}
    Entitlement:
      - {id: e1, display_name: Domain Admins, application: {id: a1, name: AD}}
    Identity:
      - {id: u1, name: alice, assigned_roles: [r1], composite_score: 720}
"""

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Sequence, Tuple

import yaml

from govsearch.errors import BackendError
from govsearch.search.filters import and_, resolve_joins
from govsearch.search.matcher import MapMatcher, get_path, resolve_path
from govsearch.search.query import Ordering, QueryOptions

from .base import CatalogStore

logger = logging.getLogger(__name__)


def _order_key(ordering: Ordering):
    def key(obj: Mapping) -> Any:
        value = get_path(obj, ordering.column)
        if value is None:
            return (0, "")
        if ordering.ignore_case and isinstance(value, str):
            value = value.casefold()
        return (1, value)
    return key


def select_rows(
    objects: Iterable[Mapping],
    options: QueryOptions,
    columns: Sequence[str]
) -> Iterator[Tuple[Any, ...]]:
    """Order, page and project objects already known to match the options' filters.

    Rows without a value in an ordering column sort first.
    """
    if not options.fetch_rows:
        return iter(())

    ordered = list(objects)
    for ordering in reversed(options.orderings):
        ordered.sort(key=_order_key(ordering), reverse=not ordering.ascending)

    end = options.first_row + options.result_limit if options.result_limit > 0 else None
    page = ordered[options.first_row:end]
    return (tuple(get_path(obj, column) for column in columns) for obj in page)


class MemoryCatalogStore(CatalogStore):
    """Catalog store holding every object in memory, filtered with MapMatcher."""

    def __init__(self, objects: Dict[str, List[Dict[str, Any]]]):
        self.objects = {object_type: list(items or []) for object_type, items in objects.items()}

    @classmethod
    def from_file(cls, path: Path) -> "MemoryCatalogStore":
        """Load a catalog file (.json, otherwise YAML).

        Raises:
            FileNotFoundError: If the catalog file doesn't exist
            BackendError: If the file does not hold a mapping of object lists
        """
        if not path.exists():
            raise FileNotFoundError(f"Catalog file not found: {path}")

        with open(path) as f:
            data = json.load(f) if path.suffix.lower() == '.json' else yaml.safe_load(f)

        if not isinstance(data, dict):
            raise BackendError(f"Catalog file {path} must map object types to lists of objects")
        logger.debug(f"Loaded catalog {path}: {', '.join(f'{k}={len(v or [])}' for k, v in data.items())}")
        return cls(data)

    def join_values(self, object_type: str, path: str) -> Iterator[Any]:
        for obj in self.objects.get(object_type, []):
            yield from resolve_path(obj, path)

    def matching(self, object_type: str, options: QueryOptions) -> List[Dict[str, Any]]:
        try:
            matcher = MapMatcher(resolve_joins(and_(*options.filters), self.join_values))
            return [obj for obj in self.objects.get(object_type, []) if matcher.matches(obj)]
        except ValueError as e:
            raise BackendError(str(e)) from e

    def count(self, object_type: str, options: QueryOptions) -> int:
        return len(self.matching(object_type, options))

    def search(
        self,
        object_type: str,
        options: QueryOptions,
        columns: Sequence[str]
    ) -> Iterator[Tuple[Any, ...]]:
        return select_rows(self.matching(object_type, options), options, columns)
