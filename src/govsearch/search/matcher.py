"""In-memory evaluation of catalog filters.

Current-access entries that cannot be resolved against the catalog are
matched here, against a flattened key/value view, with the same Filter
objects the backends receive. The memory catalog store uses it too.
"""

from collections.abc import Mapping
from typing import Any, List, Optional

from .filters import CompositeFilter, Filter, LeafFilter, Logic, MatchMode, Op


def resolve_path(mapping: Mapping, path: str) -> List[Any]:
    """Return every value reachable at a dotted path.

    An exact key wins over traversal, so flattened views keyed by
    ``"application.name"`` resolve directly. Lists along the path fan out:
    ``assigned_roles.id`` over ``{"assigned_roles": [{"id": "a"}, {"id": "b"}]}``
    yields ``["a", "b"]``. A missing path yields ``[]``.
    """
    if path in mapping:
        return _expand(mapping[path])

    head, _, rest = path.partition('.')
    if not rest or head not in mapping:
        return []

    values = []
    for item in _expand(mapping[head]):
        if isinstance(item, Mapping):
            values.extend(resolve_path(item, rest))
    return values


def get_path(mapping: Mapping, path: str) -> Any:
    """Return the raw value at a dotted path, or None.

    Unlike resolve_path, lists are returned as stored; used for column
    projection.
    """
    if path in mapping:
        return mapping[path]
    head, _, rest = path.partition('.')
    if not rest:
        return None
    value = mapping.get(head)
    if isinstance(value, Mapping):
        return get_path(value, rest)
    return None


def _expand(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


class MapMatcher:
    """Evaluate a Filter against mappings.

    Any-match semantics apply to multi-valued properties: ``eq("roles", "x")``
    matches when any value equals ``"x"``; NE is the negation of EQ.
    Joins cannot be evaluated and raise ValueError.

    Example:
        >>> MapMatcher(eq("application.name", "AD")).matches({"application.name": "AD"})
        True
    """

    def __init__(self, filter: Optional[Filter]):
        self.filter = filter

    def matches(self, mapping: Mapping) -> bool:
        if self.filter is None:
            return True
        return self._evaluate(self.filter, mapping)

    def _evaluate(self, f: Filter, mapping: Mapping) -> bool:
        if isinstance(f, CompositeFilter):
            if f.op == Logic.AND:
                return all(self._evaluate(c, mapping) for c in f.children)
            if f.op == Logic.OR:
                return any(self._evaluate(c, mapping) for c in f.children)
            return not self._evaluate(f.children[0], mapping)
        return self._evaluate_leaf(f, mapping)

    def _evaluate_leaf(self, leaf: LeafFilter, mapping: Mapping) -> bool:
        if leaf.op == Op.JOIN:
            raise ValueError(f"Join on '{leaf.property}' cannot be evaluated in memory")

        values = resolve_path(mapping, leaf.property)
        present = [v for v in values if v is not None]

        if leaf.op == Op.IS_NULL:
            return not present
        if leaf.op == Op.NOT_NULL:
            return bool(present)
        if leaf.op == Op.IS_EMPTY:
            return not present or all(v == "" for v in present)
        if leaf.op == Op.EQ:
            return self._equals(present, leaf.value, leaf.ignore_case)
        if leaf.op == Op.NE:
            return not self._equals(present, leaf.value, leaf.ignore_case)
        if leaf.op == Op.IN:
            return any(self._equals(present, v, leaf.ignore_case) for v in leaf.value)
        if leaf.op == Op.LIKE:
            return any(_like(v, leaf.value, leaf.match_mode, leaf.ignore_case) for v in present)
        return any(_compare(leaf.op, v, leaf.value) for v in present)

    @staticmethod
    def _equals(values: List[Any], expected: Any, ignore_case: bool) -> bool:
        if expected is None:
            return not values
        if ignore_case and isinstance(expected, str):
            expected = expected.casefold()
            return any(isinstance(v, str) and v.casefold() == expected for v in values)
        return any(v == expected for v in values)


def _like(value: Any, pattern: str, mode: MatchMode, ignore_case: bool) -> bool:
    if value is None or pattern is None:
        return False
    text = str(value)
    if ignore_case:
        text = text.casefold()
        pattern = pattern.casefold()
    if mode == MatchMode.START:
        return text.startswith(pattern)
    if mode == MatchMode.END:
        return text.endswith(pattern)
    if mode == MatchMode.EXACT:
        return text == pattern
    return pattern in text


def _compare(op: Op, value: Any, bound: Any) -> bool:
    try:
        if op == Op.LT:
            return value < bound
        if op == Op.LE:
            return value <= bound
        if op == Op.GT:
            return value > bound
        return value >= bound
    except TypeError:
        return False
