"""Catalog filter predicates and the filter DSL.

One predicate representation is shared by every consumer: the relational
catalog store, the full-text index and the in-memory matcher used for
current-access entries the catalog cannot resolve. Backends translate it
(see govsearch.backends), they never receive anything else.

Filters are immutable trees of LeafFilter and CompositeFilter nodes built
with the factory functions below:

    and_(eq("type", "it"), ignore_case(like("display_name", "adm")))
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple, Union


class Op(str, Enum):
    """Leaf operators."""
    EQ = "eq"
    NE = "ne"
    LT = "lt"
    LE = "le"
    GT = "gt"
    GE = "ge"
    IN = "in"
    LIKE = "like"
    IS_NULL = "is_null"
    NOT_NULL = "not_null"
    IS_EMPTY = "is_empty"
    JOIN = "join"


class Logic(str, Enum):
    """Composite operators."""
    AND = "and"
    OR = "or"
    NOT = "not"


class MatchMode(str, Enum):
    """Where a LIKE value must appear in the field."""
    START = "start"
    ANYWHERE = "anywhere"
    END = "end"
    EXACT = "exact"


@dataclass(frozen=True)
class LeafFilter:
    """A single property comparison.

    For JOIN, ``value`` holds the joined property (``"Identity.id"``).
    For IN, ``value`` is a tuple.
    """
    op: Op
    property: str
    value: Any = None
    ignore_case: bool = False
    match_mode: MatchMode = MatchMode.ANYWHERE


@dataclass(frozen=True)
class CompositeFilter:
    """AND / OR / NOT over child filters. NOT has exactly one child."""
    op: Logic
    children: Tuple["Filter", ...] = ()


Filter = Union[LeafFilter, CompositeFilter]


# Leaf factories

def eq(prop: str, value: Any) -> LeafFilter:
    return LeafFilter(Op.EQ, prop, value)


def ne(prop: str, value: Any) -> LeafFilter:
    return LeafFilter(Op.NE, prop, value)


def lt(prop: str, value: Any) -> LeafFilter:
    return LeafFilter(Op.LT, prop, value)


def le(prop: str, value: Any) -> LeafFilter:
    return LeafFilter(Op.LE, prop, value)


def gt(prop: str, value: Any) -> LeafFilter:
    return LeafFilter(Op.GT, prop, value)


def ge(prop: str, value: Any) -> LeafFilter:
    return LeafFilter(Op.GE, prop, value)


def in_(prop: str, values: Iterable[Any]) -> LeafFilter:
    return LeafFilter(Op.IN, prop, tuple(values))


def like(prop: str, value: str, mode: MatchMode = MatchMode.ANYWHERE) -> LeafFilter:
    return LeafFilter(Op.LIKE, prop, value, match_mode=mode)


def is_null(prop: str) -> LeafFilter:
    return LeafFilter(Op.IS_NULL, prop)


def not_null(prop: str) -> LeafFilter:
    return LeafFilter(Op.NOT_NULL, prop)


def is_empty(prop: str) -> LeafFilter:
    return LeafFilter(Op.IS_EMPTY, prop)


def join(prop: str, join_prop: str) -> LeafFilter:
    """Relational join, e.g. ``join("id", "IdentityEntitlement.entitlement_id")``.

    Only the relational store can evaluate joins; their presence disables
    full-text routing.
    """
    return LeafFilter(Op.JOIN, prop, join_prop)


def ignore_case(leaf: LeafFilter) -> LeafFilter:
    return replace(leaf, ignore_case=True)


def ilike(prop: str, value: str, mode: MatchMode = MatchMode.ANYWHERE) -> LeafFilter:
    return ignore_case(like(prop, value, mode))


# Composite factories

def and_(*filters: Optional[Filter]) -> CompositeFilter:
    """AND of the given filters. None entries are skipped; no children matches everything."""
    return CompositeFilter(Logic.AND, tuple(f for f in filters if f is not None))


def or_(*filters: Optional[Filter]) -> CompositeFilter:
    return CompositeFilter(Logic.OR, tuple(f for f in filters if f is not None))


def not_(f: Filter) -> CompositeFilter:
    return CompositeFilter(Logic.NOT, (f,))


# Tree walkers

def walk(filters: Union[Filter, Iterable[Filter], None]) -> Iterator[LeafFilter]:
    """Yield every leaf of one filter or a sequence of filters, depth first."""
    if filters is None:
        return
    if isinstance(filters, LeafFilter):
        yield filters
    elif isinstance(filters, CompositeFilter):
        for child in filters.children:
            yield from walk(child)
    else:
        for f in filters:
            yield from walk(f)


def has_join(filters: Union[Filter, Iterable[Filter], None]) -> bool:
    """True if any leaf anywhere in the tree is a relational join."""
    return any(leaf.op == Op.JOIN for leaf in walk(filters))


def has_restricted_filter(
    filters: Union[Filter, Iterable[Filter], None],
    restricted_fields: Iterable[str]
) -> bool:
    """True if any EQ leaf targets one of the restricted fields (case-insensitive).

    Restricted fields are exact-match fields a text index cannot match
    reliably, so an equality on one of them forces relational routing.
    """
    restricted = {f.lower() for f in restricted_fields}
    if not restricted:
        return False
    return any(
        leaf.op == Op.EQ and leaf.property.lower() in restricted
        for leaf in walk(filters)
    )


def prefix_properties(f: Optional[Filter], prefix: str) -> Optional[Filter]:
    """Return a copy of the filter with every leaf property prefixed.

    Used to apply a filter written against one object (Application) to the
    property path of a related object (``application.``). Properties that
    already carry the prefix are left alone.
    """
    if f is None:
        return None
    if isinstance(f, LeafFilter):
        if f.property.startswith(prefix):
            return f
        return replace(f, property=f"{prefix}{f.property}")
    return CompositeFilter(f.op, tuple(prefix_properties(c, prefix) for c in f.children))


def resolve_joins(f: Optional[Filter], resolver: Callable[[str, str], Iterable[Any]]) -> Optional[Filter]:
    """Replace every join leaf with an IN over the joined values.

    ``resolver(object_type, path)`` returns the values of ``path`` across all
    objects of ``object_type``; a join value ``"IdentityEntitlement.entitlement_id"``
    resolves with ``("IdentityEntitlement", "entitlement_id")``.
    """
    if f is None:
        return None
    if isinstance(f, LeafFilter):
        if f.op != Op.JOIN:
            return f
        object_type, _, path = str(f.value).partition('.')
        if not path:
            raise ValueError(f"Join target must be Type.property: '{f.value}'")
        values = []
        for value in resolver(object_type, path):
            if value is not None and value not in values:
                values.append(value)
        return in_(f.property, values)
    return CompositeFilter(f.op, tuple(resolve_joins(c, resolver) for c in f.children))


def describe_filter(f: Optional[Filter]) -> str:
    """Generate a human-readable description of a filter.

    Args:
        f: Filter to describe

    Returns:
        Description such as ``type=it AND display_name like 'adm%'``
    """
    if f is None:
        return "No filters applied"
    if isinstance(f, CompositeFilter):
        if f.op == Logic.NOT:
            return f"NOT ({describe_filter(f.children[0])})"
        if not f.children:
            return "No filters applied"
        parts = []
        for child in f.children:
            text = describe_filter(child)
            if isinstance(child, CompositeFilter) and child.op != Logic.NOT and len(child.children) > 1:
                text = f"({text})"
            parts.append(text)
        return f" {f.op.value.upper()} ".join(parts)

    prop = f.property
    if f.ignore_case:
        prop = f"lower({prop})"
    if f.op == Op.EQ:
        return f"{prop}={f.value}"
    if f.op == Op.NE:
        return f"{prop}!={f.value}"
    if f.op in (Op.LT, Op.LE, Op.GT, Op.GE):
        symbol = {Op.LT: "<", Op.LE: "<=", Op.GT: ">", Op.GE: ">="}[f.op]
        return f"{prop} {symbol}{f.value}"
    if f.op == Op.IN:
        values = ",".join(str(v) for v in f.value)
        return f"{prop} in [{values}]"
    if f.op == Op.LIKE:
        pattern = {
            MatchMode.START: f"{f.value}%",
            MatchMode.ANYWHERE: f"%{f.value}%",
            MatchMode.END: f"%{f.value}",
            MatchMode.EXACT: f"{f.value}",
        }[f.match_mode]
        return f"{prop} like '{pattern}'"
    if f.op == Op.IS_NULL:
        return f"{prop} is null"
    if f.op == Op.NOT_NULL:
        return f"{prop} is not null"
    if f.op == Op.IS_EMPTY:
        return f"{prop} is empty"
    return f"{prop} join {f.value}"


# Filter DSL (config files and CLI)

NOTHING = "none"

_EXTENDED_OPS = {
    'eq': Op.EQ,
    'match': Op.EQ,
    'ne': Op.NE,
    'gt': Op.GT,
    'gte': Op.GE,
    'lt': Op.LT,
    'lte': Op.LE,
    'in': Op.IN,
    'like': Op.LIKE,
    'contains': Op.LIKE,
    'startswith': Op.LIKE,
    'null': Op.IS_NULL,
    'notnull': Op.NOT_NULL,
}


def parse_filter(filter_arg: Optional[str]) -> Optional[Filter]:
    """Parse a filter from a config value or CLI argument.

    Supports two formats:
    1. Simple: key=value,key=value (e.g., "type=it,application.name=AD")
    2. Extended: key:op:value (e.g., "type:in:it|business" or "risk_score_weight:gte:500")

    All conditions are ANDed.

    Args:
        filter_arg: Filter string

    Returns:
        Filter, or None if filter_arg is empty

    Raises:
        ValueError: If a term is malformed or uses an unknown operator
    """
    if not filter_arg or not filter_arg.strip():
        return None

    conditions: List[Filter] = []
    for term in filter_arg.split(','):
        term = term.strip()
        if not term:
            continue
        conditions.append(_parse_term(term))

    if not conditions:
        return None
    if len(conditions) == 1:
        return conditions[0]
    return and_(*conditions)


def _parse_term(term: str) -> LeafFilter:
    """Parse one DSL term, extended form first."""
    parts = term.split(':', 2)
    if len(parts) >= 2 and parts[1].strip().lower() in _EXTENDED_OPS and '=' not in parts[0]:
        key = parts[0].strip()
        op_name = parts[1].strip().lower()
        value = parts[2].strip() if len(parts) == 3 else ""
        op = _EXTENDED_OPS[op_name]

        if op == Op.IN:
            return in_(key, [_coerce(v.strip()) for v in value.split("|") if v.strip()])
        if op == Op.LIKE:
            mode = MatchMode.START if op_name == 'startswith' else MatchMode.ANYWHERE
            return ilike(key, value, mode)
        if op in (Op.IS_NULL, Op.NOT_NULL):
            return LeafFilter(op, key)
        numeric = op in (Op.LT, Op.LE, Op.GT, Op.GE)
        return LeafFilter(op, key, _coerce(value, numeric))

    if '=' in term:
        key, value = term.split('=', 1)
        return eq(key.strip(), _coerce(value.strip()))

    raise ValueError(f"Invalid filter term: '{term}' (expected key=value or key:op:value)")


def _coerce(value: str, numeric: bool = False) -> Any:
    """Map DSL literals to booleans, and to numbers for range operators."""
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if not numeric:
        return value
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def parse_filters(filter_args: Sequence[str]) -> List[Filter]:
    """Parse several DSL strings, dropping empty ones."""
    parsed = [parse_filter(arg) for arg in filter_args]
    return [f for f in parsed if f is not None]
