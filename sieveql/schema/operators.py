"""The operator table shared by the parameter compiler and the renderer.

Operators form a closed set (:class:`Operator`).  Each member carries an
:class:`OperatorSpec` that declares how many bound values it consumes and
which rendering category it belongs to.  The renderer dispatches on the
category with a single exhaustive ``match``; there is no string-keyed
lookup of rendering callables.

Search keys (``$eq``, ``$between``, ...) are the user-facing spelling of an
operator inside a search object.  Several keys may map to the same operator
(``$json`` / ``$jsonb`` are plain equality), and ``$eq: None`` /
``$ne: None`` are rewritten to the null-check operators by the compiler.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sieveql.errors import UnknownOperatorError

# ---------------------------------------------------------------------------
# Rendering categories
# ---------------------------------------------------------------------------


class OperatorCategory(str, Enum):
    """How a fragment is laid out in SQL text."""

    COMPARISON = "comparison"  # <key> <sql> <ph>
    CUSTOM = "custom"  # <key> <sign> <ph>
    RANGE = "range"  # <key> [NOT ]BETWEEN <ph> AND <ph>
    MEMBERSHIP = "membership"  # dialect specific, whole list bound once
    PATTERN = "pattern"  # <key> [NOT ]LIKE|ILIKE <ph>
    NULL_CHECK = "null_check"  # <key> IS [NOT ]NULL


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


class Operator(str, Enum):
    """Every comparison a fragment can express."""

    EQ = "EQ"
    NE = "NE"
    GT = "GT"
    GTE = "GTE"
    LT = "LT"
    LTE = "LTE"
    CUSTOM = "CUSTOM"
    BETWEEN = "BETWEEN"
    NOT_BETWEEN = "NOT_BETWEEN"
    IN = "IN"
    NOT_IN = "NOT_IN"
    LIKE = "LIKE"
    ILIKE = "ILIKE"
    NOT_LIKE = "NOT_LIKE"
    NOT_ILIKE = "NOT_ILIKE"
    IS_NULL = "IS_NULL"
    IS_NOT_NULL = "IS_NOT_NULL"
    # PostgreSQL containment / overlap / regex / JSON operators.
    CONTAINS = "CONTAINS"
    CONTAINED_BY = "CONTAINED_BY"
    OVERLAPS = "OVERLAPS"
    AT = "AT"
    REGEX = "REGEX"
    KEY_EXISTS = "KEY_EXISTS"


@dataclass(frozen=True)
class OperatorSpec:
    """Static rendering contract of one operator.

    Attributes:
        arity: Number of placeholders (and bound values) the operator uses.
        category: Rendering category.
        sql: SQL keyword or symbol emitted between key and placeholder(s).
        negated: True for the ``NOT`` variants of range / membership / pattern.
    """

    arity: int
    category: OperatorCategory
    sql: str = ""
    negated: bool = False


_C = OperatorCategory

OPERATOR_TABLE: dict[Operator, OperatorSpec] = {
    Operator.EQ: OperatorSpec(1, _C.COMPARISON, "="),
    Operator.NE: OperatorSpec(1, _C.COMPARISON, "<>"),
    Operator.GT: OperatorSpec(1, _C.COMPARISON, ">"),
    Operator.GTE: OperatorSpec(1, _C.COMPARISON, ">="),
    Operator.LT: OperatorSpec(1, _C.COMPARISON, "<"),
    Operator.LTE: OperatorSpec(1, _C.COMPARISON, "<="),
    Operator.CUSTOM: OperatorSpec(1, _C.CUSTOM),
    Operator.BETWEEN: OperatorSpec(2, _C.RANGE, "BETWEEN"),
    Operator.NOT_BETWEEN: OperatorSpec(2, _C.RANGE, "BETWEEN", negated=True),
    Operator.IN: OperatorSpec(1, _C.MEMBERSHIP),
    Operator.NOT_IN: OperatorSpec(1, _C.MEMBERSHIP, negated=True),
    Operator.LIKE: OperatorSpec(1, _C.PATTERN, "LIKE"),
    Operator.ILIKE: OperatorSpec(1, _C.PATTERN, "ILIKE"),
    Operator.NOT_LIKE: OperatorSpec(1, _C.PATTERN, "LIKE", negated=True),
    Operator.NOT_ILIKE: OperatorSpec(1, _C.PATTERN, "ILIKE", negated=True),
    Operator.IS_NULL: OperatorSpec(0, _C.NULL_CHECK, "IS NULL"),
    Operator.IS_NOT_NULL: OperatorSpec(0, _C.NULL_CHECK, "IS NOT NULL"),
    Operator.CONTAINS: OperatorSpec(1, _C.COMPARISON, "@>"),
    Operator.CONTAINED_BY: OperatorSpec(1, _C.COMPARISON, "<@"),
    Operator.OVERLAPS: OperatorSpec(1, _C.COMPARISON, "&&"),
    Operator.AT: OperatorSpec(1, _C.COMPARISON, "@"),
    Operator.REGEX: OperatorSpec(1, _C.COMPARISON, "~"),
    Operator.KEY_EXISTS: OperatorSpec(1, _C.COMPARISON, "?"),
}

#: Operators available in every dialect.
PORTABLE_OPERATORS: frozenset[Operator] = frozenset(
    op
    for op in Operator
    if op
    not in {
        Operator.CONTAINS,
        Operator.CONTAINED_BY,
        Operator.OVERLAPS,
        Operator.AT,
        Operator.REGEX,
        Operator.KEY_EXISTS,
    }
)

#: Operators only the PostgreSQL-style dialect renders.
POSTGRES_ONLY_OPERATORS: frozenset[Operator] = frozenset(Operator) - PORTABLE_OPERATORS

# ---------------------------------------------------------------------------
# Search keys
# ---------------------------------------------------------------------------

#: Maps every search key accepted inside an operator-object to its operator.
SEARCH_KEYS: dict[str, Operator] = {
    "$eq": Operator.EQ,
    "$ne": Operator.NE,
    "$gt": Operator.GT,
    "$gte": Operator.GTE,
    "$lt": Operator.LT,
    "$lte": Operator.LTE,
    "$custom": Operator.CUSTOM,
    "$between": Operator.BETWEEN,
    "$nbetween": Operator.NOT_BETWEEN,
    "$in": Operator.IN,
    "$nin": Operator.NOT_IN,
    "$like": Operator.LIKE,
    "$ilike": Operator.ILIKE,
    "$nlike": Operator.NOT_LIKE,
    "$nilike": Operator.NOT_ILIKE,
    "$@>": Operator.CONTAINS,
    "$<@": Operator.CONTAINED_BY,
    "$&&": Operator.OVERLAPS,
    "$@": Operator.AT,
    "$~": Operator.REGEX,
    "$?": Operator.KEY_EXISTS,
    "$json": Operator.EQ,
    "$jsonb": Operator.EQ,
}


def spec_for(operator: Operator) -> OperatorSpec:
    """Return the rendering contract of ``operator``."""
    return OPERATOR_TABLE[operator]


def arity(operator: Operator) -> int:
    """Return how many placeholders ``operator`` consumes."""
    return OPERATOR_TABLE[operator].arity


def resolve_search_key(key: str, field: str) -> Operator:
    """Map a ``$``-prefixed search key to its :class:`Operator`.

    Args:
        key: The key found inside an operator-object (e.g. ``"$gte"``).
        field: The field the operator-object belongs to (for diagnostics).

    Returns:
        The matching operator.

    Raises:
        UnknownOperatorError: If ``key`` is not a known search key.  The
            error lists every valid key.
    """
    operator = SEARCH_KEYS.get(key)
    if operator is None:
        raise UnknownOperatorError(key, field, list(SEARCH_KEYS))
    return operator
