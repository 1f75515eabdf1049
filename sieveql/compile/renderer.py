"""Placeholder renderer: compiled fragments → SQL text.

Every function here is pure.  The placeholder cursor is threaded explicitly
(cursor in, cursor out) so WHERE and HAVING of one statement can share it
without hidden state::

    where_sql, cursor = render_condition(where_group, dialect, 0)
    having_sql, cursor = render_condition(having_group, dialect, cursor)

The cursor counts placeholders emitted so far.  The numbered dialect prints
it (``$1``, ``$2``); the unnumbered dialect prints ``?`` but the cursor is
still advanced by each operator's arity so a later clause knows where it
starts.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Union

from pydantic import ValidationError as PydanticValidationError

from sieveql.compile.base import Dialect
from sieveql.compile.registry import DialectFactory
from sieveql.config import get_settings
from sieveql.errors import InvalidOrderError, UnsupportedOperatorError
from sieveql.schema.operators import OperatorCategory, spec_for
from sieveql.schema.search import (
    ORDERINGS,
    CompiledGroup,
    Fragment,
    OrderItem,
    Pagination,
    RenderedClauses,
)

#: An ORDER BY request: one item or a list of items (models or mappings).
OrderSpec = Union[OrderItem, Mapping[str, Any], Sequence[Union[OrderItem, Mapping[str, Any]]]]

#: A pagination request: a model or a ``{"limit", "offset"}`` mapping.
PaginationSpec = Union[Pagination, Mapping[str, Any]]

TAUTOLOGY = "1=1"


# ---------------------------------------------------------------------------
# Fragments and groups
# ---------------------------------------------------------------------------


def render_fragment(fragment: Fragment, dialect: Dialect, cursor: int) -> tuple[str, int]:
    """Render one fragment and advance the cursor by the operator's arity.

    Args:
        fragment: The compiled comparison.
        dialect: Placeholder dialect.
        cursor: Placeholders emitted so far in this statement.

    Returns:
        ``(sql_text, new_cursor)``.

    Raises:
        UnsupportedOperatorError: If ``dialect`` cannot express the operator.
    """
    operator = fragment.operator
    if operator not in dialect.supported_operators:
        raise UnsupportedOperatorError(
            operator.value,
            dialect.dialect_name,
            sorted(op.value for op in dialect.supported_operators),
        )

    spec = spec_for(operator)
    key = fragment.key
    not_ = "NOT " if spec.negated else ""
    ph = [dialect.placeholder(cursor + i) for i in range(1, spec.arity + 1)]

    match spec.category:
        case OperatorCategory.NULL_CHECK:
            text = f"{key} {spec.sql}"
        case OperatorCategory.COMPARISON:
            text = f"{key} {spec.sql} {ph[0]}"
        case OperatorCategory.CUSTOM:
            text = f"{key} {fragment.sign} {ph[0]}"
        case OperatorCategory.RANGE:
            text = f"{key} {not_}{spec.sql} {ph[0]} AND {ph[1]}"
        case OperatorCategory.MEMBERSHIP:
            text = dialect.membership(key, ph[0], spec.negated)
        case OperatorCategory.PATTERN:
            text = f"{key} {not_}{dialect.like_operator(spec.sql)} {ph[0]}"

    return text, cursor + spec.arity


def render_conjunction(
    fragments: Iterable[Fragment],
    dialect: Dialect,
    cursor: int,
) -> tuple[str, int]:
    """Render fragments joined with ``AND``; empty input renders ``""``."""
    parts: list[str] = []
    for fragment in fragments:
        text, cursor = render_fragment(fragment, dialect, cursor)
        parts.append(text)
    return " AND ".join(parts), cursor


def render_condition(
    group: CompiledGroup,
    dialect: str | Dialect,
    cursor: int = 0,
) -> tuple[str, int]:
    """Render a compiled group as one boolean SQL expression.

    The main group is ANDed (``1=1`` when empty).  An OR cluster is appended
    as ``AND ((alt1) OR (alt2) ...)`` so precedence never depends on the
    surrounding clause.

    Args:
        group: Output of :func:`~sieveql.compile.compare_fields.compare_fields`.
        dialect: Dialect instance or registered target name.
        cursor: Placeholders emitted before this expression.

    Returns:
        ``(sql_text, new_cursor)``.
    """
    resolved = DialectFactory.resolve(dialect)
    text, cursor = render_conjunction(group.query_array, resolved, cursor)
    text = text or TAUTOLOGY

    if group.query_or_array:
        alternatives: list[str] = []
        for alternative in group.query_or_array:
            alt_text, cursor = render_conjunction(alternative.query, resolved, cursor)
            alternatives.append(f"({alt_text})")
        text = f"{text} AND ({' OR '.join(alternatives)})"

    return text, cursor


# ---------------------------------------------------------------------------
# ORDER BY / LIMIT
# ---------------------------------------------------------------------------


def sortable_fields_for(
    table_fields: Iterable[str],
    additional_sortable_fields: Iterable[str] = (),
) -> frozenset[str]:
    """Build an ORDER BY allow-list from core table fields and extra sortable fields."""
    return frozenset(table_fields) | frozenset(additional_sortable_fields)


def normalize_order(
    order: OrderSpec | None,
    sortable_fields: Iterable[str] | None = None,
) -> list[OrderItem]:
    """Validate an ORDER BY request and return it as a list of items.

    Directions are case-insensitive and normalised to ``ASC`` / ``DESC``.

    Raises:
        InvalidOrderError: On a direction outside ``ASC`` / ``DESC``, a
            field missing from ``sortable_fields`` (when an allow-list is given)
            or an item that is not an ``orderBy`` / ``ordering`` mapping.
    """
    if order is None:
        return []
    raw_items = [order] if isinstance(order, (OrderItem, Mapping)) else list(order)
    allowed = frozenset(sortable_fields) if sortable_fields is not None else None

    items: list[OrderItem] = []
    for raw in raw_items:
        if isinstance(raw, OrderItem):
            item = raw
        else:
            try:
                item = OrderItem.model_validate(raw)
            except PydanticValidationError as exc:
                raise InvalidOrderError(
                    f"Invalid order item {raw!r}: expected orderBy and an optional ordering"
                ) from exc
        ordering = item.ordering.upper()
        if ordering not in ORDERINGS:
            raise InvalidOrderError(
                f"Invalid ordering '{item.ordering}'. Allowed values: ASC, DESC",
                order_by=item.order_by,
            )
        if allowed is not None and item.order_by not in allowed:
            allowed_list = sorted(allowed)
            raise InvalidOrderError(
                f"Invalid orderBy: {item.order_by}. "
                f"Allowed fields are: {', '.join(allowed_list)}",
                order_by=item.order_by,
                allowed=allowed_list,
            )
        items.append(OrderItem(order_by=item.order_by, ordering=ordering))
    return items


def render_order_by(
    order: OrderSpec | None,
    sortable_fields: Iterable[str] | None = None,
) -> str:
    """Render ``ORDER BY ...`` or ``""`` when there is nothing to order by."""
    items = normalize_order(order, sortable_fields)
    if not items:
        return ""
    return "ORDER BY " + ", ".join(f"{i.order_by} {i.ordering}" for i in items)


def render_pagination(pagination: PaginationSpec | None) -> str:
    """Render ``LIMIT n OFFSET m`` with configured defaults for missing values."""
    if pagination is None:
        return ""
    page = (
        pagination
        if isinstance(pagination, Pagination)
        else Pagination.model_validate(dict(pagination))
    )
    settings = get_settings()
    limit = page.limit if page.limit is not None else settings.default_limit
    offset = page.offset if page.offset is not None else settings.default_offset
    return f"LIMIT {limit} OFFSET {offset}"


# ---------------------------------------------------------------------------
# All-in-one
# ---------------------------------------------------------------------------


def get_fields_to_search(
    group: CompiledGroup,
    selected: Sequence[str] = ("*",),
    pagination: PaginationSpec | None = None,
    order: OrderSpec | None = None,
    *,
    dialect: str | Dialect | None = None,
    cursor: int = 0,
    sortable_fields: Iterable[str] | None = None,
) -> RenderedClauses:
    """Render every clause a hand-written SELECT needs.

    Example::

        group = compare_fields({"status": "active"}, [{"a": 1}, {"b": 2}])
        clauses = get_fields_to_search(group, ["id", "name"], {"limit": 10})
        sql = (
            f"SELECT {clauses.selected_fields} FROM users "
            f"{clauses.search_fields} {clauses.pagination_fields}"
        )

    Args:
        group: Compiled search group.
        selected: Output columns.
        pagination: Optional ``{"limit", "offset"}``; missing or non-numeric
            values fall back to the configured defaults.
        order: Optional ORDER BY item or list of items.
        dialect: Dialect instance or target name; defaults to the configured
            dialect.
        cursor: Starting placeholder cursor.
        sortable_fields: ORDER BY allow-list; ``None`` disables the field check.

    Returns:
        :class:`RenderedClauses` including the cursor after the WHERE clause.

    Raises:
        InvalidOrderError: On a disallowed ORDER BY field or direction.
        UnsupportedOperatorError: On an operator the dialect cannot render.
    """
    resolved = DialectFactory.resolve(dialect or get_settings().default_dialect)
    order_by_fields = render_order_by(order, sortable_fields)
    condition, end_cursor = render_condition(group, resolved, cursor)
    return RenderedClauses(
        selected_fields=", ".join(selected),
        search_fields=f"WHERE {condition}",
        order_by_fields=order_by_fields,
        pagination_fields=render_pagination(pagination),
        end_cursor=end_cursor,
    )
