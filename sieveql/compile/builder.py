"""Composable query builder.

``QueryBuilder`` accumulates clauses in a :class:`BuilderState` and renders
them into one parameterized statement.  Values are split in two lists:

- *head* values, bound by the data source (a subquery) or by the statement
  itself (INSERT rows, UPDATE assignments); they come first in the text.
- *body* values, bound by WHERE and HAVING; they follow the head.

A single placeholder cursor runs across both, so ``$n`` numbering is
continuous from the first placeholder to the last.  Head values must be in
place before any body placeholder is emitted; otherwise the already emitted
numbers would be wrong and :class:`~sieveql.errors.CompilationError` is
raised instead.

Sub-builder hierarchy
---------------------
QueryBuilder
  ├── SelectClauseBuilder  (clause_builders.py)
  ├── FromClauseBuilder    (clause_builders.py)
  ├── JoinClauseBuilder    (clause_builders.py)
  ├── InsertClauseBuilder  (clause_builders.py)
  └── UpdateClauseBuilder  (clause_builders.py)

WHERE / HAVING go through :func:`~sieveql.compile.compare_fields.compare_fields`
and :func:`~sieveql.compile.renderer.render_condition`.
"""

from __future__ import annotations

import copy
import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog
from pydantic import ValidationError as PydanticValidationError

from sieveql.compile.base import CompiledSQL, Dialect
from sieveql.compile.clause_builders import (
    FromClauseBuilder,
    InsertClauseBuilder,
    JoinClauseBuilder,
    JoinType,
    SelectClauseBuilder,
    SubqueryHandle,
    UpdateClauseBuilder,
    UpdateColumnSpec,
)
from sieveql.compile.compare_fields import SearchParams, compare_fields
from sieveql.compile.context import CompilationContext, source_qualifier
from sieveql.compile.registry import DialectFactory
from sieveql.compile.renderer import (
    OrderSpec,
    render_condition,
    render_order_by,
    render_pagination,
)
from sieveql.config import get_settings
from sieveql.errors import CompilationError, InvalidJoinError
from sieveql.protocols import Executor
from sieveql.schema.search import JoinSpec, Pagination

logger = structlog.get_logger(__name__)

StatementKind = Literal["select", "insert", "update", "delete"]


@dataclass
class BuilderState:
    """Mutable clause accumulator owned by exactly one builder.

    ``cursor`` is the number of placeholders emitted so far;
    ``head_cursor`` is the part of it consumed by head values.
    """

    source: str = ""
    source_name: str = ""
    source_is_subquery: bool = False
    source_values: list[Any] = field(default_factory=list)
    kind: StatementKind = "select"
    statement: str = "SELECT *"
    statement_values: list[Any] = field(default_factory=list)
    joins: list[str] = field(default_factory=list)
    where: str = ""
    group_by: list[str] = field(default_factory=list)
    having: str = ""
    order_by: str = ""
    pagination: str = ""
    returning: str = ""
    where_values: list[Any] = field(default_factory=list)
    having_values: list[Any] = field(default_factory=list)
    head_cursor: int = 0
    cursor: int = 0

    @property
    def body_started(self) -> bool:
        return self.cursor > self.head_cursor


def _coerce_join(spec: JoinSpec | Mapping[str, Any]) -> JoinSpec:
    if isinstance(spec, JoinSpec):
        return spec
    if not isinstance(spec, Mapping):
        raise InvalidJoinError(f"Invalid join {spec!r}: expected a mapping or JoinSpec")
    try:
        return JoinSpec.model_validate(dict(spec))
    except PydanticValidationError as exc:
        errors = [
            {"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"]}
            for e in exc.errors()
        ]
        raise InvalidJoinError(f"Invalid join {dict(spec)!r}", errors=errors) from exc


class QueryBuilder:
    """Fluent builder for one parameterized statement.

    Every mutating method returns ``self`` so calls chain::

        rows = await (
            factory.create("users AS u")
            .select(["u.id", "u.name"])
            .left_join({"target_table": "orders", "target_alias": "o",
                        "target_field": "user_id", "source_field": "id"})
            .where({"u.status": "active"})
            .order_by({"order_by": "u.name"})
            .pagination(limit=10)
            .execute()
        )

    Args:
        source: Table identifier (``"users"`` / ``"users AS u"``) or a
            :class:`SubqueryHandle`.
        executor: Async callable that runs a :class:`CompiledSQL`.
        dialect: Dialect instance or target name; defaults to the configured
            dialect.
        sortable_fields: ORDER BY allow-list; ``None`` accepts any field.
    """

    def __init__(
        self,
        source: str | SubqueryHandle,
        executor: Executor,
        *,
        dialect: str | Dialect | None = None,
        sortable_fields: Iterable[str] | None = None,
    ) -> None:
        resolved = DialectFactory.resolve(dialect or get_settings().default_dialect)
        self._ctx = CompilationContext(
            dialect=resolved,
            sortable_fields=frozenset(sortable_fields) if sortable_fields is not None else None,
        )
        self._executor = executor
        self._state = BuilderState()
        self._select = SelectClauseBuilder()
        self._from = FromClauseBuilder(self._ctx)
        self._join = JoinClauseBuilder()
        self._insert = InsertClauseBuilder(self._ctx)
        self._update = UpdateClauseBuilder(self._ctx)
        self.from_(source)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def dialect(self) -> Dialect:
        return self._ctx.dialect

    @property
    def cursor(self) -> int:
        """Placeholders emitted so far."""
        return self._state.cursor

    # ------------------------------------------------------------------
    # Head: source and statement
    # ------------------------------------------------------------------

    def from_(
        self,
        source: str | SubqueryHandle | QueryBuilder,
        alias: str | None = None,
    ) -> QueryBuilder:
        """Replace the data source.

        Args:
            source: Table identifier, a :class:`SubqueryHandle`, or another
                builder (embedded as a subquery named ``alias``).
            alias: Required when ``source`` is a builder.

        Raises:
            CompilationError: On an empty source, a builder without alias, a
                subquery on an INSERT / UPDATE statement, or a head change after
                WHERE / HAVING placeholders were emitted.
        """
        if isinstance(source, QueryBuilder):
            if not alias:
                raise CompilationError("A builder used as a source needs an alias.", clause="FROM")
            source = source.to_subquery(alias)

        text, values, arity = self._from.build(source)
        state = self._state
        is_subquery = isinstance(source, SubqueryHandle)
        if is_subquery and state.kind != "select":
            raise CompilationError(
                f"A subquery cannot be the target of {state.kind.upper()}.", clause="FROM"
            )
        self._replace_head(arity + len(state.statement_values), clause="FROM")

        state.source = text
        state.source_name = source.alias if is_subquery else source_qualifier(text)
        state.source_is_subquery = is_subquery
        state.source_values = values
        return self

    def select(self, columns: Sequence[str]) -> QueryBuilder:
        """Replace the statement with ``SELECT <columns>``."""
        self._replace_statement("select", self._select.build(columns), [], clause="SELECT")
        return self

    def insert(
        self,
        params: Mapping[str, Any] | Sequence[Mapping[str, Any]],
        on_conflict: str | None = None,
        update_column: UpdateColumnSpec | None = None,
    ) -> QueryBuilder:
        """Replace the statement with an INSERT of one row or many rows.

        ``UNSET`` entries are dropped; every row must then carry the same
        columns.  ``on_conflict`` is appended verbatim (e.g.
        ``"ON CONFLICT (id) DO NOTHING"``).  ``update_column``
        (``{"title": "created_at", "type": "timestamp"}``) stamps one more
        column with the current time in every row.
        """
        self._require_table_source("INSERT")
        text, values, _ = self._insert.build(params, 0, on_conflict, update_column)
        self._replace_statement("insert", text, values, clause="INSERT")
        return self

    def update(
        self,
        params: Mapping[str, Any],
        on_conflict: str | None = None,
        update_column: UpdateColumnSpec | None = None,
    ) -> QueryBuilder:
        """Replace the statement with ``UPDATE <source> SET ...``.

        ``update_column`` appends ``<title> = <current time>`` to the SET
        list; ``type`` is ``"timestamp"`` or ``"unix_timestamp"``.
        """
        self._require_table_source("UPDATE")
        text, values, _ = self._update.build(params, 0, update_column)
        if on_conflict:
            text += f" {on_conflict}"
        self._replace_statement("update", text, values, clause="UPDATE")
        return self

    def delete(self) -> QueryBuilder:
        """Replace the statement with ``DELETE FROM <source>``."""
        self._require_table_source("DELETE")
        self._replace_statement("delete", "", [], clause="DELETE")
        return self

    def returning(self, columns: Sequence[str]) -> QueryBuilder:
        """Replace the ``RETURNING`` list (empty list clears it)."""
        self._state.returning = f"RETURNING {', '.join(columns)}" if columns else ""
        return self

    # ------------------------------------------------------------------
    # Joins
    # ------------------------------------------------------------------

    def inner_join(self, spec: JoinSpec | Mapping[str, Any]) -> QueryBuilder:
        return self._add_join("INNER", spec)

    def left_join(self, spec: JoinSpec | Mapping[str, Any]) -> QueryBuilder:
        return self._add_join("LEFT", spec)

    def right_join(self, spec: JoinSpec | Mapping[str, Any]) -> QueryBuilder:
        return self._add_join("RIGHT", spec)

    def full_outer_join(self, spec: JoinSpec | Mapping[str, Any]) -> QueryBuilder:
        return self._add_join("FULL OUTER", spec)

    def raw_join(self, sql: str) -> QueryBuilder:
        """Append a hand-written JOIN fragment verbatim."""
        self._state.joins.append(sql.strip())
        return self

    def _add_join(self, join_type: JoinType, spec: JoinSpec | Mapping[str, Any]) -> QueryBuilder:
        join = _coerce_join(spec)
        self._state.joins.append(self._join.build(join_type, join, self._state.source_name))
        return self

    # ------------------------------------------------------------------
    # Body: WHERE / GROUP BY / HAVING
    # ------------------------------------------------------------------

    def where(
        self,
        params: SearchParams | None = None,
        params_or: Sequence[SearchParams] | None = None,
    ) -> QueryBuilder:
        """AND a search object (and optional OR-alternatives) into WHERE.

        Raises:
            CompilationError: If the condition binds values after HAVING
                already did.
        """
        state = self._state
        state.where = self._add_condition(
            "WHERE", state.where, state.where_values, params, params_or
        )
        return self

    def having(
        self,
        params: SearchParams | None = None,
        params_or: Sequence[SearchParams] | None = None,
    ) -> QueryBuilder:
        """AND a search object (and optional OR-alternatives) into HAVING.

        Placeholders continue from the WHERE clause.
        """
        state = self._state
        state.having = self._add_condition(
            "HAVING", state.having, state.having_values, params, params_or
        )
        return self

    def raw_where(self, sql: str) -> QueryBuilder:
        """AND a hand-written condition into WHERE.  It must not bind values."""
        self._state.where = self._append_condition("WHERE", self._state.where, sql.strip())
        return self

    def raw_having(self, sql: str) -> QueryBuilder:
        """AND a hand-written condition into HAVING.  It must not bind values."""
        self._state.having = self._append_condition("HAVING", self._state.having, sql.strip())
        return self

    def group_by(self, columns: Sequence[str]) -> QueryBuilder:
        self._state.group_by.extend(columns)
        return self

    def _add_condition(
        self,
        keyword: str,
        current: str,
        bound: list[Any],
        params: SearchParams | None,
        params_or: Sequence[SearchParams] | None,
    ) -> str:
        group = compare_fields(params, params_or)
        if group.is_empty:
            return current
        if keyword == "WHERE" and group.values and self._state.having_values:
            raise CompilationError(
                "WHERE conditions that bind values must be added before HAVING conditions.",
                clause="WHERE",
            )
        text, cursor = render_condition(group, self._ctx.dialect, self._state.cursor)
        bound.extend(group.values)
        self._state.cursor = cursor
        return self._append_condition(keyword, current, text)

    @staticmethod
    def _append_condition(keyword: str, current: str, text: str) -> str:
        if not text:
            return current
        if not current:
            return f"{keyword} {text}"
        return f"{current} AND ({text})"

    # ------------------------------------------------------------------
    # Tail: ORDER BY / LIMIT
    # ------------------------------------------------------------------

    def order_by(self, spec: OrderSpec | None) -> QueryBuilder:
        """Replace the ORDER BY clause, validated against the allow-list."""
        self._state.order_by = render_order_by(spec, self._ctx.sortable_fields)
        return self

    def pagination(self, limit: int | None = None, offset: int | None = None) -> QueryBuilder:
        """Replace the LIMIT / OFFSET clause; missing values use the defaults."""
        self._state.pagination = render_pagination(Pagination(limit=limit, offset=offset))
        return self

    # ------------------------------------------------------------------
    # Copies
    # ------------------------------------------------------------------

    def clone(self) -> QueryBuilder:
        """Return an independent builder with a deep copy of the state."""
        twin = copy.copy(self)
        twin._state = copy.deepcopy(self._state)
        return twin

    def to_subquery(self, alias: str) -> SubqueryHandle:
        """Freeze the current statement for embedding as another builder's source."""
        compiled = self.compile()
        return SubqueryHandle(
            sql=compiled.query.removesuffix(";"),
            values=tuple(compiled.values),
            end_cursor=self._state.cursor,
            alias=alias,
            dialect=self._ctx.dialect.dialect_name,
        )

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def compile(self) -> CompiledSQL:
        """Assemble the statement text and its values in placeholder order."""
        state = self._state
        parts = [self._head_sql(state), *state.joins, state.where]
        if state.group_by:
            parts.append(f"GROUP BY {', '.join(state.group_by)}")
        parts.extend([state.having, state.order_by, state.pagination, state.returning])
        query = " ".join(p for p in parts if p) + ";"
        return CompiledSQL(
            query=query,
            values=[
                *state.statement_values,
                *state.source_values,
                *state.where_values,
                *state.having_values,
            ],
            dialect=self._ctx.dialect.dialect_name,
        )

    async def execute(self) -> list[Any]:
        """Compile and run the statement through the executor.

        Returns:
            The executor's rows, unmodified.
        """
        compiled = self.compile()
        start = time.perf_counter()
        try:
            rows = await self._executor(compiled)
        except Exception:
            logger.error(
                "query.failed",
                sql=compiled.query,
                value_count=len(compiled.values),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise
        logger.debug(
            "query.executed",
            sql=compiled.query,
            value_count=len(compiled.values),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return rows

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _head_sql(state: BuilderState) -> str:
        match state.kind:
            case "select":
                return f"{state.statement} FROM {state.source}"
            case "insert":
                return f"INSERT INTO {state.source}{state.statement}"
            case "update":
                return f"UPDATE {state.source} {state.statement}"
            case "delete":
                return f"DELETE FROM {state.source}"

    def _require_table_source(self, clause: str) -> None:
        if self._state.source_is_subquery:
            raise CompilationError(f"A subquery cannot be the target of {clause}.", clause=clause)

    def _replace_statement(
        self,
        kind: StatementKind,
        text: str,
        values: list[Any],
        clause: str,
    ) -> None:
        state = self._state
        self._replace_head(len(state.source_values) + len(values), clause=clause)
        state.kind = kind
        state.statement = text
        state.statement_values = values

    def _replace_head(self, new_head: int, clause: str) -> None:
        """Resize the head; refuses once body placeholders would have to shift."""
        state = self._state
        if state.body_started and new_head != state.head_cursor:
            raise CompilationError(
                f"{clause} changes the number of leading bound values and must be "
                "set before WHERE / HAVING conditions.",
                clause=clause,
            )
        state.cursor = new_head + (state.cursor - state.head_cursor)
        state.head_cursor = new_head


class QueryBuilderFactory:
    """Construction entry point: binds an executor and dialect once.

    Example::

        factory = QueryBuilderFactory(pool_executor, dialect="mysql")
        rows = await factory.create("users").where({"id": 7}).execute()
    """

    def __init__(
        self,
        executor: Executor,
        dialect: str | Dialect | None = None,
        sortable_fields: Iterable[str] | None = None,
    ) -> None:
        self._executor = executor
        self._dialect = DialectFactory.resolve(dialect or get_settings().default_dialect)
        self._sortable_fields = sortable_fields

    def create(
        self,
        source: str | SubqueryHandle,
        sortable_fields: Iterable[str] | None = None,
    ) -> QueryBuilder:
        """Return a fresh builder over ``source``.

        ``sortable_fields`` overrides the factory-wide allow-list.
        """
        return QueryBuilder(
            source,
            self._executor,
            dialect=self._dialect,
            sortable_fields=sortable_fields if sortable_fields is not None else self._sortable_fields,
        )
