"""Clause-level SQL builders.

Each class handles exactly one SQL clause and returns text plus, where the
clause binds values, the values and the advanced placeholder cursor.  The
:class:`~sieveql.compile.builder.QueryBuilder` owns the state; these
builders never mutate it.

Classes
-------
SelectClauseBuilder : ``SELECT <columns>``
FromClauseBuilder   : ``<table>`` or ``(<subquery>) AS <alias>``
JoinClauseBuilder   : ``<TYPE> JOIN … ON …``
InsertClauseBuilder : ``(<cols>) VALUES(…),(…)``
UpdateClauseBuilder : ``SET col = …, …``
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Union

from pydantic import ValidationError as PydanticValidationError

from sieveql.compile.context import CompilationContext
from sieveql.errors import CompilationError
from sieveql.schema.search import TIMESTAMP_KINDS, UNSET, JoinSpec, UpdateColumn

JoinType = Literal["INNER", "LEFT", "RIGHT", "FULL OUTER"]
UpdateColumnSpec = Union[UpdateColumn, Mapping[str, Any]]


@dataclass(frozen=True)
class SubqueryHandle:
    """A builder's compiled text frozen for use as another builder's source.

    Attributes:
        sql: Inner statement text (no trailing ``;``).
        values: Inner bound values, in placeholder order.
        end_cursor: Placeholders the inner statement consumed.
        alias: Name the derived table is exposed under.
        dialect: Dialect the inner text was rendered for.
    """

    sql: str
    values: tuple[Any, ...]
    end_cursor: int
    alias: str
    dialect: str


def _clear_unset(params: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in params.items() if v is not UNSET}


def _timestamp_column(
    ctx: CompilationContext, update_column: UpdateColumnSpec | None, clause: str
) -> tuple[str, str] | None:
    """Return ``(column, expression)`` for a time-stamped column, if any."""
    if update_column is None:
        return None
    if isinstance(update_column, UpdateColumn):
        column = update_column
    else:
        try:
            column = UpdateColumn.model_validate(dict(update_column))
        except (TypeError, PydanticValidationError) as exc:
            raise CompilationError(
                f"Invalid update column: {update_column!r}", clause=clause
            ) from exc
    if column.type not in TIMESTAMP_KINDS:
        raise CompilationError(f"Invalid type: {column.type}", clause=clause)
    return column.title, ctx.dialect.timestamp_expression(column.type)


class SelectClauseBuilder:
    """Builds the ``SELECT …`` head (the source is appended by the caller)."""

    def build(self, columns: Sequence[str]) -> str:
        if not columns:
            return "SELECT *"
        return f"SELECT {', '.join(columns)}"


class FromClauseBuilder:
    """Builds the data-source fragment.

    A subquery is embedded verbatim; its values are returned so the caller
    can splice them in at the source's position.
    """

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, source: str | SubqueryHandle) -> tuple[str, list[Any], int]:
        if isinstance(source, SubqueryHandle):
            if source.dialect != self._ctx.dialect.dialect_name:
                raise CompilationError(
                    f"Subquery rendered for '{source.dialect}' cannot be embedded "
                    f"in a '{self._ctx.dialect.dialect_name}' query.",
                    clause="FROM",
                )
            return f"({source.sql}) AS {source.alias}", list(source.values), source.end_cursor
        if not source or not source.strip():
            raise CompilationError("FROM clause has no table or subquery.", clause="FROM")
        return source, [], 0


class JoinClauseBuilder:
    """Builds a single ``<TYPE> JOIN … ON …`` fragment."""

    def build(self, join_type: JoinType, spec: JoinSpec, default_source: str) -> str:
        target_sql = spec.target_table
        if spec.target_alias:
            target_sql = f"{target_sql} AS {spec.target_alias}"
        target_qualifier = spec.target_alias or spec.target_table
        source_qualifier = spec.source_table or default_source
        return (
            f"{join_type} JOIN {target_sql} ON "
            f"{target_qualifier}.{spec.target_field} = {source_qualifier}.{spec.source_field}"
        )


class InsertClauseBuilder:
    """Builds ``(<cols>) VALUES(…)[,(…)]`` for one or many rows.

    Every row must carry the same columns as the first row once ``UNSET``
    entries are dropped.
    ``update_column`` adds one more column whose value in every row is the
    dialect's current-time expression rather than a placeholder.
    """

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(
        self,
        params: Mapping[str, Any] | Sequence[Mapping[str, Any]],
        cursor: int,
        on_conflict: str | None = None,
        update_column: UpdateColumnSpec | None = None,
    ) -> tuple[str, list[Any], int]:
        stamp = _timestamp_column(self._ctx, update_column, "INSERT")
        rows = [params] if isinstance(params, Mapping) else list(params)
        if not rows:
            raise CompilationError("Invalid parameters: no rows to insert.", clause="INSERT")

        headers = list(_clear_unset(rows[0]))
        if not headers:
            raise CompilationError(
                f"Invalid params, all fields are undefined - {', '.join(rows[0])}",
                clause="INSERT",
            )

        values: list[Any] = []
        groups: list[str] = []
        for raw in rows:
            row = _clear_unset(raw)
            if list(row) != headers:
                raise CompilationError(
                    f"Invalid params, row columns {list(row)} differ from {headers}",
                    clause="INSERT",
                )
            placeholders: list[str] = []
            for value in row.values():
                cursor += 1
                placeholders.append(self._ctx.dialect.placeholder(cursor))
                values.append(value)
            if stamp is not None:
                placeholders.append(stamp[1])
            groups.append(f"({','.join(placeholders)})")

        if stamp is not None:
            headers.append(stamp[0])
        text = f"({','.join(headers)}) VALUES{','.join(groups)}"
        if on_conflict:
            text += f" {on_conflict}"
        return text, values, cursor


class UpdateClauseBuilder:
    """Builds ``SET col = …, …`` for the non-``UNSET`` entries of ``params``.

    ``update_column`` appends ``<title> = <current-time expression>``.
    """

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(
        self,
        params: Mapping[str, Any],
        cursor: int,
        update_column: UpdateColumnSpec | None = None,
    ) -> tuple[str, list[Any], int]:
        stamp = _timestamp_column(self._ctx, update_column, "UPDATE")
        row = _clear_unset(params)
        if not row:
            raise CompilationError(
                f"Invalid params, all fields are undefined - {', '.join(params)}",
                clause="UPDATE",
            )
        assignments: list[str] = []
        for column in row:
            cursor += 1
            assignments.append(f"{column} = {self._ctx.dialect.placeholder(cursor)}")
        if stamp is not None:
            assignments.append(f"{stamp[0]} = {stamp[1]}")
        return f"SET {', '.join(assignments)}", list(row.values()), cursor
