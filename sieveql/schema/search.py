"""Pydantic models for compiled search groups and clause options.

A search object (``params``) is a plain mapping supplied by the caller::

    {
        "status": "active",                         # equality
        "deleted_at": None,                         # IS NULL
        "age": [{"$gte": 18}, {"$lt": 65}],         # two operators, ANDed
        "tags": {"$in": ["a", "b"]},                # whole list bound once
        "note": UNSET,                              # dropped
    }

:func:`~sieveql.compile.compare_fields.compare_fields` turns it into a
:class:`CompiledGroup`: value-free :class:`Fragment` objects plus a
parallel list of bound values.  The renderer then turns fragments into SQL
text.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sieveql.schema.operators import Operator

#: Accepted ORDER BY directions.
Ordering = Literal["ASC", "DESC"]

ORDERINGS: frozenset[str] = frozenset({"ASC", "DESC"})

#: Accepted ``UpdateColumn.type`` values.
TIMESTAMP_KINDS: frozenset[str] = frozenset({"timestamp", "unix_timestamp"})


class _Unset:
    """Marker for a search entry that must be left out of the query."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


#: Sentinel for "field omitted"; entries holding it are skipped by the compiler.
UNSET: Any = _Unset()


class Fragment(BaseModel):
    """One compiled, value-free comparison.

    Attributes:
        key: Field (column expression) the comparison applies to.
        operator: The comparison operator.
        sign: SQL operator text for :attr:`Operator.CUSTOM` fragments.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    key: str
    operator: Operator
    sign: str | None = None


class OrAlternative(BaseModel):
    """One OR-alternative: its fragments are ANDed together."""

    model_config = ConfigDict(extra="forbid")

    query: list[Fragment] = Field(default_factory=list)


class CompiledGroup(BaseModel):
    """Output of the parameter compiler.

    Attributes:
        query_array: Main AND-group.
        query_or_array: OR-alternatives, ORed together and ANDed with the
            main group.
        values: Bound values in the exact order their placeholders are
            rendered: main-group fragments first, then each alternative in
            turn.
    """

    model_config = ConfigDict(extra="forbid")

    query_array: list[Fragment] = Field(default_factory=list)
    query_or_array: list[OrAlternative] = Field(default_factory=list)
    values: list[Any] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when neither the main group nor any alternative has fragments."""
        return not self.query_array and not self.query_or_array


class Pagination(BaseModel):
    """LIMIT / OFFSET request.

    Missing, negative or non-integer values are kept as ``None`` and replaced
    by the configured defaults when rendered.  A float with no fractional
    part (``10.0``) is taken as the integer it spells.
    """

    model_config = ConfigDict(extra="ignore")

    limit: int | None = None
    offset: int | None = None

    @field_validator("limit", "offset", mode="before")
    @classmethod
    def _drop_non_integers(cls, v: Any) -> Any:
        if isinstance(v, bool):
            return None
        if isinstance(v, float) and v.is_integer():
            v = int(v)
        if not isinstance(v, int) or v < 0:
            return None
        return v


class OrderItem(BaseModel):
    """A single ORDER BY entry.

    Accepts both ``order_by`` / ``ordering`` and the camel-case
    ``orderBy`` spelling.  The direction is validated by the renderer so that
    an invalid token surfaces as :class:`~sieveql.errors.InvalidOrderError`.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    order_by: str = Field(alias="orderBy")
    ordering: str = "ASC"


class JoinSpec(BaseModel):
    """Description of one JOIN.

    Renders as ``<TYPE> JOIN <target_table> [AS <target_alias>] ON
    <target_alias|target_table>.<target_field> = <source_table>.<source_field>``.

    Attributes:
        target_table: Table being joined.
        target_field: Join column on the target table.
        source_field: Join column on the source side.
        target_alias: Optional alias for the joined table.
        source_table: Source qualifier; defaults to the builder's table.
    """

    model_config = ConfigDict(extra="forbid")

    target_table: str
    target_field: str
    source_field: str
    target_alias: str | None = None
    source_table: str | None = None


class UpdateColumn(BaseModel):
    """A column stamped with the current time on INSERT or UPDATE.

    The value is a SQL expression, not a bound value.  ``type`` is checked
    against :data:`TIMESTAMP_KINDS` by the clause builders so that an unknown
    kind surfaces as :class:`~sieveql.errors.CompilationError`.

    Attributes:
        title: Column name.
        type: ``'timestamp'`` (native ``NOW()``) or ``'unix_timestamp'``
            (epoch milliseconds).
    """

    model_config = ConfigDict(extra="forbid")

    title: str
    type: str = "timestamp"


class RenderedClauses(BaseModel):
    """Ready-to-concatenate SQL fragments produced by the renderer.

    Attributes:
        selected_fields: Comma-separated select list.
        search_fields: ``WHERE ...`` clause (``WHERE 1=1`` when unconstrained).
        order_by_fields: ``ORDER BY ...`` or empty string.
        pagination_fields: ``LIMIT n OFFSET m`` or empty string.
        end_cursor: Placeholder cursor after the WHERE clause.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    selected_fields: str
    search_fields: str
    order_by_fields: str = ""
    pagination_fields: str = ""
    end_cursor: int = 0
