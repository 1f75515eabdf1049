"""Compilation context value object.

Packages the ``(dialect, sortable_fields)`` pair that every clause-level
sub-builder of one :class:`~sieveql.compile.builder.QueryBuilder` needs
into a single immutable object.  It is shared (not copied) between a
builder and its clones.
"""
from __future__ import annotations

from dataclasses import dataclass

from sieveql.compile.base import Dialect


@dataclass(frozen=True)
class CompilationContext:
    """Immutable configuration of one builder.

    Attributes:
        dialect: Placeholder dialect.
        sortable_fields: ORDER BY allow-list, or ``None`` to accept any field.
    """

    dialect: Dialect
    sortable_fields: frozenset[str] | None = None


def source_qualifier(source: str) -> str:
    """Return the name a data source is referred to by in JOIN conditions.

    ``"users"`` → ``"users"``; ``"users AS u"`` / ``"users u"`` → ``"u"``.
    """
    chunks = [c for c in source.split() if c.lower() != "as"]
    if len(chunks) > 1:
        return chunks[1]
    return source.strip()
