"""Dialect abstractions: CompiledSQL and the Dialect ABC.

A dialect is the small descriptor the renderer is parameterised by.  The
renderer itself is written once; dialects only decide:

- how the n-th placeholder is spelled (``$n`` or ``?``),
- how list membership is expressed (``= ANY($n)`` or ``IN (?)``),
- which LIKE keyword survives (MySQL has no ``ILIKE``),
- which operators exist at all.

Because both dialects go through the same renderer, arity and ordering are
enforced identically for both.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from sieveql.schema.operators import Operator


@dataclass
class CompiledSQL:
    """A finished statement ready for the executor.

    Attributes:
        query: SQL text with positional placeholders.
        values: Bound values, one per placeholder, in text order.
        dialect: The dialect the text was rendered for.
    """

    query: str
    values: list[Any] = field(default_factory=list)
    dialect: str = "postgres"


class Dialect(ABC):
    """Abstract base for placeholder dialects."""

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the canonical dialect name (``'postgres'`` or ``'mysql'``)."""

    @abstractmethod
    def timestamp_expression(self, kind: str) -> str:
        """Return the SQL expression for the current time.

        Args:
            kind: ``'timestamp'`` for a native timestamp or
                ``'unix_timestamp'`` for epoch milliseconds.
        """

    @abstractmethod
    def placeholder(self, position: int) -> str:
        """Return the placeholder text for the ``position``-th bound value.

        Args:
            position: 1-based position of the value within the statement.
                Unnumbered dialects ignore it.
        """

    @abstractmethod
    def membership(self, key: str, placeholder: str, negated: bool) -> str:
        """Render an IN / NOT IN test that binds the whole list once.

        Args:
            key: Field expression.
            placeholder: The single placeholder for the list value.
            negated: True for NOT IN.
        """

    @abstractmethod
    def like_operator(self, keyword: str) -> str:
        """Return the SQL keyword for a LIKE / ILIKE operator.

        Args:
            keyword: ``'LIKE'`` or ``'ILIKE'``.
        """

    @property
    @abstractmethod
    def supported_operators(self) -> frozenset[Operator]:
        """Operators this dialect can render."""
