"""MySQL (unnumbered placeholder) dialect."""

from __future__ import annotations

from sieveql.compile.base import Dialect
from sieveql.schema.operators import PORTABLE_OPERATORS, Operator


class MySQLDialect(Dialect):
    """Renders fragments with the repeated ``?`` marker.

    Parameter style: ``?`` – compatible with ``mysql2``-style drivers that
    expand a list value bound to ``IN (?)`` into its elements.  The whole
    list is still one positional value, so fragment order and value order
    stay in lockstep exactly as in the numbered dialect.

    Note: MySQL does not support ``ILIKE``; it is mapped to ``LIKE``.
    MySQL's ``LIKE`` is case-insensitive for non-binary TEXT/VARCHAR columns
    by default.  PostgreSQL containment, overlap, regex and JSON-key
    operators are not available.
    """

    @property
    def dialect_name(self) -> str:
        return "mysql"

    def timestamp_expression(self, kind: str) -> str:
        if kind == "unix_timestamp":
            return "ROUND(UNIX_TIMESTAMP(NOW(3)) * 1000)"
        return "NOW()"

    def placeholder(self, position: int) -> str:
        return "?"

    def membership(self, key: str, placeholder: str, negated: bool) -> str:
        keyword = "NOT IN" if negated else "IN"
        return f"{key} {keyword} ({placeholder})"

    def like_operator(self, keyword: str) -> str:
        return "LIKE"  # MySQL has no ILIKE; LIKE is case-insensitive for TEXT by default

    @property
    def supported_operators(self) -> frozenset[Operator]:
        return PORTABLE_OPERATORS
