"""PostgreSQL (numbered placeholder) dialect."""

from __future__ import annotations

from sieveql.compile.base import Dialect
from sieveql.schema.operators import Operator


class PostgresDialect(Dialect):
    """Renders fragments with numbered placeholders.

    Parameter style: ``$1``, ``$2`` … – compatible with ``asyncpg`` and
    ``node-postgres``-style positional execution.  Lists bound to
    ``$in`` / ``$nin`` travel as one array value and are tested with
    ``= ANY(...)``.
    """

    @property
    def dialect_name(self) -> str:
        return "postgres"

    def timestamp_expression(self, kind: str) -> str:
        if kind == "unix_timestamp":
            return "ROUND((EXTRACT(EPOCH FROM NOW()) * (1000)::NUMERIC))"
        return "NOW()"

    def placeholder(self, position: int) -> str:
        return f"${position}"

    def membership(self, key: str, placeholder: str, negated: bool) -> str:
        if negated:
            return f"NOT ({key} = ANY ({placeholder}))"
        return f"{key} = ANY ({placeholder})"

    def like_operator(self, keyword: str) -> str:
        return keyword  # 'LIKE' or 'ILIKE' - PostgreSQL supports both natively

    @property
    def supported_operators(self) -> frozenset[Operator]:
        return frozenset(Operator)
