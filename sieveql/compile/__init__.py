"""sieveQL compilation layer: search objects → parameterized SQL."""
from sieveql.compile.base import CompiledSQL, Dialect
from sieveql.compile.builder import QueryBuilder, QueryBuilderFactory
from sieveql.compile.clause_builders import SubqueryHandle
from sieveql.compile.compare_fields import compare_fields
from sieveql.compile.mysql import MySQLDialect
from sieveql.compile.postgres import PostgresDialect
from sieveql.compile.renderer import get_fields_to_search, render_condition

__all__ = [
    "CompiledSQL",
    "Dialect",
    "QueryBuilder",
    "QueryBuilderFactory",
    "SubqueryHandle",
    "compare_fields",
    "MySQLDialect",
    "PostgresDialect",
    "get_fields_to_search",
    "render_condition",
]
