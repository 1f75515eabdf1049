"""sieveQL – Search-object compilation and transaction control for async SQL clients.

Public API
----------
``compare_fields``
    Compile a search object (and optional OR-alternatives) into fragments and
    an ordered list of bound values.

``get_fields_to_search`` / ``render_condition``
    Render compiled fragments as dialect-specific placeholder SQL.

``QueryBuilder`` / ``QueryBuilderFactory``
    Compose SELECT / INSERT / UPDATE / DELETE statements and run them through
    an async executor.

``TransactionManager``
    Run a unit of work inside one transaction on one pooled connection.

Extensibility
-------------
New dialects can be registered via::

    from sieveql.compile.registry import DialectFactory

    @DialectFactory.register("cockroach")
    class CockroachDialect(PostgresDialect):
        ...

After registration, every builder and renderer accepts ``dialect="cockroach"``.
"""

from __future__ import annotations

from sieveql.compile.base import CompiledSQL, Dialect
from sieveql.compile.builder import BuilderState, QueryBuilder, QueryBuilderFactory
from sieveql.compile.clause_builders import SubqueryHandle
from sieveql.compile.compare_fields import compare_fields
from sieveql.compile.mysql import MySQLDialect
from sieveql.compile.postgres import PostgresDialect
from sieveql.compile.registry import DialectFactory
from sieveql.compile.renderer import (
    get_fields_to_search,
    render_condition,
    render_order_by,
    render_pagination,
    sortable_fields_for,
)
from sieveql.config import Settings, get_settings, reset_settings
from sieveql.errors import (
    CompilationError,
    InvalidIsolationLevelError,
    InvalidJoinError,
    InvalidOrderError,
    OperatorValueError,
    OrGroupError,
    SieveQLError,
    TransactionStateError,
    TransactionTimeoutError,
    UnknownOperatorError,
    UnsupportedOperatorError,
    ValidationError,
)
from sieveql.log import configure_logging
from sieveql.schema.operators import Operator, OperatorCategory
from sieveql.schema.search import (
    UNSET,
    CompiledGroup,
    Fragment,
    JoinSpec,
    OrAlternative,
    OrderItem,
    Pagination,
    RenderedClauses,
    UpdateColumn,
)
from sieveql.transaction.manager import IsolationLevel, TransactionManager, TransactionState

# ---------------------------------------------------------------------------
# Register built-in dialects with DialectFactory
# ---------------------------------------------------------------------------

DialectFactory.register_class("postgres", PostgresDialect)
DialectFactory.register_class("mysql", MySQLDialect)

__all__ = [
    # Compilation
    "compare_fields",
    "get_fields_to_search",
    "render_condition",
    "render_order_by",
    "render_pagination",
    "sortable_fields_for",
    # Builder
    "BuilderState",
    "QueryBuilder",
    "QueryBuilderFactory",
    "SubqueryHandle",
    "CompiledSQL",
    # Dialects
    "Dialect",
    "DialectFactory",
    "MySQLDialect",
    "PostgresDialect",
    # Models
    "UNSET",
    "Operator",
    "OperatorCategory",
    "Fragment",
    "OrAlternative",
    "CompiledGroup",
    "OrderItem",
    "Pagination",
    "JoinSpec",
    "RenderedClauses",
    "UpdateColumn",
    # Transactions
    "IsolationLevel",
    "TransactionManager",
    "TransactionState",
    # Configuration / logging
    "Settings",
    "get_settings",
    "reset_settings",
    "configure_logging",
    # Errors
    "SieveQLError",
    "ValidationError",
    "UnknownOperatorError",
    "OperatorValueError",
    "UnsupportedOperatorError",
    "OrGroupError",
    "InvalidOrderError",
    "InvalidJoinError",
    "InvalidIsolationLevelError",
    "CompilationError",
    "TransactionStateError",
    "TransactionTimeoutError",
]
