"""sieveQL schema models: operators, fragments, compiled groups, clause options."""
from sieveql.schema.operators import (
    OPERATOR_TABLE,
    SEARCH_KEYS,
    Operator,
    OperatorCategory,
    OperatorSpec,
)
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

__all__ = [
    "OPERATOR_TABLE",
    "SEARCH_KEYS",
    "Operator",
    "OperatorCategory",
    "OperatorSpec",
    "UNSET",
    "CompiledGroup",
    "Fragment",
    "JoinSpec",
    "OrAlternative",
    "OrderItem",
    "Pagination",
    "RenderedClauses",
    "UpdateColumn",
]
