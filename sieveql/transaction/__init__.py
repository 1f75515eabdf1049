"""Transaction control on pooled connections."""
from sieveql.transaction.manager import IsolationLevel, TransactionManager, TransactionState

__all__ = ["IsolationLevel", "TransactionManager", "TransactionState"]
