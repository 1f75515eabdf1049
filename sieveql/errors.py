"""Custom exception hierarchy for sieveQL.

All public errors inherit from SieveQLError so callers can catch the base
class for any sieveQL-specific failure.  Driver errors raised while a
statement runs are never wrapped; they reach the caller unchanged.
"""
from __future__ import annotations

from typing import Any


class SieveQLError(Exception):
    """Base exception for all sieveQL errors."""


class ValidationError(SieveQLError):
    """Raised when a search object, order spec, or option fails validation.

    Always raised synchronously, before any statement reaches the executor.

    Args:
        message: Human-readable description.
        code: Machine-readable error code (e.g. UNKNOWN_OPERATOR).
        details: Extra context for diagnostics.
    """

    def __init__(
        self,
        message: str,
        code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details: dict[str, Any] = details or {}

    def to_error_response(self) -> dict[str, Any]:
        """Returns a structured error response suitable for API layers."""
        return {
            "error": self.code,
            "message": str(self),
            "details": self.details,
        }


class UnknownOperatorError(ValidationError):
    """Raised when a search object uses an operator key that does not exist."""

    def __init__(self, key: str, field: str, allowed_keys: list[str]) -> None:
        super().__init__(
            f"Invalid operator key '{key}' for field '{field}'. "
            f"Available values: {', '.join(allowed_keys)}",
            code="UNKNOWN_OPERATOR",
            details={"key": key, "field": field, "allowed_keys": allowed_keys},
        )


class OperatorValueError(ValidationError):
    """Raised when an operator receives a value of the wrong shape."""

    def __init__(self, key: str, field: str, reason: str) -> None:
        super().__init__(
            f"Invalid value for '{key}' on field '{field}': {reason}",
            code="INVALID_OPERATOR_VALUE",
            details={"key": key, "field": field, "reason": reason},
        )


class UnsupportedOperatorError(ValidationError):
    """Raised when an operator is not available in the selected dialect."""

    def __init__(self, operator: str, dialect: str, supported: list[str]) -> None:
        super().__init__(
            f"Operator '{operator}' is not supported by the '{dialect}' dialect.",
            code="UNSUPPORTED_OPERATOR",
            details={"operator": operator, "dialect": dialect, "supported": supported},
        )


class OrGroupError(ValidationError):
    """Raised when an OR-alternative array is too short or has empty members."""

    def __init__(self, message: str, index: int | None = None) -> None:
        super().__init__(
            message,
            code="INVALID_OR_GROUP",
            details={"index": index} if index is not None else {},
        )


class InvalidOrderError(ValidationError):
    """Raised when an ORDER BY field or direction is not allowed."""

    def __init__(
        self,
        message: str,
        order_by: str | None = None,
        allowed: list[str] | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if order_by is not None:
            details["order_by"] = order_by
        if allowed is not None:
            details["allowed"] = allowed
        super().__init__(message, code="INVALID_ORDER", details=details)


class InvalidJoinError(ValidationError):
    """Raised when a join description is missing fields or carries unknown ones."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        details: dict[str, Any] = {}
        if errors:
            details["errors"] = errors
        super().__init__(message, code="INVALID_JOIN", details=details)


class InvalidIsolationLevelError(ValidationError):
    """Raised when a transaction isolation level token is not recognised."""

    def __init__(self, level: object, allowed: list[str]) -> None:
        super().__init__(
            f"Invalid transaction isolation level provided: {level!r}. "
            f"Allowed levels: {', '.join(allowed)}",
            code="INVALID_ISOLATION_LEVEL",
            details={"level": str(level), "allowed": allowed},
        )


class CompilationError(SieveQLError):
    """Raised when the query builder is driven into an inconsistent state.

    Args:
        message: Human-readable description.
        clause: The clause being compiled when the error occurred.
    """

    def __init__(self, message: str, clause: str | None = None) -> None:
        super().__init__(message)
        self.clause = clause


class TransactionTimeoutError(SieveQLError):
    """Raised when a managed transaction's work outlives its timeout.

    The transaction has already been rolled back and its connection released
    by the time the caller sees this error.

    Args:
        label: Correlation label of the transaction (its transaction id).
        timeout: The timeout that expired, in seconds.
    """

    def __init__(self, label: str, timeout: float) -> None:
        super().__init__(f"Transaction ({label}) timed out after {timeout}s")
        self.label = label
        self.timeout = timeout


class TransactionStateError(SieveQLError):
    """Raised when a transaction step is taken out of order (e.g. commit before begin)."""

    def __init__(self, action: str, state: str) -> None:
        super().__init__(f"Cannot {action} a transaction in state {state}.")
        self.action = action
        self.state = state
