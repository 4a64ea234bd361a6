"""
Structured error types for ormspine.

Every failure the ORM can produce is an ``OrmError`` subclass carrying a
category, a retryable flag, structured context (table, operation, SQL text,
attempt number) and the chained backend exception.  The Transaction Manager
reads ``retryable`` to decide whether a failed body is worth another
attempt, and log events serialise errors through ``to_dict()``.

Manifesto:
    - **Typed hierarchy:** One class per failure mode named in the design
    - **Explicit retry semantics:** Each error knows if it is retryable
    - **Context, not string soup:** Table/operation/SQL travel as fields
    - **Chaining:** Backend exceptions are kept as ``__cause__``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                          OrmError                                │
        │        (category, retryable, context, cause)                     │
        ├─────────────────────────────────────────────────────────────────┤
        │  ConfigError            UnregisteredModelError                   │
        │  ModelDefinitionError   (programmer error, never retried)        │
        │                                                                  │
        │  ValidationError        MappingError          TransactionError   │
        │  InvalidSortOrderError  ScanError             TransactionClosed  │
        │  InvalidRecordError     NoRowsError           RetriesExhausted   │
        │                         MultipleRowsError                        │
        │                                                                  │
        │  DatabaseError          CancelledError                           │
        │  QueryError             OperationCancelled                       │
        │   ├ RetryableBackendError  DeadlineExceeded                      │
        │   └ NonRetryableBackendError                                     │
        │  DatabaseConnectionError                                         │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> err = QueryError("insert failed", retryable=True)
    >>> err.retryable
    True
    >>> err.with_context(table="ai_model").context.table
    'ai_model'

Tags:
    error-handling, exception-hierarchy, retry-logic, ormspine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for classification and log routing."""

    DATABASE = "DATABASE"         # Backend / pool failures
    VALIDATION = "VALIDATION"     # Bad caller input (sort order, records)
    MAPPING = "MAPPING"           # Row-to-record mapping failures
    TRANSACTION = "TRANSACTION"   # Transaction lifecycle misuse
    CANCELLED = "CANCELLED"       # External cancellation / deadline
    CONFIG = "CONFIG"             # Settings, model definitions
    INTERNAL = "INTERNAL"         # Programmer errors
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Only non-None fields are serialised by ``to_dict()``; anything that has
    no dedicated field goes into ``metadata``.
    """

    table: str | None = None
    operation: str | None = None
    sql: str | None = None
    attempt: int | None = None
    sqlstate: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["table", "operation", "sql", "attempt", "sqlstate"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class OrmError(Exception):
    """
    Base exception for all ormspine errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> OrmError:
        """
        Add context to this error (fluent API).

        Usage:
            raise QueryError("select failed").with_context(table="realm")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION / PROGRAMMER ERRORS
# =============================================================================


class ConfigError(OrmError):
    """Invalid settings or missing driver."""

    default_category = ErrorCategory.CONFIG


class ModelDefinitionError(ConfigError):
    """A record type cannot be described (not a dataclass, bad annotation)."""


class UnregisteredModelError(OrmError):
    """An accessor was used for a table that was never registered.

    This is a programmer error: it is raised immediately and never retried.
    """

    default_category = ErrorCategory.INTERNAL

    def __init__(self, table: str):
        super().__init__(
            f"table name not initialized: {table}",
            context=ErrorContext(table=table),
        )
        self.table = table


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(OrmError):
    """Caller-supplied input is invalid."""

    default_category = ErrorCategory.VALIDATION


class InvalidSortOrderError(ValidationError):
    """Sort direction outside ``{ASC, DESC}``."""

    def __init__(self, direction: str, field_name: str | None = None):
        super().__init__(f"invalid sort order: {direction}")
        self.direction = direction
        self.field_name = field_name
        if field_name is not None:
            self.context.metadata["field"] = field_name


class InvalidRecordError(ValidationError):
    """A values mapping or record cannot produce a statement."""


# =============================================================================
# MAPPING ERRORS
# =============================================================================


class MappingError(OrmError):
    """Base for row-to-record mapping failures."""

    default_category = ErrorCategory.MAPPING


class ScanError(MappingError):
    """A column value could not be assigned or decoded."""


class NoRowsError(MappingError):
    """A single-record scan found no rows (the "not found" outcome)."""

    def __init__(self, message: str = "no rows in result set", **kwargs: Any):
        super().__init__(message, **kwargs)


class MultipleRowsError(MappingError):
    """A single-record scan found more than one row."""

    def __init__(
        self,
        message: str = "query returned multiple rows for a single destination",
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(OrmError):
    """Backend-originated failure."""

    default_category = ErrorCategory.DATABASE


class QueryError(DatabaseError):
    """A statement failed; wraps the driver error with table/SQL context."""


class RetryableBackendError(QueryError):
    """Backend error classified as transient (deadlock, serialization)."""

    default_retryable = True


class NonRetryableBackendError(QueryError):
    """Backend error that must be propagated immediately."""


class DatabaseConnectionError(DatabaseError):
    """Pool could not be opened or a connection could not be acquired.

    Not retried: an acquire has already waited the full pool timeout.
    """


# =============================================================================
# TRANSACTION ERRORS
# =============================================================================


class TransactionError(OrmError):
    """Base for transaction lifecycle errors."""

    default_category = ErrorCategory.TRANSACTION


class TransactionClosedError(TransactionError):
    """Operation attempted on a committed or rolled back transaction."""

    def __init__(self, message: str = "transaction has already been committed or rolled back"):
        super().__init__(message)


class RetriesExhaustedError(TransactionError):
    """A retryable failure persisted through every allowed attempt."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(
            f"transaction max retries exceeded after {attempts} attempts: {last_error}",
            context=ErrorContext(attempt=attempts),
            cause=last_error,
        )
        self.attempts = attempts
        self.last_error = last_error


# =============================================================================
# CANCELLATION
# =============================================================================


class CancelledError(OrmError):
    """Base for external cancellation outcomes."""

    default_category = ErrorCategory.CANCELLED


class OperationCancelled(CancelledError):
    """The caller's cancellation token fired."""

    def __init__(self, operation: str = "operation"):
        super().__init__(
            f"operation '{operation}' was cancelled",
            context=ErrorContext(operation=operation),
        )


class DeadlineExceeded(CancelledError):
    """The caller's deadline passed before the operation finished."""

    def __init__(self, timeout: float, operation: str = "operation"):
        super().__init__(
            f"operation '{operation}' exceeded its deadline of {timeout}s",
            context=ErrorContext(operation=operation),
        )
        self.timeout = timeout


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "OrmError",
    # Config
    "ConfigError",
    "ModelDefinitionError",
    "UnregisteredModelError",
    # Validation
    "ValidationError",
    "InvalidSortOrderError",
    "InvalidRecordError",
    # Mapping
    "MappingError",
    "ScanError",
    "NoRowsError",
    "MultipleRowsError",
    # Database
    "DatabaseError",
    "QueryError",
    "RetryableBackendError",
    "NonRetryableBackendError",
    "DatabaseConnectionError",
    # Transactions
    "TransactionError",
    "TransactionClosedError",
    "RetriesExhaustedError",
    # Cancellation
    "CancelledError",
    "OperationCancelled",
    "DeadlineExceeded",
]
