"""ormspine core -- errors, logging, settings and backend contracts.

Manifesto:
    Everything the four ORM components share lives here, and nothing here
    knows about records, queries or transactions.  The core is the leaf of
    the dependency graph.

    - **Typed errors:** one hierarchy with retryable flags
    - **Structured logs:** structlog events with key/value context
    - **Validated settings:** pydantic-settings, ``ORMSPINE_*`` env vars
    - **Protocol-first:** Connection, Cursor and ConnectionPool are protocols

Architecture::

    errors.py          OrmError hierarchy (category, retryable, context)
    logging.py         configure_logging(), get_logger(), LogContext
    settings.py        OrmSettings + get_settings()
    dialect.py         PostgreSQL quoting and $n placeholders
    protocols.py       Connection / Cursor / ConnectionPool contracts
    cancellation.py    CancellationToken (cancel + deadline)

Tags:
    ormspine, core, errors, logging, settings, protocols

Doc-Types:
    package-overview, module-index
"""

from ormspine.core.cancellation import CancellationToken
from ormspine.core.dialect import POSTGRES, PostgreSQLDialect
from ormspine.core.errors import (
    ConfigError,
    DatabaseConnectionError,
    DatabaseError,
    DeadlineExceeded,
    ErrorCategory,
    ErrorContext,
    InvalidRecordError,
    InvalidSortOrderError,
    MappingError,
    ModelDefinitionError,
    MultipleRowsError,
    NonRetryableBackendError,
    NoRowsError,
    OperationCancelled,
    OrmError,
    QueryError,
    RetriesExhaustedError,
    RetryableBackendError,
    ScanError,
    TransactionClosedError,
    TransactionError,
    UnregisteredModelError,
    ValidationError,
)
from ormspine.core.logging import (
    LogContext,
    configure_logging,
    configure_logging_from_settings,
    get_logger,
)
from ormspine.core.protocols import Connection, ConnectionPool, Cursor, borrowed, column_names
from ormspine.core.settings import OrmSettings, get_settings

__all__ = [
    "CancellationToken",
    "ConfigError",
    "Connection",
    "ConnectionPool",
    "Cursor",
    "DatabaseConnectionError",
    "DatabaseError",
    "DeadlineExceeded",
    "ErrorCategory",
    "ErrorContext",
    "InvalidRecordError",
    "InvalidSortOrderError",
    "LogContext",
    "MappingError",
    "ModelDefinitionError",
    "MultipleRowsError",
    "NoRowsError",
    "NonRetryableBackendError",
    "OperationCancelled",
    "OrmError",
    "OrmSettings",
    "POSTGRES",
    "PostgreSQLDialect",
    "QueryError",
    "RetriesExhaustedError",
    "RetryableBackendError",
    "ScanError",
    "TransactionClosedError",
    "TransactionError",
    "UnregisteredModelError",
    "ValidationError",
    "borrowed",
    "column_names",
    "configure_logging",
    "configure_logging_from_settings",
    "get_logger",
    "get_settings",
]
