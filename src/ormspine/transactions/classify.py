"""Retryable-error classification.

SQLSTATE codes are authoritative: if any exception along the cause chain
carries a ``sqlstate`` (psycopg 3) or ``pgcode`` (psycopg2) attribute, the
code alone decides.  Only errors without a code fall back to matching their
text against known deadlock / serialization markers.
"""

from __future__ import annotations

from collections.abc import Iterator

from ormspine.core.errors import (
    CancelledError,
    DatabaseError,
    NonRetryableBackendError,
    OrmError,
    QueryError,
    RetryableBackendError,
)

RETRYABLE_SQLSTATES = frozenset({
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available
    "08006",  # connection_failure
    "08003",  # connection_does_not_exist
})

RETRYABLE_MARKERS = (
    "deadlock detected",
    "serialize",
    "serialization",
    "conflict",
    "concurrent update",
    "could not serialize access",
    "deadlock",
    "lock wait timeout",
    "lock timeout",
    "connection reset",
    "40001",
    "40P01",
)


def error_chain(error: BaseException) -> Iterator[BaseException]:
    """``error`` and every exception it was raised from, without cycles."""
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        nxt = current.__cause__ or current.__context__
        if nxt is None and isinstance(current, OrmError):
            nxt = current.cause
        current = nxt


def sqlstate_of(error: BaseException) -> str | None:
    for exc in error_chain(error):
        for attr in ("sqlstate", "pgcode"):
            code = getattr(exc, attr, None)
            if isinstance(code, str) and code:
                return code
        if isinstance(exc, OrmError) and exc.context.sqlstate:
            return exc.context.sqlstate
    return None


def matches_retryable_text(error: BaseException) -> bool:
    for exc in error_chain(error):
        text = str(exc).lower()
        if any(marker.lower() in text for marker in RETRYABLE_MARKERS):
            return True
    return False


def is_retryable_error(error: BaseException) -> bool:
    """True when ``error`` is a transient backend failure worth another attempt."""
    if isinstance(error, CancelledError):
        return False
    if isinstance(error, OrmError) and not isinstance(error, DatabaseError):
        return error.retryable
    code = sqlstate_of(error)
    if code is not None:
        return code in RETRYABLE_SQLSTATES
    if isinstance(error, OrmError) and error.retryable:
        return True
    return matches_retryable_text(error)


def classify_backend_error(
    error: BaseException,
    *,
    sql: str | None = None,
    operation: str | None = None,
) -> QueryError:
    """Wrap a driver exception as a retryable or non-retryable ``QueryError``."""
    code = sqlstate_of(error)
    cls = RetryableBackendError if is_retryable_error(error) else NonRetryableBackendError
    wrapped = cls(str(error) or type(error).__name__, cause=error)
    wrapped.with_context(sql=sql, operation=operation, sqlstate=code)
    return wrapped


__all__ = [
    "RETRYABLE_MARKERS",
    "RETRYABLE_SQLSTATES",
    "classify_backend_error",
    "error_chain",
    "is_retryable_error",
    "matches_retryable_text",
    "sqlstate_of",
]
