"""
Transaction Manager: begin / commit / rollback envelopes with retry.

Manifesto:
    A body either commits as a whole or leaves no trace.  Transient
    conflicts (deadlocks, serialization failures) are retried with
    exponential backoff; everything else surfaces at once.

    - **Explicit retry only:** nothing is retried outside ``run_with_retry``
    - **Rollback first:** a failed attempt is rolled back before the wait
    - **Cancellable wait:** the backoff sleep aborts as soon as the token fires
    - **Read-only is the server's job:** writes in READ ONLY transactions fail
      with the backend error

Architecture:
    ::

        run_with_retry(body, options)
        │
        ├─ attempt 0 ── begin ── body(tx) ── commit ──► result
        │                  └── error ── rollback
        │                         ├─ non-retryable ─────► raise
        │                         └─ retryable ── wait base·2^0 ±20%
        ├─ attempt 1 ── ...                        (token.wait)
        └─ attempt max_retries-1 fails ──► RetriesExhaustedError(last error)

Examples:
    >>> manager = TransactionManager(pool, registry=registry)
    >>> def transfer(tx):
    ...     tx.execute('UPDATE "account" SET balance = balance - $1 WHERE id = $2', [10, 1])
    ...     tx.execute('UPDATE "account" SET balance = balance + $1 WHERE id = $2', [10, 2])
    >>> manager.run_serializable(transfer)

Tags:
    transactions, retry, backoff, isolation, ormspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from ormspine.core.cancellation import CancellationToken, sleep
from ormspine.core.errors import OrmError, RetriesExhaustedError
from ormspine.core.logging import get_logger
from ormspine.core.protocols import ConnectionPool
from ormspine.mapping.mapper import ResultMapper
from ormspine.models.registry import ModelRegistry

from .backoff import ExponentialBackoff, RetryStrategy
from .classify import classify_backend_error, is_retryable_error
from .handle import TransactionHandle
from .options import (
    DEFAULT_TX_OPTIONS,
    AccessMode,
    IsolationLevel,
    TransactionOptions,
)

logger = get_logger(__name__)

T = TypeVar("T")
Body = Callable[[TransactionHandle], T]


class TransactionManager:
    """Runs bodies inside transactions on connections borrowed from a pool."""

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        registry: ModelRegistry | None = None,
        mapper: ResultMapper | None = None,
        backoff: RetryStrategy | None = None,
        options: TransactionOptions | None = None,
        acquire_timeout: float | None = None,
    ):
        self.pool = pool
        self.registry = registry
        self.mapper = mapper or (ResultMapper(registry) if registry is not None else None)
        self.backoff = backoff or ExponentialBackoff()
        self.options = options or DEFAULT_TX_OPTIONS
        self.acquire_timeout = acquire_timeout

    def begin(
        self,
        options: TransactionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> TransactionHandle:
        """Borrow a connection and open a transaction on it."""
        options = options or self.options
        timeout = self.acquire_timeout
        if token is not None:
            token.check("begin")
            timeout = token.clip(timeout)

        conn = self.pool.acquire(timeout)
        statement = options.begin_statement()
        try:
            conn.execute(statement)
        except Exception as e:
            self.pool.release(conn)
            raise classify_backend_error(e, sql=statement, operation="begin") from e

        logger.debug(
            "transaction_begin",
            isolation=options.isolation.value,
            access_mode=options.access_mode.value,
        )
        return TransactionHandle(
            conn,
            options,
            release=self.pool.release,
            registry=self.registry,
            mapper=self.mapper,
            token=token,
        )

    @contextmanager
    def transaction(
        self,
        options: TransactionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> Iterator[TransactionHandle]:
        """Commit on normal exit; roll back on any exception, then re-raise."""
        tx = self.begin(options, token)
        try:
            yield tx
        except BaseException:
            self._rollback_after_error(tx)
            raise
        if not tx.closed:
            tx.commit()

    def _rollback_after_error(self, tx: TransactionHandle) -> None:
        if tx.closed:
            return
        try:
            tx.rollback()
        except OrmError as rb_error:
            # The body's exception is the one that propagates
            logger.warning("transaction_rollback", outcome="failed", error=str(rb_error))

    def run(
        self,
        body: Body[T],
        options: TransactionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> T:
        """``body(tx)`` in one transaction, without retry."""
        with self.transaction(options, token) as tx:
            return body(tx)

    def run_with_retry(
        self,
        body: Body[T],
        options: TransactionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> T:
        """``body(tx)`` with up to ``options.max_retries`` attempts.

        Raises:
            RetriesExhaustedError: every attempt failed with a retryable error
            OperationCancelled / DeadlineExceeded: the token fired, including
                during a backoff wait
            Any non-retryable error from ``body`` or the backend, unchanged
        """
        options = options or self.options
        last_error: BaseException | None = None

        for attempt in range(options.max_retries):
            try:
                return self.run(body, options, token)
            except Exception as e:
                if not is_retryable_error(e):
                    raise
                last_error = e

            if attempt + 1 >= options.max_retries:
                break
            delay = self.backoff.next_delay(attempt)
            logger.warning(
                "transaction_retry",
                attempt=attempt + 1,
                max_retries=options.max_retries,
                delay=round(delay, 3),
                error=str(last_error),
            )
            sleep(delay, token)

        assert last_error is not None
        logger.error(
            "transaction_retries_exhausted",
            attempts=options.max_retries,
            error=str(last_error),
        )
        raise RetriesExhaustedError(options.max_retries, last_error)

    # -- Convenience -------------------------------------------------------

    def run_read_only(self, body: Body[T], token: CancellationToken | None = None) -> T:
        options = self.options.with_access_mode(AccessMode.READ_ONLY)
        return self.run(body, options, token)

    def run_serializable(self, body: Body[T], token: CancellationToken | None = None) -> T:
        options = self.options.with_isolation(IsolationLevel.SERIALIZABLE)
        return self.run_with_retry(body, options, token)

    def run_read_committed(self, body: Body[T], token: CancellationToken | None = None) -> T:
        options = self.options.with_isolation(IsolationLevel.READ_COMMITTED)
        return self.run(body, options, token)


__all__ = [
    "TransactionManager",
]
