"""
TransactionHandle: one live backend transaction on a borrowed connection.

States::

    ACTIVE ──commit()──►   COMMITTED
       │
       └────rollback()──► ROLLED_BACK

Every operation on a terminal handle raises ``TransactionClosedError``
without touching the connection.  The handle gives its connection back to
the pool exactly once, when it leaves ``ACTIVE`` (a failed COMMIT ends in
``ROLLED_BACK``, since the server has aborted the transaction).

A handle is not safe for concurrent use; callers serialise all operations
on one transaction.

Tags:
    transactions, handle, lifecycle, ormspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from contextlib import nullcontext
from enum import Enum
from typing import Any, TypeVar

from ormspine.core.cancellation import CancellationToken
from ormspine.core.errors import (
    InvalidRecordError,
    OperationCancelled,
    OrmError,
    TransactionClosedError,
)
from ormspine.core.logging import get_logger
from ormspine.core.protocols import Connection, Cursor
from ormspine.mapping.mapper import ResultMapper
from ormspine.models.registry import ModelRegistry
from ormspine.query.compiler import CompiledQuery
from ormspine.query.statements import (
    delete_statement,
    insert_statement,
    record_values,
    update_statement,
    update_where_statement,
)

from .classify import classify_backend_error
from .options import TransactionOptions

logger = get_logger(__name__)

T = TypeVar("T")


def execute_statement(
    conn: Connection,
    sql: str,
    args: Sequence[Any] | None = None,
    *,
    token: CancellationToken | None = None,
    operation: str = "execute",
) -> Cursor:
    """Execute one statement, mapping driver failures to classified ``QueryError``.

    While the statement runs, cancelling ``token`` calls ``conn.cancel()``.
    """
    if token is not None:
        token.check(operation)
    cancel = getattr(conn, "cancel", None)
    guard = token.bind(cancel) if token is not None and cancel is not None else nullcontext()
    try:
        with guard:
            return conn.execute(sql, list(args) if args is not None else None)
    except OrmError:
        raise
    except Exception as e:
        if token is not None and token.cancelled:
            raise OperationCancelled(operation) from e
        logger.warning("query_failed", operation=operation, sql=sql, error=str(e))
        raise classify_backend_error(e, sql=sql, operation=operation) from e


class TransactionState(str, Enum):
    ACTIVE = "ACTIVE"
    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"


class TransactionHandle:
    """A single transaction; created by ``TransactionManager.begin()``."""

    def __init__(
        self,
        conn: Connection,
        options: TransactionOptions,
        *,
        release: Callable[[Connection], None] | None = None,
        registry: ModelRegistry | None = None,
        mapper: ResultMapper | None = None,
        token: CancellationToken | None = None,
    ):
        self.conn = conn
        self.options = options
        self.registry = registry
        self.mapper = mapper
        self.token = token
        self._release = release
        self._state = TransactionState.ACTIVE

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is not TransactionState.ACTIVE

    def _require_active(self) -> None:
        if self.closed:
            raise TransactionClosedError()

    # -- Statement execution -----------------------------------------------

    def query(self, sql: str, args: Sequence[Any] | None = None) -> Cursor:
        """Execute ``sql`` and return the cursor."""
        self._require_active()
        return self._run(sql, args, "query")

    def execute(self, sql: str, args: Sequence[Any] | None = None) -> int:
        """Execute ``sql`` and return the affected row count."""
        self._require_active()
        return self._run(sql, args, "execute").rowcount

    def _run(self, sql: str, args: Sequence[Any] | None, operation: str) -> Cursor:
        return execute_statement(self.conn, sql, args, token=self.token, operation=operation)

    # -- Mapped reads --------------------------------------------------------

    def _require_mapper(self) -> ResultMapper:
        if self.mapper is None:
            raise InvalidRecordError("transaction has no result mapper attached")
        return self.mapper

    def fetch_one(self, sql: str, args: Sequence[Any] | None, record_type: type[T]) -> T:
        mapper = self._require_mapper()
        return mapper.scan_one(self.query(sql, args), record_type)

    def fetch_all(self, sql: str, args: Sequence[Any] | None, record_type: type[T]) -> list[T]:
        mapper = self._require_mapper()
        return mapper.scan_all(self.query(sql, args), record_type)

    # -- Writes through the registry ---------------------------------------------

    def _require_registry(self) -> ModelRegistry:
        if self.registry is None:
            raise InvalidRecordError("transaction has no model registry attached")
        return self.registry

    def _returning(self, statement: CompiledQuery, returning: str | None) -> Any:
        if not returning:
            self.execute(statement.sql, statement.args)
            return None
        row = self.query(statement.sql, statement.args).fetchone()
        return row[0] if row is not None else None

    def insert(self, table: str, values: dict[str, Any], returning: str | None = None) -> Any:
        """INSERT ``values``; the returned column value is also stored in ``values``."""
        self._require_active()
        statement = insert_statement(self._require_registry(), table, values, returning)
        result = self._returning(statement, returning)
        if returning:
            values[returning] = result
        return result

    def update(self, table: str, values: dict[str, Any], key: str) -> Any:
        """UPDATE the row identified by ``values[key]``; returns the key value."""
        self._require_active()
        statement = update_statement(self._require_registry(), table, values, key)
        return self._returning(statement, key)

    def delete(self, table: str, where: str, args: Sequence[Any] | None = None) -> int:
        self._require_active()
        statement = delete_statement(self._require_registry(), table, where, args)
        return self.execute(statement.sql, statement.args)

    def insert_record(self, record: Any, table: str, returning: str | None = None) -> Any:
        """INSERT a record's insertable fields; ``returning`` is written back to it."""
        registry = self._require_registry()
        values = record_values(registry, record, "i")
        result = self.insert(table, values, returning)
        if returning:
            _write_back(registry, record, returning, result)
        return result

    def update_record(self, record: Any, table: str, key: str) -> Any:
        registry = self._require_registry()
        values = record_values(registry, record, "u")
        values[key] = _read_column(registry, record, key)
        return self.update(table, values, key)

    def update_record_where(
        self, record: Any, table: str, where: str, args: Sequence[Any] | None = None
    ) -> int:
        """UPDATE every row matching ``where`` with the record's updatable fields."""
        self._require_active()
        values = record_values(self._require_registry(), record, "u")
        statement = update_where_statement(self._require_registry(), table, values, where, args)
        return self.execute(statement.sql, statement.args)

    # -- Lifecycle -------------------------------------------------------------

    def commit(self) -> None:
        self._require_active()
        try:
            self.conn.execute("COMMIT")
        except Exception as e:
            self._finish(TransactionState.ROLLED_BACK)
            logger.warning("transaction_commit", outcome="failed", error=str(e))
            raise classify_backend_error(e, sql="COMMIT", operation="commit") from e
        self._finish(TransactionState.COMMITTED)
        logger.debug(
            "transaction_commit",
            outcome="committed",
            isolation=self.options.isolation.value,
        )

    def rollback(self) -> None:
        self._require_active()
        try:
            self.conn.execute("ROLLBACK")
        except Exception as e:
            raise classify_backend_error(e, sql="ROLLBACK", operation="rollback") from e
        finally:
            self._finish(TransactionState.ROLLED_BACK)
        logger.debug("transaction_rollback", isolation=self.options.isolation.value)

    def _finish(self, state: TransactionState) -> None:
        if self.closed:
            return
        self._state = state
        if self._release is not None:
            self._release(self.conn)

    def __repr__(self) -> str:
        return f"TransactionHandle(state={self._state.value}, {self.options.begin_statement()!r})"


def _read_column(registry: ModelRegistry, record: Any, column: str) -> Any:
    accessor = registry.describe(type(record)).columns.get(column)
    if accessor is None:
        raise InvalidRecordError(f"{type(record).__name__} has no column {column!r}")
    return accessor.getter(record)


def _write_back(registry: ModelRegistry, record: Any, column: str, value: Any) -> None:
    accessor = registry.describe(type(record)).columns.get(column)
    if accessor is not None:
        accessor.setter(record, value)


__all__ = [
    "TransactionHandle",
    "TransactionState",
    "execute_statement",
]
