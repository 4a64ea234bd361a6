"""
Narrow contracts for the collaborators ormspine does not own.

The pool bootstrap, the wire protocol and the driver-level type codecs are
external.  ormspine only needs "execute a statement, give me a cursor" and
"acquire / release / ping / stats" from a pool.  These protocols are the
whole of that dependency, so tests can substitute ``sqlite3`` cursors or
``MagicMock`` connections for psycopg.

Architecture:
    ::

        protocols.py
        ├── Cursor          : description + fetchone/fetchall (DB-API 2.0)
        ├── Connection      : execute(sql, params) -> Cursor, cancel()
        └── ConnectionPool  : acquire/release/ping/stats

    Consumers:
        mapping/mapper.py, transactions/manager.py, db/database.py

Guardrails:
    ❌ DON'T: import psycopg outside ormspine.db
    ✅ DO: type collaborators with these protocols

Tags:
    protocol, connection, cursor, pool, ormspine, contracts

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Cursor(Protocol):
    """DB-API style result cursor.

    ``description`` is a sequence whose items expose the column name at
    index 0 (DB-API tuples, psycopg ``Column`` objects).  It is ``None`` for
    statements that return no rows.
    """

    @property
    def description(self) -> Sequence[Any] | None: ...

    @property
    def rowcount(self) -> int: ...

    def fetchone(self) -> Sequence[Any] | None: ...

    def fetchall(self) -> list[Sequence[Any]]: ...


@runtime_checkable
class Connection(Protocol):
    """Minimal synchronous connection: execute a statement, get a cursor."""

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> Cursor: ...


@runtime_checkable
class ConnectionPool(Protocol):
    """Pool contract consumed by the Transaction Manager and Database facade."""

    def acquire(self, timeout: float | None = None) -> Connection:
        """Borrow a connection, blocking up to ``timeout`` seconds."""
        ...

    def release(self, conn: Connection) -> None:
        """Return a borrowed connection to the pool."""
        ...

    def ping(self) -> bool:
        """Round-trip a trivial statement; True when the backend answers."""
        ...

    def stats(self) -> Any:
        """Pool statistics snapshot."""
        ...


@contextmanager
def borrowed(pool: ConnectionPool, timeout: float | None = None) -> Iterator[Connection]:
    """Acquire a connection for the duration of a ``with`` block."""
    conn = pool.acquire(timeout)
    try:
        yield conn
    finally:
        pool.release(conn)


def column_names(cursor: Cursor) -> list[str]:
    """Column names of a cursor's result, in result order."""
    description = cursor.description
    if description is None:
        return []
    return [str(desc[0]) for desc in description]


__all__ = [
    "Cursor",
    "Connection",
    "ConnectionPool",
    "borrowed",
    "column_names",
]
