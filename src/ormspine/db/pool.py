"""PostgreSQL connection pool (psycopg 3 + psycopg_pool).

Connections are opened in autocommit mode with ``psycopg.RawCursor`` as
cursor factory, so statements use the native ``$1..$n`` placeholders and
transaction boundaries are the explicit ``BEGIN`` / ``COMMIT`` /
``ROLLBACK`` statements issued by the Transaction Manager.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import psycopg
from psycopg_pool import ConnectionPool, PoolTimeout

from ormspine.core.errors import DatabaseConnectionError
from ormspine.core.logging import get_logger
from ormspine.core.protocols import borrowed
from ormspine.core.settings import OrmSettings, get_settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class PoolStats:
    """Snapshot of ``ConnectionPool.get_stats()``."""

    min_size: int
    max_size: int
    size: int
    available: int
    waiting: int
    raw: dict[str, int]

    @classmethod
    def from_raw(cls, raw: dict[str, int]) -> PoolStats:
        return cls(
            min_size=raw.get("pool_min", 0),
            max_size=raw.get("pool_max", 0),
            size=raw.get("pool_size", 0),
            available=raw.get("pool_available", 0),
            waiting=raw.get("requests_waiting", 0),
            raw=dict(raw),
        )


class PostgresPool:
    """``ConnectionPool`` contract implemented over ``psycopg_pool``."""

    def __init__(
        self,
        conninfo: str,
        *,
        min_size: int = 1,
        max_size: int = 10,
        timeout: float = 30.0,
        statement_timeout_ms: int | None = None,
        name: str = "ormspine",
    ):
        self.conninfo = conninfo
        self.timeout = timeout
        self.statement_timeout_ms = statement_timeout_ms
        self._pool = ConnectionPool(
            conninfo,
            min_size=min_size,
            max_size=max_size,
            timeout=timeout,
            name=name,
            open=False,
            configure=self._configure if statement_timeout_ms is not None else None,
            kwargs={"autocommit": True, "cursor_factory": psycopg.RawCursor},
        )

    @classmethod
    def from_settings(cls, settings: OrmSettings | None = None) -> PostgresPool:
        settings = settings or get_settings()
        return cls(
            settings.database_url,
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
            timeout=settings.pool_timeout,
            statement_timeout_ms=settings.statement_timeout_ms,
            name=settings.service_name,
        )

    def _configure(self, conn: psycopg.Connection) -> None:
        conn.execute(f"SET statement_timeout = {int(self.statement_timeout_ms or 0)}")

    # -- Lifecycle -----------------------------------------------------------

    def open(self, wait: bool = False) -> None:
        try:
            self._pool.open(wait=wait, timeout=self.timeout)
        except PoolTimeout as e:
            raise DatabaseConnectionError(
                f"Failed to open connection pool: {e}", cause=e
            ) from e
        logger.info("pool_opened", min_size=self._pool.min_size, max_size=self._pool.max_size)

    def close(self) -> None:
        self._pool.close()
        logger.info("pool_closed")

    @property
    def closed(self) -> bool:
        return self._pool.closed

    def __enter__(self) -> PostgresPool:
        self.open()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # -- Pool contract -------------------------------------------------------

    def acquire(self, timeout: float | None = None) -> psycopg.Connection:
        try:
            return self._pool.getconn(timeout=timeout)
        except PoolTimeout as e:
            raise DatabaseConnectionError(
                f"Timed out acquiring a connection: {e}", cause=e
            ) from e

    def release(self, conn: psycopg.Connection) -> None:
        self._pool.putconn(conn)

    def ping(self) -> bool:
        try:
            with borrowed(self) as conn:
                conn.execute("SELECT 1")
        except (DatabaseConnectionError, psycopg.Error) as e:
            logger.warning("pool_ping_failed", error=str(e))
            return False
        return True

    def stats(self) -> PoolStats:
        return PoolStats.from_raw(self._pool.get_stats())


__all__ = [
    "PoolStats",
    "PostgresPool",
]
