"""
Database facade: registry, compiler, mapper and transactions over one pool.

Manifesto:
    Application code should not wire four components by hand for every
    query.  ``Database`` holds one of each and exposes the everyday
    operations: insert / update / delete from ``{column: value}`` mappings
    or records, mapped selects, filtered pages with their count, and the
    transaction helpers.

    Statements outside a transaction run in autocommit mode on a
    connection borrowed for the duration of the call; the cursor is fully
    mapped before the connection goes back to the pool.

Architecture:
    ::

        Database
        ├── registry : ModelRegistry
        ├── compiler : QueryCompiler
        ├── mapper   : ResultMapper
        ├── manager  : TransactionManager
        └── pool     : ConnectionPool (PostgresPool by default)

Examples:
    >>> db = Database.from_settings(registry)
    >>> db.open()
    >>> uuid = db.insert("ai_model", {"key": "gpt", "name": "GPT"}, returning="uuid")
    >>> page = db.filter(AIModel, {"Key[$like]": "%g%"}, {"Key": "ASC"}, per_page=10, page=1)
    >>> total = db.count(AIModel, {"Key[$like]": "%g%"})

Tags:
    database, facade, psycopg, ormspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any, TypeVar

from ormspine.core.cancellation import CancellationToken
from ormspine.core.logging import configure_logging_from_settings
from ormspine.core.protocols import Connection, ConnectionPool, borrowed
from ormspine.core.settings import OrmSettings, get_settings
from ormspine.db.pool import PostgresPool
from ormspine.mapping.mapper import ResultMapper
from ormspine.models.registry import ModelRegistry
from ormspine.query.compiler import CompiledQuery, QueryCompiler, build_filter_count
from ormspine.query.conditions import FilterSpec, SortSpec
from ormspine.query.statements import (
    delete_statement,
    insert_statement,
    record_values,
    update_statement,
    update_where_statement,
)
from ormspine.transactions.backoff import ExponentialBackoff
from ormspine.transactions.handle import TransactionHandle, execute_statement
from ormspine.transactions.manager import TransactionManager
from ormspine.transactions.options import TransactionOptions, default_tx_options

T = TypeVar("T")


class Database:
    """Everyday ORM operations over a connection pool."""

    def __init__(
        self,
        pool: ConnectionPool,
        registry: ModelRegistry,
        *,
        mapper: ResultMapper | None = None,
        manager: TransactionManager | None = None,
        acquire_timeout: float | None = None,
    ):
        self.pool = pool
        self.registry = registry
        self.compiler = QueryCompiler(registry)
        self.mapper = mapper or ResultMapper(registry)
        self.acquire_timeout = acquire_timeout
        self.manager = manager or TransactionManager(
            pool, registry=registry, mapper=self.mapper, acquire_timeout=acquire_timeout
        )

    @classmethod
    def from_settings(
        cls,
        registry: ModelRegistry,
        settings: OrmSettings | None = None,
        *,
        configure_logs: bool = True,
    ) -> Database:
        """Database over a ``PostgresPool`` configured from ``OrmSettings``.

        With ``configure_logs`` structlog is also set up from the settings'
        ``log_level`` / ``log_json`` / ``service_name``.
        """
        settings = settings or get_settings()
        if configure_logs:
            configure_logging_from_settings(settings)
        pool = PostgresPool.from_settings(settings)
        mapper = ResultMapper(registry)
        manager = TransactionManager(
            pool,
            registry=registry,
            mapper=mapper,
            backoff=ExponentialBackoff.from_settings(settings),
            options=default_tx_options(settings),
            acquire_timeout=settings.pool_timeout,
        )
        return cls(
            pool,
            registry,
            mapper=mapper,
            manager=manager,
            acquire_timeout=settings.pool_timeout,
        )

    # -- Lifecycle -----------------------------------------------------------

    def open(self) -> None:
        opener = getattr(self.pool, "open", None)
        if opener is not None:
            opener()

    def close(self) -> None:
        closer = getattr(self.pool, "close", None)
        if closer is not None:
            closer()

    def __enter__(self) -> Database:
        self.open()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def ping(self) -> bool:
        return self.pool.ping()

    # -- Raw execution ----------------------------------------------------------

    @contextmanager
    def connection(self, token: CancellationToken | None = None) -> Iterator[Connection]:
        timeout = self.acquire_timeout
        if token is not None:
            token.check("acquire")
            timeout = token.clip(timeout)
        with borrowed(self.pool, timeout) as conn:
            yield conn

    def _with_cursor(
        self,
        sql: str,
        args: Sequence[Any] | None,
        consume: Callable[[Any], T],
        token: CancellationToken | None,
        operation: str,
    ) -> T:
        with self.connection(token) as conn:
            cursor = execute_statement(conn, sql, args, token=token, operation=operation)
            return consume(cursor)

    def execute(
        self, sql: str, args: Sequence[Any] | None = None, token: CancellationToken | None = None
    ) -> int:
        """Run a statement in autocommit mode; returns the affected row count."""
        return self._with_cursor(sql, args, lambda c: c.rowcount, token, "execute")

    def select_one(
        self,
        record_type: type[T],
        sql: str,
        args: Sequence[Any] | None = None,
        token: CancellationToken | None = None,
    ) -> T:
        """Exactly one row as ``record_type`` (``NoRowsError`` when empty)."""
        return self._with_cursor(
            sql, args, lambda c: self.mapper.scan_one(c, record_type), token, "select_one"
        )

    def select_many(
        self,
        record_type: type[T],
        sql: str,
        args: Sequence[Any] | None = None,
        token: CancellationToken | None = None,
    ) -> list[T]:
        return self._with_cursor(
            sql, args, lambda c: self.mapper.scan_all(c, record_type), token, "select_many"
        )

    def scalar(
        self, sql: str, args: Sequence[Any] | None = None, token: CancellationToken | None = None
    ) -> Any:
        return self._with_cursor(sql, args, self.mapper.scan_scalar, token, "scalar")

    def _returning(self, statement: CompiledQuery, returning: str | None, operation: str) -> Any:
        if not returning:
            self.execute(statement.sql, statement.args)
            return None

        def first_value(cursor: Any) -> Any:
            row = cursor.fetchone()
            return row[0] if row is not None else None

        return self._with_cursor(statement.sql, statement.args, first_value, None, operation)

    # -- Writes ------------------------------------------------------------------

    def insert(self, table: str, values: dict[str, Any], returning: str | None = None) -> Any:
        """INSERT ``values``; the returned column value is also stored in ``values``."""
        statement = insert_statement(self.registry, table, values, returning)
        result = self._returning(statement, returning, "insert")
        if returning:
            values[returning] = result
        return result

    def update(self, table: str, values: dict[str, Any], key: str) -> Any:
        statement = update_statement(self.registry, table, values, key)
        return self._returning(statement, key, "update")

    def delete(self, table: str, where: str, args: Sequence[Any] | None = None) -> int:
        statement = delete_statement(self.registry, table, where, args)
        return self.execute(statement.sql, statement.args)

    def insert_record(self, record: Any, returning: str | None = None, table: str | None = None) -> Any:
        table = table or self.registry.table_for(type(record))
        result = self.insert(table, record_values(self.registry, record, "i"), returning)
        if returning:
            accessor = self.registry.describe(type(record)).columns.get(returning)
            if accessor is not None:
                accessor.setter(record, result)
        return result

    def update_record(self, record: Any, key: str, table: str | None = None) -> Any:
        table = table or self.registry.table_for(type(record))
        values = record_values(self.registry, record, "u")
        accessor = self.registry.describe(type(record)).columns.get(key)
        if accessor is not None:
            values[key] = accessor.getter(record)
        return self.update(table, values, key)

    def update_record_where(
        self,
        record: Any,
        where: str,
        args: Sequence[Any] | None = None,
        table: str | None = None,
    ) -> int:
        """UPDATE rows matching ``where``; returns the affected row count."""
        table = table or self.registry.table_for(type(record))
        values = record_values(self.registry, record, "u")
        statement = update_where_statement(self.registry, table, values, where, args)
        return self.execute(statement.sql, statement.args)

    # -- Filtered reads ----------------------------------------------------------

    def base_query(self, table: str) -> str:
        fields = self.registry.get_select_fields(table)
        return f"SELECT {fields.sql()} FROM {self.registry.dialect.quote(table)}"

    def compile_filter(
        self,
        record_type: type,
        filters: FilterSpec = None,
        sort: SortSpec = None,
        per_page: int = 10,
        page: int = 1,
        table: str | None = None,
    ) -> CompiledQuery:
        table = table or self.registry.table_for(record_type)
        return self.compiler.compile(self.base_query(table), table, filters, sort, per_page, page)

    def filter(
        self,
        record_type: type[T],
        filters: FilterSpec = None,
        sort: SortSpec = None,
        per_page: int = 10,
        page: int = 1,
        table: str | None = None,
        token: CancellationToken | None = None,
    ) -> list[T]:
        """One page of ``record_type`` rows matching ``filters``."""
        compiled = self.compile_filter(record_type, filters, sort, per_page, page, table)
        return self.select_many(record_type, compiled.sql, compiled.args, token)

    def count(
        self,
        record_type: type,
        filters: FilterSpec = None,
        table: str | None = None,
        token: CancellationToken | None = None,
    ) -> int:
        """Number of rows matching ``filters``, ignoring pagination."""
        compiled = self.compile_filter(record_type, filters, None, 1, 1, table)
        return int(self.scalar(build_filter_count(compiled.sql), compiled.args, token))

    # -- Transactions ------------------------------------------------------------

    def transaction(
        self, options: TransactionOptions | None = None, token: CancellationToken | None = None
    ) -> Any:
        return self.manager.transaction(options, token)

    def run(
        self,
        body: Callable[[TransactionHandle], T],
        options: TransactionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> T:
        return self.manager.run(body, options, token)

    def run_with_retry(
        self,
        body: Callable[[TransactionHandle], T],
        options: TransactionOptions | None = None,
        token: CancellationToken | None = None,
    ) -> T:
        return self.manager.run_with_retry(body, options, token)

    def run_read_only(self, body: Callable[[TransactionHandle], T], token: CancellationToken | None = None) -> T:
        return self.manager.run_read_only(body, token)

    def run_serializable(self, body: Callable[[TransactionHandle], T], token: CancellationToken | None = None) -> T:
        return self.manager.run_serializable(body, token)

    def run_read_committed(self, body: Callable[[TransactionHandle], T], token: CancellationToken | None = None) -> T:
        return self.manager.run_read_committed(body, token)


__all__ = [
    "Database",
]
