"""Backend wiring: psycopg connection pool and the ``Database`` facade.

Modules
-------
pool
    ``PostgresPool`` over ``psycopg_pool.ConnectionPool`` (autocommit,
    ``RawCursor``) and ``PoolStats``.
database
    ``Database``: registry + compiler + mapper + transactions over a pool.

Tags:
    database, pool, psycopg, ormspine

Doc-Types:
    package-overview, module-index
"""

from ormspine.db.database import Database
from ormspine.db.pool import PoolStats, PostgresPool

__all__ = [
    "Database",
    "PoolStats",
    "PostgresPool",
]
