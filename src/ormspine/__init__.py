"""
ormspine - a PostgreSQL ORM engine for dataclass records.

Register dataclass record types once, compile dynamic filter / sort /
pagination specs into ``$n``-parameterised SQL, map result rows back onto
records, and run bodies inside isolation-aware transactions with
classified retry.

    from dataclasses import dataclass
    from ormspine import Database, ModelRegistry, column

    @dataclass
    class AIModel:
        uuid: str | None = column("uuid", mode="i", default_value="DEFAULT")
        key: str | None = column("key", mode="i,u")
        name: str | None = column("name", mode="i,u", default_value="NULL")

    registry = ModelRegistry()
    registry.register(AIModel, "ai_model")

    with Database.from_settings(registry) as db:
        models = db.filter(AIModel, {"Key[$like]": "%gpt%"}, {"Key": "ASC"})
"""

__version__ = "0.1.0"

from ormspine.core import *  # noqa: F401,F403
from ormspine.models import ModelRegistry, column, describe, linked
from ormspine.query import (
    CompiledQuery,
    Condition,
    Operator,
    QueryCompiler,
    SelectBuilder,
    build_filter_count,
    build_filter_count_custom,
)
from ormspine.mapping import ResultMapper
from ormspine.transactions import (
    AccessMode,
    Deferrable,
    IsolationLevel,
    TransactionHandle,
    TransactionManager,
    TransactionOptions,
)
from ormspine.db import Database, PostgresPool
