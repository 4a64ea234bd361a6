"""
Shared pytest fixtures and configuration for ormspine tests.

This module provides:
- A populated ``ModelRegistry`` (fresh per test, never shared)
- Compiler and mapper fixtures bound to it
- An in-memory sqlite3 connection for cursor-level mapping tests
- Fake pools / connections for transaction tests

Usage:
    Fixtures are auto-discovered by pytest; request them by name.

    def test_something(registry, compiler):
        ...
"""

import sqlite3
import sys
from pathlib import Path
from typing import Generator

import pytest

# Ensure the ormspine package and the tests._support helpers are importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from ormspine.mapping import ResultMapper
from ormspine.models import ModelRegistry
from ormspine.query import QueryCompiler
from tests._support.fakes import FakeConnection, FakePool
from tests._support.records import AIModel, Realm, SampleModel, UserProfile, Website


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark everything not explicitly marked integration as a unit test."""
    for item in items:
        if "integration" not in item.keywords:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Registry / compiler / mapper
# =============================================================================


@pytest.fixture
def registry() -> ModelRegistry:
    """Registry with every sample record registered."""
    reg = ModelRegistry()
    reg.register(SampleModel, "t")
    reg.register(AIModel, "ai_model")
    reg.register(Realm, "realm")
    reg.register(Website, "website")
    reg.register(UserProfile, "user_profile")
    return reg


@pytest.fixture
def compiler(registry: ModelRegistry) -> QueryCompiler:
    return QueryCompiler(registry)


@pytest.fixture
def mapper(registry: ModelRegistry) -> ResultMapper:
    return ResultMapper(registry)


# =============================================================================
# Connections
# =============================================================================


@pytest.fixture
def sqlite_conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory sqlite3 connection; its cursors satisfy the Cursor protocol."""
    conn = sqlite3.connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def fake_conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def fake_pool(fake_conn: FakeConnection) -> FakePool:
    return FakePool(fake_conn)
