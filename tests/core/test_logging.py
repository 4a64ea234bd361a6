"""
Tests for the logging module.

Tests verify:
- JSON output carries the service name and ECS field names
- DEBUG logs are suppressed at INFO level
- LogContext binds and unbinds context variables
"""

import json
import logging

import pytest
import structlog

from ormspine.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    configure_logging_from_settings,
    get_logger,
    unbind_context,
)
from ormspine.core.settings import OrmSettings


@pytest.fixture
def configured(caplog):
    configure_logging(level="INFO", json_format=True, service="billing")
    caplog.set_level(logging.INFO)
    yield caplog
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_json_event_fields(self, configured):
        get_logger("ormspine.tests.json").info("pool_opened", max_size=4)

        payload = json.loads(configured.records[-1].getMessage())
        assert payload["event"] == "pool_opened"
        assert payload["max_size"] == 4
        assert payload["service.name"] == "billing"
        assert payload["log.level"] == "info"
        assert "@timestamp" in payload

    def test_debug_suppressed_at_info(self, configured):
        before = len(configured.records)
        get_logger("ormspine.tests.debug").debug("traversal_built")
        assert len(configured.records) == before


class TestConfigureFromSettings:
    def test_settings_drive_level_format_and_service(self, caplog):
        settings = OrmSettings(log_level="WARNING", log_json=True, service_name="ledger")
        configure_logging_from_settings(settings)
        caplog.set_level(logging.DEBUG)
        try:
            get_logger("ormspine.tests.settings").info("pool_opened")
            get_logger("ormspine.tests.settings").warning("pool_closed")
        finally:
            structlog.reset_defaults()

        events = [json.loads(r.getMessage()) for r in caplog.records]
        assert [e["event"] for e in events] == ["pool_closed"]
        assert events[0]["service.name"] == "ledger"


class TestContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_bind_and_unbind(self):
        bind_context(table="realm", attempt=2)
        assert structlog.contextvars.get_contextvars() == {"table": "realm", "attempt": 2}
        unbind_context("attempt")
        assert structlog.contextvars.get_contextvars() == {"table": "realm"}

    def test_log_context_scoped(self):
        with LogContext(table="ai_model"):
            assert structlog.contextvars.get_contextvars()["table"] == "ai_model"
        assert "table" not in structlog.contextvars.get_contextvars()
