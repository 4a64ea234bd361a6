"""Settings for ormspine.

Connection-pool sizing, transaction defaults and logging options are read
from ``ORMSPINE_*`` environment variables (or a ``.env`` file) into one
validated ``OrmSettings`` object.  ``get_settings()`` caches the instance;
tests call ``get_settings.cache_clear()`` after patching the environment.

Examples:
    >>> import os
    >>> os.environ["ORMSPINE_TX_MAX_RETRIES"] = "5"
    >>> get_settings.cache_clear()
    >>> get_settings().tx_max_retries
    5

Tags:
    settings, configuration, pydantic, environment, ormspine

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ISOLATION_LEVELS = (
    "READ UNCOMMITTED",
    "READ COMMITTED",
    "REPEATABLE READ",
    "SERIALIZABLE",
)


class OrmSettings(BaseSettings):
    """ormspine configuration.

    Fields
    ──────
    database_url          : libpq connection string / URL
    pool_min_size         : connections kept open by the pool
    pool_max_size         : hard cap on pooled connections
    pool_timeout          : seconds a caller may block acquiring a connection
    statement_timeout_ms  : optional server-side statement_timeout per connection
    tx_isolation          : default isolation level for new transactions
    tx_max_retries        : attempts allowed by run_with_retry
    tx_retry_base_delay   : backoff base in seconds (doubles per attempt)
    tx_retry_max_delay    : backoff cap in seconds
    log_level / log_json  : structlog configuration
    service_name          : ``service.name`` on every log line
    """

    model_config = SettingsConfigDict(
        env_prefix="ORMSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Pool ─────────────────────────────────────────────────────
    database_url: str = Field(default="postgresql://localhost:5432/postgres")
    pool_min_size: int = Field(default=1, ge=0)
    pool_max_size: int = Field(default=10, ge=1)
    pool_timeout: float = Field(default=30.0, gt=0)
    statement_timeout_ms: int | None = Field(default=None, ge=0)

    # ── Transactions ─────────────────────────────────────────────
    tx_isolation: str = Field(default="READ COMMITTED")
    tx_max_retries: int = Field(default=3, ge=1)
    tx_retry_base_delay: float = Field(default=0.1, ge=0)
    tx_retry_max_delay: float = Field(default=5.0, ge=0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None
    service_name: str = "ormspine"

    @field_validator("tx_isolation")
    @classmethod
    def _normalise_isolation(cls, value: str) -> str:
        normalised = " ".join(value.replace("_", " ").upper().split())
        if normalised not in _ISOLATION_LEVELS:
            raise ValueError(f"unknown isolation level: {value}")
        return normalised

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> OrmSettings:
        if self.pool_min_size > self.pool_max_size:
            raise ValueError("pool_min_size cannot exceed pool_max_size")
        return self


@lru_cache(maxsize=1)
def get_settings() -> OrmSettings:
    """Return the process-wide settings instance."""
    return OrmSettings()


__all__ = [
    "OrmSettings",
    "get_settings",
]
