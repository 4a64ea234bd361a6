"""Transaction options and the BEGIN statement they render."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from ormspine.core.settings import OrmSettings, get_settings


class IsolationLevel(str, Enum):
    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"


class AccessMode(str, Enum):
    READ_WRITE = "READ WRITE"
    READ_ONLY = "READ ONLY"


class Deferrable(str, Enum):
    DEFERRABLE = "DEFERRABLE"
    NOT_DEFERRABLE = "NOT DEFERRABLE"


@dataclass(frozen=True)
class TransactionOptions:
    """Isolation, access mode, deferrability and the retry budget of a transaction.

    ``max_retries`` is the total number of attempts ``run_with_retry`` makes.
    """

    isolation: IsolationLevel = IsolationLevel.READ_COMMITTED
    access_mode: AccessMode = AccessMode.READ_WRITE
    deferrable: Deferrable = Deferrable.NOT_DEFERRABLE
    max_retries: int = 3

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")

    def begin_statement(self) -> str:
        return (
            f"BEGIN ISOLATION LEVEL {self.isolation.value} "
            f"{self.access_mode.value} {self.deferrable.value}"
        )

    @property
    def read_only(self) -> bool:
        return self.access_mode is AccessMode.READ_ONLY

    def with_isolation(self, isolation: IsolationLevel) -> TransactionOptions:
        return replace(self, isolation=isolation)

    def with_access_mode(self, access_mode: AccessMode) -> TransactionOptions:
        return replace(self, access_mode=access_mode)


DEFAULT_TX_OPTIONS = TransactionOptions()


def default_tx_options(settings: OrmSettings | None = None) -> TransactionOptions:
    """Default options, with isolation and retry budget taken from settings."""
    settings = settings or get_settings()
    return TransactionOptions(
        isolation=IsolationLevel(settings.tx_isolation),
        max_retries=settings.tx_max_retries,
    )


__all__ = [
    "AccessMode",
    "DEFAULT_TX_OPTIONS",
    "Deferrable",
    "IsolationLevel",
    "TransactionOptions",
    "default_tx_options",
]
