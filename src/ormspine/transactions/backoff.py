"""Backoff strategies for transaction retries.

Example:
    >>> strategy = ExponentialBackoff(base_delay=0.1)
    >>> for attempt in range(3):
    ...     print(f"Attempt {attempt}: wait ~{strategy.next_delay(attempt):.2f}s")
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass

from ormspine.core.settings import OrmSettings


class RetryStrategy(ABC):
    """Abstract base for retry delay strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Delay before the next attempt.

        Args:
            attempt: Zero-based number of the attempt that just failed

        Returns:
            Delay in seconds
        """
        ...


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Exponential backoff with jitter.

    Delay = min(base_delay * (multiplier ** attempt), max_delay) +/- jitter

    Attributes:
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap in seconds
        multiplier: Exponential multiplier (default: 2)
        jitter: Add randomness to prevent thundering herd
        jitter_range: Range of jitter as fraction of delay (0.0-1.0)
    """

    base_delay: float = 0.1
    max_delay: float = 5.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.2

    def next_delay(self, attempt: int) -> float:
        """Calculate exponential backoff delay."""
        delay = min(
            self.base_delay * (self.multiplier ** attempt),
            self.max_delay,
        )

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = max(0, delay)

        return delay

    @classmethod
    def from_settings(cls, settings: OrmSettings) -> ExponentialBackoff:
        return cls(
            base_delay=settings.tx_retry_base_delay,
            max_delay=settings.tx_retry_max_delay,
        )


@dataclass
class ConstantBackoff(RetryStrategy):
    """Constant delay between retries."""

    delay: float = 0.0

    def next_delay(self, attempt: int) -> float:
        return self.delay


__all__ = [
    "ConstantBackoff",
    "ExponentialBackoff",
    "RetryStrategy",
]
