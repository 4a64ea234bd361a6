"""External cancellation and deadlines for executing operations.

Every operation that touches the backend (pool acquisition, statement
execution, the retry wait of the Transaction Manager) accepts an optional
``CancellationToken``.  A token is cancelled explicitly by another thread or
expires when its monotonic deadline passes.

Manifesto:
    Synchronous Python has no ambient context object, so the signal travels
    as an explicit value:

    - **Cooperative:** ``check()`` raises at safe points
    - **Interruptible waits:** ``wait()`` wakes up as soon as the token fires
    - **Server-side cancel:** ``bind(conn.cancel)`` aborts a running statement

Architecture:
    ::

        caller thread                         worker thread
        ─────────────                         ─────────────
        token = CancellationToken(timeout=5)
                                              with token.bind(conn.cancel):
                                                  conn.execute(...)
        token.cancel()  ──── fires ─────────────► conn.cancel()
                                              token.check()
                                              # OperationCancelled

Examples:
    >>> token = CancellationToken()
    >>> token.cancelled
    False
    >>> token.cancel()
    >>> token.check("select")
    Traceback (most recent call last):
        ...
    ormspine.core.errors.OperationCancelled: operation 'select' was cancelled

Tags:
    cancellation, deadline, timeout, threading, ormspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from .errors import DeadlineExceeded, OperationCancelled


class CancellationToken:
    """Cancellation signal with an optional deadline.

    Attributes:
        timeout: Original timeout in seconds, or None for no deadline
        deadline: Absolute deadline on the monotonic clock, or None
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout
        self.deadline = time.monotonic() + timeout if timeout is not None else None
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline (negative once expired)."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def clip(self, timeout: float | None) -> float | None:
        """``timeout`` shortened to the time left before the deadline."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        remaining = max(remaining, 0.0)
        return remaining if timeout is None else min(timeout, remaining)

    def is_expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def cancel(self) -> None:
        """Fire the token and every bound callback."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback()

    def check(self, operation: str = "operation") -> None:
        """Raise if the token was cancelled or its deadline passed.

        Raises:
            OperationCancelled: ``cancel()`` was called
            DeadlineExceeded: the deadline has passed
        """
        if self._event.is_set():
            raise OperationCancelled(operation)
        if self.is_expired():
            raise DeadlineExceeded(self.timeout or 0.0, operation)

    def wait(self, seconds: float, operation: str = "wait") -> None:
        """Sleep ``seconds``, waking early and raising if the token fires.

        The sleep is clipped to the remaining deadline.
        """
        self.check(operation)
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._event.wait(max(remaining, 0.0))
            self.check(operation)
            # Deadline reached exactly at the boundary
            raise DeadlineExceeded(self.timeout or 0.0, operation)
        if self._event.wait(seconds):
            raise OperationCancelled(operation)

    @contextmanager
    def bind(self, callback: Callable[[], None]) -> Iterator[None]:
        """Register ``callback`` to run on ``cancel()`` for the block's duration.

        If the token is already cancelled the callback is not registered and
        ``OperationCancelled`` is raised before the block runs.
        """
        with self._lock:
            if self._event.is_set():
                raise OperationCancelled("bind")
            self._callbacks.append(callback)
        try:
            yield
        finally:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)


def sleep(seconds: float, token: CancellationToken | None = None) -> None:
    """``time.sleep`` that honours a cancellation token when one is given."""
    if token is None:
        time.sleep(seconds)
    else:
        token.wait(seconds)


__all__ = [
    "CancellationToken",
    "sleep",
]
