"""Tests for CancellationToken and the cancellable sleep."""

import threading
import time

import pytest

from ormspine.core.cancellation import CancellationToken, sleep
from ormspine.core.errors import DeadlineExceeded, OperationCancelled


class TestCancellationToken:
    def test_fresh_token(self):
        token = CancellationToken()
        assert token.cancelled is False
        assert token.remaining() is None
        assert token.is_expired() is False
        token.check("select")

    def test_cancel_then_check_raises(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancelled is True
        with pytest.raises(OperationCancelled, match="select"):
            token.check("select")

    def test_cancel_is_idempotent(self):
        token = CancellationToken()
        calls = []
        with token.bind(lambda: calls.append(1)):
            token.cancel()
            token.cancel()
        assert calls == [1]

    def test_expired_deadline_raises(self):
        token = CancellationToken(timeout=0.0)
        assert token.is_expired()
        with pytest.raises(DeadlineExceeded):
            token.check("begin")

    def test_remaining_counts_down(self):
        token = CancellationToken(timeout=10.0)
        remaining = token.remaining()
        assert remaining is not None
        assert 0 < remaining <= 10.0

    def test_clip_without_deadline(self):
        assert CancellationToken().clip(30.0) == 30.0
        assert CancellationToken().clip(None) is None

    def test_clip_to_remaining(self):
        token = CancellationToken(timeout=5.0)
        assert token.clip(30.0) <= 5.0
        assert token.clip(1.0) == 1.0
        assert 0 < token.clip(None) <= 5.0

    def test_clip_after_deadline_is_zero(self):
        assert CancellationToken(timeout=0.0).clip(30.0) == 0.0


class TestWait:
    def test_wait_without_signal_returns(self):
        token = CancellationToken()
        start = time.monotonic()
        token.wait(0.01)
        assert time.monotonic() - start >= 0.005

    def test_wait_wakes_on_cancel(self):
        token = CancellationToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        start = time.monotonic()
        try:
            with pytest.raises(OperationCancelled):
                token.wait(5.0)
        finally:
            timer.cancel()
        assert time.monotonic() - start < 2.0

    def test_wait_clipped_to_deadline(self):
        token = CancellationToken(timeout=0.05)
        start = time.monotonic()
        with pytest.raises(DeadlineExceeded):
            token.wait(5.0)
        assert time.monotonic() - start < 2.0

    def test_sleep_without_token(self):
        sleep(0)

    def test_sleep_with_cancelled_token(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelled):
            sleep(1.0, token)


class TestBind:
    def test_callback_fires_on_cancel(self):
        token = CancellationToken()
        fired = threading.Event()
        with token.bind(fired.set):
            token.cancel()
        assert fired.is_set()

    def test_callback_removed_after_block(self):
        token = CancellationToken()
        calls = []
        with token.bind(lambda: calls.append("x")):
            pass
        token.cancel()
        assert calls == []

    def test_bind_on_cancelled_token_raises(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelled):
            with token.bind(lambda: None):
                pytest.fail("block must not run")
