"""Tests for bounded retries."""

from __future__ import annotations

import asyncio
import time

import pytest

from secupdater.retry import (
    CYCLE_RETRY_POLICY,
    IDLE_WAIT_POLICY,
    RetryCancelledError,
    RetryExhaustedError,
    RetryPolicy,
    with_retry,
)
from secupdater.scheduler import CancellationToken


class Flaky:
    """Operation failing a given number of times before succeeding."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"failure {self.calls}")
        return "ok"


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_ceiling(self) -> None:
        """Test the total sleep time when every attempt fails."""
        assert RetryPolicy("p", delay=10.0, attempts=30).ceiling == 290.0
        assert RetryPolicy("p", delay=5.0, attempts=1).ceiling == 0.0

    def test_builtin_policies(self) -> None:
        """Test the idle wait and cycle retry policies."""
        assert (IDLE_WAIT_POLICY.delay, IDLE_WAIT_POLICY.attempts) == (10.0, 30)
        assert (CYCLE_RETRY_POLICY.delay, CYCLE_RETRY_POLICY.attempts) == (1800.0, 10)


class TestWithRetry:
    """Tests for with_retry."""

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self) -> None:
        """Test that a successful operation runs once."""
        op = Flaky(0)
        assert await with_retry(op, RetryPolicy("p", 0, 3)) == "ok"
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self) -> None:
        """Test that failures are retried until success."""
        op = Flaky(2)
        assert await with_retry(op, RetryPolicy("p", 0, 3)) == "ok"
        assert op.calls == 3

    @pytest.mark.asyncio
    async def test_exhausted(self) -> None:
        """Test that the last error is reported after the final attempt."""
        op = Flaky(10)
        with pytest.raises(RetryExhaustedError) as exc_info:
            await with_retry(op, RetryPolicy("p", 0, 3))

        error = exc_info.value
        assert op.calls == 3
        assert error.attempts == 3
        assert str(error.last_error) == "failure 3"
        assert [str(e) for e in error.errors] == ["failure 1", "failure 2", "failure 3"]
        assert not isinstance(error, RetryCancelledError)

    @pytest.mark.asyncio
    async def test_no_delay_after_last_attempt(self) -> None:
        """Test that a single failing attempt returns without sleeping."""
        start = time.monotonic()
        with pytest.raises(RetryExhaustedError):
            await with_retry(Flaky(1), RetryPolicy("p", 5.0, 1))
        assert time.monotonic() - start < 1.0

    @pytest.mark.asyncio
    async def test_cancelled_during_delay(self) -> None:
        """Test that a cancelled token stops further attempts."""
        op = Flaky(10)
        token = CancellationToken("t")

        async def cancel_soon() -> None:
            await asyncio.sleep(0.05)
            token.cancel()

        canceller = asyncio.create_task(cancel_soon())
        start = time.monotonic()
        with pytest.raises(RetryCancelledError) as exc_info:
            await with_retry(op, RetryPolicy("p", 30.0, 5), cancel=token)
        await canceller

        assert op.calls == 1
        assert exc_info.value.attempts == 1
        assert time.monotonic() - start < 5.0

    @pytest.mark.asyncio
    async def test_token_not_cancelled_keeps_retrying(self) -> None:
        """Test that an idle token does not change the retry behaviour."""
        op = Flaky(1)
        result = await with_retry(op, RetryPolicy("p", 0.01, 3), cancel=CancellationToken("t"))
        assert result == "ok"
        assert op.calls == 2
