"""Tests for cancellation tokens and periodic loops."""

from __future__ import annotations

import asyncio

import pytest

from secupdater.scheduler import CancellationToken, PeriodicLoop


class TestCancellationToken:
    """Tests for CancellationToken."""

    @pytest.mark.asyncio
    async def test_wait_times_out(self) -> None:
        """Test that waiting on an idle token returns False."""
        token = CancellationToken("t")
        assert await token.wait(0.01) is False
        assert not token.cancelled

    @pytest.mark.asyncio
    async def test_wait_returns_on_cancel(self) -> None:
        """Test that cancelling wakes up a waiter."""
        token = CancellationToken("t")
        waiter = asyncio.create_task(token.wait(30.0))
        await asyncio.sleep(0)

        token.cancel()

        assert await asyncio.wait_for(waiter, timeout=1.0) is True

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self) -> None:
        """Test that cancelling twice is harmless."""
        token = CancellationToken("t")
        token.cancel()
        token.cancel()
        assert token.cancelled
        assert await token.wait() is True


class TestPeriodicLoop:
    """Tests for PeriodicLoop."""

    @pytest.mark.asyncio
    async def test_ticks_until_cancelled(self) -> None:
        """Test that the loop keeps ticking on its interval."""
        token = CancellationToken("t")
        ticks: list[int] = []

        async def tick() -> None:
            ticks.append(len(ticks))
            if len(ticks) == 3:
                token.cancel()

        loop = PeriodicLoop("test", 0.01, tick, token)
        await asyncio.wait_for(loop.run(), timeout=2.0)

        assert loop.tick_count == 3

    @pytest.mark.asyncio
    async def test_waits_before_first_tick(self) -> None:
        """Test that without run_immediately nothing runs before the interval."""
        token = CancellationToken("t")
        ticks = 0

        async def tick() -> None:
            nonlocal ticks
            ticks += 1

        loop = PeriodicLoop("test", 30.0, tick, token)
        task = asyncio.create_task(loop.run())
        await asyncio.sleep(0.05)
        token.cancel()
        await asyncio.wait_for(task, timeout=1.0)

        assert ticks == 0

    @pytest.mark.asyncio
    async def test_run_immediately(self) -> None:
        """Test that one tick runs before the first wait."""
        token = CancellationToken("t")

        async def tick() -> None:
            token.cancel()

        loop = PeriodicLoop("test", 30.0, tick, token, run_immediately=True)
        await asyncio.wait_for(loop.run(), timeout=1.0)

        assert loop.tick_count == 1

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self) -> None:
        """Test that a cancelled token prevents every tick."""
        token = CancellationToken("t")
        token.cancel()

        async def tick() -> None:
            raise AssertionError("must not tick")

        loop = PeriodicLoop("test", 0.01, tick, token, run_immediately=True)
        await loop.run()

        assert loop.tick_count == 0

    @pytest.mark.asyncio
    async def test_running_tick_is_not_interrupted(self) -> None:
        """Test that cancellation lets the current tick finish."""
        token = CancellationToken("t")
        finished = asyncio.Event()

        async def tick() -> None:
            await asyncio.sleep(0.1)
            finished.set()

        loop = PeriodicLoop("test", 30.0, tick, token, run_immediately=True)
        task = asyncio.create_task(loop.run())
        await asyncio.sleep(0.02)
        token.cancel()
        await asyncio.wait_for(task, timeout=1.0)

        assert finished.is_set()
        assert loop.tick_count == 1

    @pytest.mark.asyncio
    async def test_failing_tick_does_not_stop_loop(self) -> None:
        """Test that a tick exception is logged and the loop continues."""
        token = CancellationToken("t")
        calls = 0

        async def tick() -> None:
            nonlocal calls
            calls += 1
            if calls == 2:
                token.cancel()
            raise RuntimeError("boom")

        loop = PeriodicLoop("test", 0.01, tick, token, run_immediately=True)
        await asyncio.wait_for(loop.run(), timeout=1.0)

        assert calls == 2
