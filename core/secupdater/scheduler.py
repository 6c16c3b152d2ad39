"""Periodic loops with cooperative cancellation.

Each loop waits for whichever comes first: its interval elapsing or its
cancellation token being cancelled. Cancellation never interrupts a tick that
is already running; it only prevents the next one.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = structlog.get_logger(__name__)


class CancellationToken:
    """One-shot cancellation signal for a single loop."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Cancel the token. Calling it again has no effect."""
        if not self._event.is_set():
            logger.debug("token_cancelled", token=self.name)
            self._event.set()

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait until the token is cancelled or the timeout elapses.

        Args:
            timeout: Maximum time to wait in seconds, None to wait forever.

        Returns:
            True if the token was cancelled, False on timeout.
        """
        if timeout is None:
            await self._event.wait()
            return True
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        return self._event.is_set()


class PeriodicLoop:
    """Runs a coroutine function on a fixed interval until cancelled."""

    def __init__(
        self,
        name: str,
        interval: float,
        tick: Callable[[], Awaitable[object]],
        token: CancellationToken,
        run_immediately: bool = False,
    ) -> None:
        """Initialize the loop.

        Args:
            name: Loop name used in logs.
            interval: Seconds to wait between the end of a tick and the next.
            tick: Coroutine function run on every tick.
            token: Token that stops the loop.
            run_immediately: Run one tick before the first wait.
        """
        self.name = name
        self.interval = interval
        self.token = token
        self.run_immediately = run_immediately
        self.tick_count = 0
        self._tick = tick
        self._log = logger.bind(component="periodic_loop", loop=name)

    async def run(self) -> None:
        """Tick until the token is cancelled."""
        self._log.info("loop_started", interval_seconds=self.interval)

        if self.run_immediately and not self.token.cancelled:
            await self._run_tick()

        while not self.token.cancelled:
            if await self.token.wait(self.interval):
                break
            await self._run_tick()

        self._log.info("loop_stopped", ticks=self.tick_count)

    async def _run_tick(self) -> None:
        self.tick_count += 1
        try:
            await self._tick()
        except Exception as e:
            self._log.exception("tick_failed", tick=self.tick_count, error=str(e))
