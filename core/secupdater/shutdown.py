"""Graceful shutdown on SIGINT and SIGTERM.

On the first termination signal the coordinator stops every registered
loop from starting another tick, then waits for yum to become idle so the
pod does not go away in the middle of a yum transaction on the host.
Exit proceeds once every loop has stopped, whether the idle wait
succeeded or timed out.
"""

from __future__ import annotations

import asyncio
import signal
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from .retry import IDLE_WAIT_POLICY, RetryExhaustedError, with_retry
from .scheduler import CancellationToken
from .yum import is_yum_running

if TYPE_CHECKING:
    from collections.abc import Callable

    from .retry import RetryPolicy

logger = structlog.get_logger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class LifecycleState(str, Enum):
    """Lifecycle of the daemon."""

    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class YumRunningError(Exception):
    """Raised by the idle check while yum is still running."""


class ShutdownCoordinator:
    """Stops the periodic loops and waits for yum before exit."""

    def __init__(
        self,
        is_busy: Callable[[], bool] = is_yum_running,
        idle_policy: RetryPolicy = IDLE_WAIT_POLICY,
    ) -> None:
        """Initialize the coordinator.

        Args:
            is_busy: Returns True while yum is running.
            idle_policy: Policy bounding the wait for yum to finish.
        """
        self.state = LifecycleState.RUNNING
        self.signal_name: str | None = None
        self.idle_confirmed: bool | None = None
        self._is_busy = is_busy
        self._idle_policy = idle_policy
        self._tokens: dict[str, CancellationToken] = {}
        self._tasks: list[asyncio.Task[None]] = []
        self._triggered = asyncio.Event()
        self._installed: list[signal.Signals] = []
        self._log = logger.bind(component="shutdown")

    def token(self, name: str) -> CancellationToken:
        """Return the cancellation token of a loop, creating it if needed."""
        if name not in self._tokens:
            self._tokens[name] = CancellationToken(name)
        return self._tokens[name]

    def track(self, task: asyncio.Task[None]) -> None:
        """Wait for this loop task before the coordinator reports STOPPED."""
        self._tasks.append(task)

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to request_shutdown on the running loop."""
        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            self._installed.append(sig)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._installed:
            loop.remove_signal_handler(sig)
        self._installed.clear()

    def request_shutdown(self, signal_name: str = "manual") -> None:
        """Start shutting down. Later requests are ignored."""
        if self._triggered.is_set():
            self._log.info("shutdown_already_requested", signal=signal_name)
            return
        self.signal_name = signal_name
        self._triggered.set()

    async def wait_for_signal(self) -> str:
        """Block until shutdown is requested and return the signal name."""
        await self._triggered.wait()
        return self.signal_name or "manual"

    async def wait_until_idle(self) -> bool:
        """Wait for yum to finish, bounded by the idle policy.

        Returns:
            True if yum is idle, False if the policy ran out first.
        """

        async def attempt() -> None:
            if self._is_busy():
                self._log.info("yum_running", wait_seconds=self._idle_policy.delay)
                raise YumRunningError("yum is running")

        try:
            await with_retry(attempt, self._idle_policy)
        except RetryExhaustedError as e:
            self._log.error("yum_still_running", attempts=e.attempts)
            return False

        self._log.info("yum_idle")
        return True

    async def drain(self) -> bool:
        """Stop every loop, wait for yum and for the loops to finish.

        Returns:
            Whether yum was confirmed idle.
        """
        self.state = LifecycleState.DRAINING
        self._log.info("graceful_shutdown", signal=self.signal_name)

        for token in self._tokens.values():
            token.cancel()

        self.idle_confirmed = await self.wait_until_idle()

        if self._tasks:
            results = await asyncio.gather(*self._tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    self._log.error("loop_terminated_with_error", error=repr(result))

        self.state = LifecycleState.STOPPED
        self._log.info("shutdown_complete", idle_confirmed=self.idle_confirmed)
        return self.idle_confirmed

    async def run(self) -> bool:
        """Wait for a shutdown request, then drain."""
        await self.wait_for_signal()
        return await self.drain()
