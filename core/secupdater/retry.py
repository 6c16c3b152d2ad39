"""Bounded retries with a fixed delay between attempts."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .scheduler import CancellationToken

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """Raised when every attempt of a retried operation failed."""

    def __init__(self, policy: RetryPolicy, errors: list[Exception]) -> None:
        """Initialize the error.

        Args:
            policy: Policy that was applied.
            errors: Errors of every attempt, oldest first.
        """
        self.policy = policy
        self.errors = errors
        self.attempts = len(errors)
        self.last_error = errors[-1] if errors else None
        super().__init__(
            f"{policy.name} gave up after {self.attempts} attempt(s): {self.last_error}"
        )


class RetryCancelledError(RetryExhaustedError):
    """Raised when retrying stops early because the caller was cancelled."""


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry an operation."""

    name: str
    delay: float
    attempts: int

    @property
    def ceiling(self) -> float:
        """Return the total time spent sleeping if every attempt fails."""
        return self.delay * max(self.attempts - 1, 0)


# Wait up to five minutes for a running yum to finish before exiting.
IDLE_WAIT_POLICY = RetryPolicy(name="idle_wait", delay=10.0, attempts=30)

CYCLE_RETRY_POLICY = RetryPolicy(name="cycle_retry", delay=30 * 60.0, attempts=10)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    cancel: CancellationToken | None = None,
) -> T:
    """Run an operation until it succeeds or the policy is exhausted.

    Args:
        operation: Coroutine function to call on every attempt.
        policy: Delay and number of attempts.
        cancel: Optional token. When cancelled during a delay, no further
                attempt is made.

    Returns:
        The result of the first successful attempt.

    Raises:
        RetryExhaustedError: If every attempt raised.
        RetryCancelledError: If the token was cancelled between attempts.
    """
    log = logger.bind(policy=policy.name)
    errors: list[Exception] = []

    for attempt in range(1, policy.attempts + 1):
        try:
            return await operation()
        except Exception as e:
            errors.append(e)
            if attempt >= policy.attempts:
                break

            log.warning(
                "attempt_failed",
                attempt=attempt,
                max_attempts=policy.attempts,
                delay=policy.delay,
                error=str(e),
            )

        if cancel is None:
            await asyncio.sleep(policy.delay)
        elif await cancel.wait(policy.delay):
            log.info("retry_cancelled", attempt=attempt)
            raise RetryCancelledError(policy, errors)

    raise RetryExhaustedError(policy, errors)
