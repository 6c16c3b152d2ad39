"""Update orchestrator for security-only yum updates.

One cycle is a short linear sequence with early exits:

1. check for security updates (``yum check-update``)
2. stop here in dry-run mode
3. apply updates if any were found (``yum update``)
4. check whether a reboot is required (``needs-restarting -r``), always,
   since something else may have required one
5. touch the reboot sentinel if so

Any hard failure aborts the rest of the cycle. The whole cycle is retried by
the cycle-retry policy.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from .models import CheckOutcome, CycleOutcome, CycleResult
from .retry import CYCLE_RETRY_POLICY, RetryCancelledError, RetryExhaustedError, with_retry
from .runner import CommandLaunchError
from .yum import REBOOT_REQUIRED_EXIT_CODE, UPDATES_AVAILABLE_EXIT_CODE, YumCommandBuilder

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import CommandResult, RunConfiguration
    from .retry import RetryPolicy
    from .runner import CommandRunner
    from .scheduler import CancellationToken

logger = structlog.get_logger(__name__)


class CycleError(Exception):
    """Raised when a step of an update cycle fails."""

    def __init__(self, step: str, detail: str) -> None:
        """Initialize the cycle error.

        Args:
            step: Name of the failed step.
            detail: What went wrong.
        """
        self.step = step
        self.detail = detail
        super().__init__(f"{step} failed: {detail}")


class UpdateOrchestrator:
    """Runs update cycles through a shared command runner."""

    def __init__(
        self,
        config: RunConfiguration,
        runner: CommandRunner,
        commands: YumCommandBuilder | None = None,
        retry_policy: RetryPolicy = CYCLE_RETRY_POLICY,
        interval_seconds: float | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Filters and mode for every cycle.
            runner: Runner serializing every external command.
            commands: Command builder, defaults to the host-namespace builder.
            retry_policy: Policy applied to whole cycles by run_with_retry.
            interval_seconds: Update interval, only used to log the next check.
        """
        self.config = config
        self.runner = runner
        self.commands = commands or YumCommandBuilder()
        self.retry_policy = retry_policy
        self.interval_seconds = interval_seconds
        self._log = logger.bind(component="orchestrator")

    async def check_updates(self) -> CheckOutcome:
        """Check whether security updates are available."""
        self._log.info("checking_updates")
        outcome = await self._check(
            self.commands.check_update_command(self.config),
            UPDATES_AVAILABLE_EXIT_CODE,
            "yum-check-update",
        )
        if outcome.found:
            self._log.info("updates_available")
        elif not outcome.is_failure:
            self._log.info("no_updates_available")
        return outcome

    async def apply_updates(self) -> None:
        """Apply security updates.

        Raises:
            CycleError: If yum could not run or exited non-zero.
        """
        self._log.info("updating_security_packages")
        result = await self._run("apply_updates", self.commands.update_command(self.config))
        if not result.succeeded:
            raise CycleError(
                "apply_updates",
                f"yum-update did not run successfully: exit status {result.exit_code}",
            )
        self._log.info("updates_applied")

    async def check_reboot_required(self) -> CheckOutcome:
        """Check whether the host needs a reboot."""
        self._log.info("checking_reboot_required")
        outcome = await self._check(
            self.commands.reboot_check_command(),
            REBOOT_REQUIRED_EXIT_CODE,
            "needs-restarting",
        )
        if outcome.found:
            self._log.info("reboot_required")
        elif not outcome.is_failure:
            self._log.info("no_reboot_required")
        return outcome

    async def write_sentinel(self) -> None:
        """Touch the reboot sentinel file on the host.

        Raises:
            CycleError: If the file could not be created.
        """
        self._log.info("creating_sentinel_file", path=str(self.commands.sentinel_file))
        result = await self._run("write_sentinel", self.commands.sentinel_command())
        if not result.succeeded:
            raise CycleError(
                "write_sentinel",
                f"create sentinel failed: exit status {result.exit_code}",
            )
        self._log.info("sentinel_file_created")

    async def run_cycle(self) -> CycleOutcome:
        """Run one update cycle.

        Returns:
            The outcome of the cycle.

        Raises:
            CycleError: On the first failing step.
        """
        updates = await self.check_updates()
        if updates.is_failure:
            raise CycleError("check_updates", updates.detail or "unknown error")

        if self.config.dry_run:
            self._log.info("dry_run_enabled", updates_available=updates.found)
            return CycleOutcome.DRY_RUN

        if updates.found:
            await self.apply_updates()

        reboot = await self.check_reboot_required()
        if reboot.is_failure:
            raise CycleError("check_reboot_required", reboot.detail or "unknown error")

        if reboot.found:
            await self.write_sentinel()
            return CycleOutcome.REBOOT_REQUIRED

        if updates.found:
            return CycleOutcome.UPDATES_APPLIED
        return CycleOutcome.NO_UPDATES_NO_REBOOT

    async def run_with_retry(self, cancel: CancellationToken | None = None) -> CycleResult:
        """Run a cycle, retrying it according to the retry policy.

        Failures never propagate: an exhausted policy is logged and reported
        as a FAILED result so the loop can try again on its next tick.

        Args:
            cancel: Token that stops further retries when cancelled.

        Returns:
            CycleResult describing the final outcome.
        """
        attempts = 0

        async def attempt() -> CycleOutcome:
            nonlocal attempts
            attempts += 1
            return await self.run_cycle()

        try:
            outcome = await with_retry(attempt, self.retry_policy, cancel=cancel)
            result = CycleResult(outcome=outcome, attempts=attempts)
            self._log.info("cycle_completed", outcome=outcome.value, attempts=attempts)
        except RetryCancelledError as e:
            self._log.warning("cycle_retry_cancelled", attempts=e.attempts, error=str(e.last_error))
            result = CycleResult(CycleOutcome.FAILED, attempts=attempts, cause=e.last_error)
        except RetryExhaustedError as e:
            self._log.error("cycle_failed", attempts=e.attempts, error=str(e.last_error))
            result = CycleResult(CycleOutcome.FAILED, attempts=attempts, cause=e.last_error)

        if self.interval_seconds is not None:
            next_check = datetime.now() + timedelta(seconds=self.interval_seconds)
            self._log.info("next_update_check", at=next_check.strftime("%Y-%m-%d %H:%M:%S"))

        return result

    async def _check(
        self,
        command: Sequence[str],
        found_exit_code: int,
        name: str,
    ) -> CheckOutcome:
        try:
            result = await self.runner.run_exclusive(command)
        except CommandLaunchError as e:
            return CheckOutcome.failed(f"{name} did not run successfully: {e}")
        outcome = CheckOutcome.from_exit_code(result, found_exit_code, name)
        if outcome.is_failure:
            self._log.warning("check_failed", check=name, exit_code=outcome.exit_code)
        return outcome

    async def _run(self, step: str, command: Sequence[str]) -> CommandResult:
        try:
            return await self.runner.run_exclusive(command)
        except CommandLaunchError as e:
            raise CycleError(step, str(e)) from e
