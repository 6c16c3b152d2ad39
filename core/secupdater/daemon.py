"""Daemon wiring the update loop, the metrics loop and shutdown handling."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from .metrics import MetricsSampler, MetricsServer, UpdateMetrics
from .orchestrator import UpdateOrchestrator
from .retry import CYCLE_RETRY_POLICY
from .runner import CommandRunner
from .scheduler import PeriodicLoop
from .shutdown import ShutdownCoordinator

if TYPE_CHECKING:
    from .models import DaemonSettings
    from .retry import RetryPolicy
    from .yum import YumCommandBuilder

logger = structlog.get_logger(__name__)

UPDATE_LOOP = "update"
METRICS_LOOP = "metrics"


class Daemon:
    """Long running security updater.

    One CommandRunner is shared by the orchestrator and the sampler, so yum
    never runs twice at the same time even though both loops tick
    independently.
    """

    def __init__(
        self,
        settings: DaemonSettings,
        runner: CommandRunner | None = None,
        commands: YumCommandBuilder | None = None,
        coordinator: ShutdownCoordinator | None = None,
        retry_policy: RetryPolicy = CYCLE_RETRY_POLICY,
    ) -> None:
        """Initialize the daemon.

        Args:
            settings: Validated settings.
            runner: Command runner, a fresh one by default.
            commands: Command builder, the host-namespace builder by default.
            coordinator: Shutdown coordinator, a fresh one by default.
            retry_policy: Policy for retrying failed update cycles.
        """
        self.settings = settings
        self.runner = runner or CommandRunner()
        self.coordinator = coordinator or ShutdownCoordinator()
        self.orchestrator = UpdateOrchestrator(
            settings.run,
            self.runner,
            commands=commands,
            retry_policy=retry_policy,
            interval_seconds=settings.interval_seconds,
        )

        self.metrics: UpdateMetrics | None = None
        self.sampler: MetricsSampler | None = None
        self.server: MetricsServer | None = None
        if settings.metrics_enabled:
            self.metrics = UpdateMetrics(settings.node_id)
            self.sampler = MetricsSampler(settings.run, self.runner, self.metrics, commands=commands)
            self.server = MetricsServer(self.metrics, settings.metrics_addr, settings.metrics_port)

        self._log = logger.bind(component="daemon", node=settings.node_id)

    async def update_tick(self) -> None:
        """Run one retried update cycle, then refresh the metrics."""
        await self.orchestrator.run_with_retry(cancel=self.coordinator.token(UPDATE_LOOP))
        if self.sampler is not None:
            await self.sampler.sample()

    async def run(self) -> None:
        """Run until a termination signal has been handled."""
        self._log.info(
            "daemon_started",
            interval_seconds=self.settings.interval_seconds,
            metrics_enabled=self.settings.metrics_enabled,
            dry_run=self.settings.run.dry_run,
        )
        self.coordinator.install_signal_handlers()

        try:
            if self.sampler is not None and self.server is not None:
                await self.server.start()
                await self.sampler.sample()
                metrics_loop = PeriodicLoop(
                    METRICS_LOOP,
                    self.settings.metrics_interval_seconds,
                    self.sampler.sample,
                    self.coordinator.token(METRICS_LOOP),
                )
                self.coordinator.track(asyncio.create_task(metrics_loop.run()))

            update_loop = PeriodicLoop(
                UPDATE_LOOP,
                self.settings.interval_seconds,
                self.update_tick,
                self.coordinator.token(UPDATE_LOOP),
                run_immediately=True,
            )
            self.coordinator.track(asyncio.create_task(update_loop.run()))

            await self.coordinator.run()
        finally:
            if self.server is not None:
                await self.server.stop()
            self.coordinator.remove_signal_handlers()

        self._log.info("exit", idle_confirmed=self.coordinator.idle_confirmed)
