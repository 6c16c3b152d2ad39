"""Prometheus metrics for pending security updates.

The sampler runs ``yum check-update`` on its own schedule, parses the list of
packages with updates and republishes two metric families:

- ``yumsecupdater_packages_with_update_total{node}``: gauge, number of
  packages with a pending security update.
- ``yumsecupdater_package_with_update{node,name,arch,version,repo}``:
  counter, one label set per pending package.

Every sample replaces the previous state entirely, so packages that have been
updated since the last sample disappear from the endpoint.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, generate_latest

from .models import CheckOutcome, MetricsSnapshot
from .parser import ParseError, parse_updates_available
from .runner import CommandLaunchError
from .yum import UPDATES_AVAILABLE_EXIT_CODE, YumCommandBuilder

if TYPE_CHECKING:
    from .models import RunConfiguration, UpdateRecord
    from .runner import CommandRunner

logger = structlog.get_logger(__name__)

METRICS_PATH = "/metrics"

PACKAGES_WITH_UPDATE_TOTAL = "yumsecupdater_packages_with_update_total"
PACKAGE_WITH_UPDATE = "yumsecupdater_package_with_update"

PACKAGE_LABELS = ("node", "name", "arch", "version", "repo")


class UpdateMetrics:
    """Owns the metric objects and their registry.

    Attributes:
        node: Node identity added as label to every sample.
        registry: Registry holding only this instance's metrics.
    """

    def __init__(self, node: str, registry: CollectorRegistry | None = None) -> None:
        """Create and register the metric families.

        Args:
            node: Node identity.
            registry: Registry to use, a fresh one by default.
        """
        self.node = node
        self.registry = registry if registry is not None else CollectorRegistry()
        self.packages_with_update_total = Gauge(
            PACKAGES_WITH_UPDATE_TOTAL,
            "Total packages with security updates.",
            ["node"],
            registry=self.registry,
        )
        self.package_with_update = Counter(
            PACKAGE_WITH_UPDATE,
            "Package with security update.",
            list(PACKAGE_LABELS),
            registry=self.registry,
        )

    def publish(self, snapshot: MetricsSnapshot) -> None:
        """Replace the published state with a snapshot."""
        self.packages_with_update_total.labels(node=snapshot.node).set(snapshot.pending_count)

        # Drop label sets of packages that no longer have an update.
        self.package_with_update.clear()
        for labels in snapshot.label_sets():
            self.package_with_update.labels(**labels).inc()

    def render(self) -> bytes:
        """Return the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry)


class MetricsSampler:
    """Samples pending security updates and publishes them."""

    def __init__(
        self,
        config: RunConfiguration,
        runner: CommandRunner,
        metrics: UpdateMetrics,
        commands: YumCommandBuilder | None = None,
    ) -> None:
        """Initialize the sampler.

        Args:
            config: Filters used for the check command.
            runner: Runner shared with the orchestrator.
            metrics: Metric objects written by this sampler only.
            commands: Command builder, defaults to the host-namespace builder.
        """
        self.config = config
        self.runner = runner
        self.metrics = metrics
        self.commands = commands or YumCommandBuilder()
        self.last_snapshot = MetricsSnapshot(node=metrics.node)
        self._log = logger.bind(component="metrics")

    async def collect(self) -> list[UpdateRecord]:
        """Run the check command and parse its output.

        Returns:
            Packages with updates, empty unless yum reported updates.

        Raises:
            CommandLaunchError: If yum could not be started.
            ParseError: If the output could not be decomposed.
        """
        self._log.info("checking_updates")
        result = await self.runner.run_exclusive(
            self.commands.check_update_command(self.config),
            capture=True,
        )
        outcome = CheckOutcome.from_exit_code(
            result, UPDATES_AVAILABLE_EXIT_CODE, "yum-check-update"
        )
        if not outcome.found:
            if outcome.is_failure:
                self._log.warning("check_failed", exit_code=outcome.exit_code)
            return []

        self._log.info("updates_available")
        return parse_updates_available(outcome.output)

    async def sample(self) -> MetricsSnapshot:
        """Take and publish a snapshot. Never raises for expected errors."""
        try:
            records = await self.collect()
        except (CommandLaunchError, ParseError) as e:
            self._log.error("sample_failed", error=str(e))
            records = []

        snapshot = MetricsSnapshot(node=self.metrics.node, records=tuple(records))
        self.metrics.publish(snapshot)
        self.last_snapshot = snapshot
        self._log.info("metrics_published", pending=snapshot.pending_count)
        return snapshot


class MetricsServer:
    """HTTP server exposing the metrics registry on ``/metrics``."""

    def __init__(self, metrics: UpdateMetrics, addr: str, port: int) -> None:
        self.metrics = metrics
        self.addr = addr
        self.port = port
        self._runner: web.AppRunner | None = None
        self._log = logger.bind(component="metrics_server", addr=f"{addr}:{port}")

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get(METRICS_PATH, self._handle_metrics)
        return app

    async def start(self) -> None:
        """Bind the listening socket and start serving."""
        self._log.info("starting_metrics_server")
        runner = web.AppRunner(self.build_app(), access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self.addr, self.port)
        try:
            await site.start()
        except OSError as e:
            self._log.error("metrics_server_bind_failed", error=str(e))
            await runner.cleanup()
            raise
        self._runner = runner

    async def stop(self) -> None:
        if self._runner is None:
            return
        self._log.info("stopping_metrics_server")
        await self._runner.cleanup()
        self._runner = None

    async def _handle_metrics(self, request: web.Request) -> web.Response:  # noqa: ARG002
        return web.Response(
            body=self.metrics.render(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )
