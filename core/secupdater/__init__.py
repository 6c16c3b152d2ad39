"""Yum security updater engine.

Periodically applies security-only yum updates on a cluster node, signals
kured through a sentinel file when a reboot is required, and exports the
pending security updates as Prometheus metrics.

Module Overview:
    config: Flag and environment validation into DaemonSettings
    daemon: Wiring of both loops, the metrics server and shutdown handling
    metrics: Prometheus metrics, the metrics sampler and the HTTP endpoint
    models: Pydantic settings and the records and outcomes exchanged at runtime
    orchestrator: The check / update / reboot-check / sentinel cycle
    parser: Parser for ``yum check-update`` output
    retry: Bounded fixed-delay retry policies
    runner: Serialized execution of external commands
    scheduler: Periodic loops and cancellation tokens
    shutdown: Signal handling and graceful shutdown
    yum: Command construction for yum and the host namespace
"""

from importlib.metadata import version as get_package_version

from secupdater.config import (
    NODE_ID_ENV,
    ConfigurationError,
    build_settings,
    load_node_id,
    parse_comma_separated,
    parse_duration,
    validate_severity,
)
from secupdater.daemon import Daemon
from secupdater.metrics import MetricsSampler, MetricsServer, UpdateMetrics
from secupdater.models import (
    CheckOutcome,
    CheckStatus,
    CommandResult,
    CycleOutcome,
    CycleResult,
    DaemonSettings,
    MetricsSnapshot,
    RunConfiguration,
    Severity,
    UpdateRecord,
)
from secupdater.orchestrator import CycleError, UpdateOrchestrator
from secupdater.parser import ParseError, parse_updates_available
from secupdater.retry import (
    CYCLE_RETRY_POLICY,
    IDLE_WAIT_POLICY,
    RetryCancelledError,
    RetryExhaustedError,
    RetryPolicy,
    with_retry,
)
from secupdater.runner import CommandLaunchError, CommandRunner
from secupdater.scheduler import CancellationToken, PeriodicLoop
from secupdater.shutdown import LifecycleState, ShutdownCoordinator
from secupdater.yum import YumAction, YumCommandBuilder, is_yum_running

__version__ = get_package_version("yum-secupdater")

__all__ = [
    "CYCLE_RETRY_POLICY",
    "IDLE_WAIT_POLICY",
    "NODE_ID_ENV",
    "CancellationToken",
    "CheckOutcome",
    "CheckStatus",
    "CommandLaunchError",
    "CommandResult",
    "CommandRunner",
    "ConfigurationError",
    "CycleError",
    "CycleOutcome",
    "CycleResult",
    "Daemon",
    "DaemonSettings",
    "LifecycleState",
    "MetricsSampler",
    "MetricsServer",
    "MetricsSnapshot",
    "ParseError",
    "PeriodicLoop",
    "RetryCancelledError",
    "RetryExhaustedError",
    "RetryPolicy",
    "RunConfiguration",
    "Severity",
    "ShutdownCoordinator",
    "UpdateMetrics",
    "UpdateOrchestrator",
    "UpdateRecord",
    "YumAction",
    "YumCommandBuilder",
    "build_settings",
    "is_yum_running",
    "load_node_id",
    "parse_comma_separated",
    "parse_duration",
    "parse_updates_available",
    "validate_severity",
    "with_retry",
]
