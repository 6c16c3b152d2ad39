"""Configuration parsing for the security updater.

Turns raw command-line values and the process environment into validated,
immutable DaemonSettings. Every problem found here is a ConfigurationError,
which is fatal before any loop starts.
"""

from __future__ import annotations

import os
import re
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from .models import ALLOWED_SEVERITIES, DaemonSettings, RunConfiguration

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = structlog.get_logger(__name__)

NODE_ID_ENV = "YUMSECUPDATER_NODE_ID"

DEFAULT_SEVERITIES = "Important,Critical"
DEFAULT_UPDATE_INTERVAL = "24h"
DEFAULT_EXCLUDE_PACKAGES = ""
DEFAULT_UPDATE_PACKAGES = ""
DEFAULT_DRY_RUN = False

DEFAULT_METRICS = True
DEFAULT_METRICS_ADDR = "0.0.0.0"
DEFAULT_METRICS_PORT = 9080
DEFAULT_METRICS_INTERVAL = "1h"

# Seconds per unit, following Go's time.ParseDuration.
_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_FULL = re.compile(rf"[+-]?(?:{_DURATION_PART.pattern})+")


class ConfigurationError(Exception):
    """Raised when the daemon cannot start because of invalid configuration."""


def parse_comma_separated(value: str) -> list[str]:
    """Split a comma separated flag value.

    Surrounding whitespace is stripped and empty items are dropped, so an
    empty string yields an empty list.
    """
    return [item.strip() for item in value.split(",") if item.strip()]


def validate_severity(severity: str) -> None:
    """Raise ConfigurationError unless severity is a known yum severity."""
    if severity not in ALLOWED_SEVERITIES:
        allowed = ",".join(sorted(ALLOWED_SEVERITIES))
        raise ConfigurationError(f"invalid severity: {severity} (allowed: {allowed})")


def parse_duration(value: str) -> float:
    """Parse a Go style duration string such as ``24h`` or ``1h30m``.

    Args:
        value: Duration string.

    Returns:
        Duration in seconds.

    Raises:
        ConfigurationError: If the string is not a valid duration.
    """
    text = value.strip()
    if text in ("0", "+0", "-0"):
        return 0.0
    if not _DURATION_FULL.fullmatch(text):
        raise ConfigurationError(f"invalid duration: {value!r}")

    sign = -1.0 if text.startswith("-") else 1.0
    total = sum(
        float(number) * _DURATION_UNITS[unit] for number, unit in _DURATION_PART.findall(text)
    )
    return sign * total


def _parse_interval(value: str, flag: str) -> float:
    try:
        seconds = parse_duration(value)
    except ConfigurationError as e:
        raise ConfigurationError(f"{flag}: {e}") from e
    if seconds <= 0:
        raise ConfigurationError(f"{flag} must be a positive duration, got {value!r}")
    return seconds


def load_node_id(environ: Mapping[str, str] | None = None) -> str:
    """Read the node identity from the environment.

    Raises:
        ConfigurationError: If the variable is unset or empty.
    """
    env = os.environ if environ is None else environ
    node_id = env.get(NODE_ID_ENV, "").strip()
    if not node_id:
        raise ConfigurationError(f"Environment variable {NODE_ID_ENV} not found.")
    return node_id


def build_settings(
    *,
    exclude_packages: str = DEFAULT_EXCLUDE_PACKAGES,
    update_packages: str = DEFAULT_UPDATE_PACKAGES,
    severities: str = DEFAULT_SEVERITIES,
    interval: str = DEFAULT_UPDATE_INTERVAL,
    metrics: bool = DEFAULT_METRICS,
    metrics_addr: str = DEFAULT_METRICS_ADDR,
    metrics_port: int = DEFAULT_METRICS_PORT,
    metrics_interval: str = DEFAULT_METRICS_INTERVAL,
    dry_run: bool = DEFAULT_DRY_RUN,
    environ: Mapping[str, str] | None = None,
) -> DaemonSettings:
    """Validate raw option values into DaemonSettings.

    Args:
        exclude_packages: Comma separated packages to exclude.
        update_packages: Comma separated packages to update.
        severities: Comma separated severities.
        interval: Update loop period as a duration string.
        metrics: Whether the metrics loop and endpoint run.
        metrics_addr: Metrics bind address.
        metrics_port: Metrics bind port.
        metrics_interval: Metrics loop period as a duration string.
        dry_run: Only check for updates.
        environ: Environment to read the node identity from.

    Returns:
        Frozen DaemonSettings.

    Raises:
        ConfigurationError: On any invalid value.
    """
    # An empty list applies no severity filter at all.
    severity_list = parse_comma_separated(severities)
    for severity in severity_list:
        validate_severity(severity)

    interval_seconds = _parse_interval(interval, "interval")
    metrics_interval_seconds = _parse_interval(metrics_interval, "metrics-interval")
    node_id = load_node_id(environ)

    try:
        settings = DaemonSettings(
            node_id=node_id,
            interval_seconds=interval_seconds,
            metrics_enabled=metrics,
            metrics_addr=metrics_addr,
            metrics_port=metrics_port,
            metrics_interval_seconds=metrics_interval_seconds,
            run=RunConfiguration(
                dry_run=dry_run,
                exclude_packages=tuple(parse_comma_separated(exclude_packages)),
                update_packages=tuple(parse_comma_separated(update_packages)),
                severities=tuple(severity_list),
            ),
        )
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e

    logger.debug(
        "settings_loaded",
        node=settings.node_id,
        interval_seconds=settings.interval_seconds,
        metrics_enabled=settings.metrics_enabled,
        dry_run=settings.run.dry_run,
    )
    return settings
