"""Core data models for the security updater.

This module defines the immutable run configuration, the records produced by
the yum output parser, and the outcome types that the orchestrator and the
metrics sampler exchange.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Severity(str, Enum):
    """Yum security advisory severity."""

    LOW = "Low"
    MODERATE = "Moderate"
    MEDIUM = "Medium"
    IMPORTANT = "Important"
    CRITICAL = "Critical"


ALLOWED_SEVERITIES: frozenset[str] = frozenset(s.value for s in Severity)


def _ordered_unique(values: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))


class RunConfiguration(BaseModel):
    """Filters and mode shared by every update and metrics cycle."""

    model_config = ConfigDict(frozen=True)

    dry_run: bool = Field(default=False, description="Only check, never apply updates")
    exclude_packages: tuple[str, ...] = Field(
        default=(), description="Package names passed to yum as --exclude"
    )
    update_packages: tuple[str, ...] = Field(
        default=(), description="Package names to update, all eligible when empty"
    )
    severities: tuple[str, ...] = Field(
        default=(Severity.IMPORTANT.value, Severity.CRITICAL.value),
        description="Security severities passed to yum as --sec-severity",
    )

    @field_validator("exclude_packages", "update_packages")
    @classmethod
    def _dedupe_packages(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return _ordered_unique(value)

    @field_validator("severities")
    @classmethod
    def _validate_severities(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for severity in value:
            if severity not in ALLOWED_SEVERITIES:
                raise ValueError(f"invalid severity: {severity}")
        return _ordered_unique(value)


class DaemonSettings(BaseModel):
    """Everything the daemon needs, validated once at startup."""

    model_config = ConfigDict(frozen=True)

    node_id: str = Field(..., min_length=1, description="Node identity used as metrics label")
    interval_seconds: float = Field(..., gt=0, description="Period of the update loop")
    metrics_enabled: bool = Field(default=True, description="Run the metrics loop and endpoint")
    metrics_addr: str = Field(default="0.0.0.0", description="Metrics HTTP bind address")
    metrics_port: int = Field(default=9080, ge=0, le=65535, description="Metrics HTTP port")
    metrics_interval_seconds: float = Field(..., gt=0, description="Period of the metrics loop")
    run: RunConfiguration = Field(default_factory=RunConfiguration)


@dataclass(frozen=True)
class UpdateRecord:
    """A package with a pending security update, as listed by yum."""

    name: str
    arch: str
    version: str
    repo: str


@dataclass(frozen=True)
class CommandResult:
    """Result of one external command run through the command runner."""

    command: tuple[str, ...]
    exit_code: int
    output: bytes = b""
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        """Return True if the command exited with status zero."""
        return self.exit_code == 0


class CheckStatus(str, Enum):
    """Interpretation of a command whose exit code doubles as a boolean."""

    NONE_FOUND = "none_found"
    FOUND = "found"
    FAILED = "failed"


@dataclass(frozen=True)
class CheckOutcome:
    """Interpreted result of a check command.

    Raw exit codes are turned into a CheckOutcome exactly once, where the
    command result is first seen. Everything downstream works on the status.
    """

    status: CheckStatus
    exit_code: int | None = None
    detail: str | None = None
    output: bytes = b""

    @classmethod
    def from_exit_code(
        cls,
        result: CommandResult,
        found_exit_code: int,
        name: str,
    ) -> CheckOutcome:
        """Classify a command result.

        Args:
            result: The finished command.
            found_exit_code: Exit status meaning "condition is true".
            name: Human readable command name used in the failure detail.

        Returns:
            FOUND for the sentinel code, NONE_FOUND for zero, FAILED otherwise.
        """
        if result.exit_code == found_exit_code:
            return cls(CheckStatus.FOUND, result.exit_code, output=result.output)
        if result.exit_code == 0:
            return cls(CheckStatus.NONE_FOUND, 0, output=result.output)
        return cls(
            CheckStatus.FAILED,
            result.exit_code,
            detail=f"{name} did not run successfully: exit status {result.exit_code}",
            output=result.output,
        )

    @classmethod
    def failed(cls, detail: str) -> CheckOutcome:
        """Build a FAILED outcome for a command that could not be run."""
        return cls(CheckStatus.FAILED, detail=detail)

    @property
    def found(self) -> bool:
        return self.status == CheckStatus.FOUND

    @property
    def is_failure(self) -> bool:
        return self.status == CheckStatus.FAILED


class CycleOutcome(str, Enum):
    """Outcome of one update cycle."""

    NO_UPDATES_NO_REBOOT = "no_updates_no_reboot"
    UPDATES_APPLIED = "updates_applied"
    REBOOT_REQUIRED = "reboot_required"
    DRY_RUN = "dry_run"
    FAILED = "failed"


@dataclass(frozen=True)
class CycleResult:
    """Outcome of an update cycle including its retries."""

    outcome: CycleOutcome
    attempts: int = 1
    cause: BaseException | None = None

    @property
    def failed(self) -> bool:
        return self.outcome == CycleOutcome.FAILED


@dataclass(frozen=True)
class MetricsSnapshot:
    """Pending security updates of one node at one sampling instant."""

    node: str
    records: tuple[UpdateRecord, ...] = field(default_factory=tuple)

    @property
    def pending_count(self) -> int:
        """Return the value published on the pending-updates gauge."""
        return len(self.records)

    def label_sets(self) -> list[dict[str, str]]:
        """Return the per-package counter labels, one per record."""
        return [
            {
                "node": self.node,
                "name": record.name,
                "arch": record.arch,
                "version": record.version,
                "repo": record.repo,
            }
            for record in self.records
        ]
