"""Yum and host command construction.

The daemon runs inside a container but must act on the host, so every
command is wrapped with nsenter to enter the mount namespace of PID 1. The
pod therefore needs ``hostPID: true`` and ``privileged: true``.

Exit status contract of the tools used here:
- ``yum check-update``: 100 when updates are available, 0 when none.
- ``needs-restarting -r``: 1 when a reboot is required, 0 when not.
Any other non-zero status is a failure.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import RunConfiguration

HOST_COMMAND_PREFIX: tuple[str, ...] = ("/usr/bin/nsenter", "-m/proc/1/ns/mnt", "--")
YUM_BASE_COMMAND: tuple[str, ...] = ("yum", "-y", "-q")
REBOOT_CHECK_COMMAND: tuple[str, ...] = ("needs-restarting", "-r")

UPDATES_AVAILABLE_EXIT_CODE = 100
REBOOT_REQUIRED_EXIT_CODE = 1

# Consumed by kured to schedule a node reboot.
SENTINEL_FILE = Path("/var/run/reboot-required")
YUM_PID_FILE = Path("/var/run/yum.pid")


class YumAction(str, Enum):
    """Yum sub-commands used by the updater."""

    CHECK_UPDATE = "check-update"
    UPDATE = "update"


class YumCommandBuilder:
    """Builds every external command issued by the updater."""

    def __init__(
        self,
        host_prefix: Sequence[str] = HOST_COMMAND_PREFIX,
        sentinel_file: Path = SENTINEL_FILE,
    ) -> None:
        """Initialize the builder.

        Args:
            host_prefix: Prefix entering the host namespace. Empty runs locally.
            sentinel_file: Path of the reboot sentinel on the host.
        """
        self.host_prefix = tuple(host_prefix)
        self.sentinel_file = sentinel_file

    def host_command(self, command: Sequence[str]) -> list[str]:
        """Wrap a command so that it runs in the host mount namespace."""
        return [*self.host_prefix, *command]

    def updates_command(self, action: YumAction, config: RunConfiguration) -> list[str]:
        """Build a security-only yum command.

        Order: base command, action, ``--security``, one ``--exclude=`` per
        excluded package, one ``--sec-severity=`` per severity, then the
        packages to update.
        """
        cmd = [*YUM_BASE_COMMAND, action.value, "--security"]
        cmd.extend(f"--exclude={pkg}" for pkg in config.exclude_packages)
        cmd.extend(f"--sec-severity={severity}" for severity in config.severities)
        cmd.extend(config.update_packages)
        return self.host_command(cmd)

    def check_update_command(self, config: RunConfiguration) -> list[str]:
        return self.updates_command(YumAction.CHECK_UPDATE, config)

    def update_command(self, config: RunConfiguration) -> list[str]:
        return self.updates_command(YumAction.UPDATE, config)

    def reboot_check_command(self) -> list[str]:
        return self.host_command(REBOOT_CHECK_COMMAND)

    def sentinel_command(self) -> list[str]:
        return self.host_command(["touch", str(self.sentinel_file)])


def is_yum_running(pid_file: Path = YUM_PID_FILE) -> bool:
    """Return True if yum's PID file exists."""
    return pid_file.exists()
