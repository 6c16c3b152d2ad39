"""Serialized execution of external commands.

Yum holds a global lock on the rpm database, and its output is only
meaningful when it is not interleaved with another run. The CommandRunner
therefore owns a single asyncio lock and runs at most one external command
at a time, whichever loop asks for it.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

from .models import CommandResult

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = structlog.get_logger(__name__)


class CommandLaunchError(Exception):
    """Raised when an external command cannot be started at all."""

    def __init__(self, command: Sequence[str], cause: OSError) -> None:
        """Initialize the launch error.

        Args:
            command: The command that failed to start.
            cause: The OSError raised by the process spawn.
        """
        self.command = tuple(command)
        self.cause = cause
        super().__init__(f"cannot run {' '.join(self.command)}: {cause}")


class CommandRunner:
    """Runs external commands one at a time.

    The lock is acquired before the process is spawned and released once it
    has exited, on success and on failure. Commands always run to completion;
    nothing here kills a running process.
    """

    def __init__(self) -> None:
        """Initialize the runner with an unlocked lock."""
        self._lock = asyncio.Lock()
        self._log = logger.bind(component="command_runner")

    @property
    def busy(self) -> bool:
        """Return True while a command is running or about to run."""
        return self._lock.locked()

    async def run_exclusive(
        self,
        command: Sequence[str],
        *,
        capture: bool = False,
    ) -> CommandResult:
        """Run a command while holding the runner lock.

        Args:
            command: Command and arguments.
            capture: If True, merge stderr into stdout and return the bytes.
                     Otherwise stream both to the logger line by line.

        Returns:
            CommandResult with the exit status and captured output.

        Raises:
            CommandLaunchError: If the executable is missing or not runnable.
        """
        log = self._log.bind(command=" ".join(command))

        async with self._lock:
            log.info("running_command", capture=capture)
            start = time.monotonic()

            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT if capture else asyncio.subprocess.PIPE,
                )
            except OSError as e:
                log.error("command_launch_failed", error=str(e))
                raise CommandLaunchError(command, e) from e

            output = b""
            if capture:
                output, _ = await process.communicate()
            else:
                try:
                    await asyncio.gather(
                        self._forward(process.stdout, log, "out"),
                        self._forward(process.stderr, log, "err"),
                    )
                finally:
                    await process.wait()

            exit_code = process.returncode if process.returncode is not None else -1
            duration = time.monotonic() - start
            log.debug(
                "command_completed",
                exit_code=exit_code,
                duration_seconds=round(duration, 3),
                output_len=len(output),
            )

        return CommandResult(
            command=tuple(command),
            exit_code=exit_code,
            output=output,
            duration_seconds=duration,
        )

    @staticmethod
    async def _forward(
        stream: asyncio.StreamReader | None,
        log: structlog.stdlib.BoundLogger,
        std: str,
    ) -> None:
        """Log every line of a process stream until EOF."""
        if stream is None:
            return
        while True:
            try:
                line = await stream.readline()
            except ValueError:
                # readline drops a line longer than the stream limit
                log.warning("command_output_line_too_long", std=std)
                continue
            if not line:
                break
            text = line.decode("utf-8", errors="replace").rstrip()
            if not text:
                continue
            if std == "err":
                log.warning("command_output", std=std, line=text)
            else:
                log.info("command_output", std=std, line=text)
