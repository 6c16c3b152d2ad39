"""Shared test fixtures for the updater engine."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest
import structlog

from secupdater.models import CommandResult, RunConfiguration
from secupdater.runner import CommandLaunchError
from secupdater.yum import YumCommandBuilder

if TYPE_CHECKING:
    from collections.abc import Callable, Generator, Sequence
    from pathlib import Path

VALID_UPDATE_LINES = [
    "117.x86_64                   1:1.0.2k-21.el7_9              rhel-7-server-rpms",
    "118.x86_64                   1:1.0.2k-21.el7_9              rhel-7-server-rpms      ",
    "pkg-noarch.noarch            32:9.11.4-26.P2.el7_9.5        rhel-7-server_rpms",
    "pkg-x86_64.x86_64            2:1.13.1-206.git7d71120.el7_9  rhel-7-server.extras-rpms",
    "pkg-with_spec-chars.x86_64   1.8.23-10.el7_9.1              rhel-7-server-rpms",
]

CHECK_UPDATE_OUTPUT = "\n".join(
    [
        "Loaded plugins: product-id, search-disabled-repos, subscription-manager",
        "",
        *VALID_UPDATE_LINES,
        "",
    ]
).encode()


class ScriptedRunner:
    """Command runner double answering from a script keyed by tool and action.

    A response is an exit code, a (exit code, output) tuple or an exception
    to raise. A list of responses is consumed one call at a time, its last
    entry repeating. Keys are matched against the command with the host prefix
    removed: ``check-update``, ``update``, ``needs-restarting`` and ``touch``.
    """

    def __init__(self, responses: dict[str, object] | None = None) -> None:
        self.responses = responses or {}
        self.calls: list[list[str]] = []
        self.captures: list[bool] = []
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @staticmethod
    def key(command: Sequence[str]) -> str:
        if command[0] == "yum":
            return command[3]
        return command[0]

    def keys(self) -> list[str]:
        return [self.key(call) for call in self.calls]

    async def run_exclusive(self, command: Sequence[str], *, capture: bool = False) -> CommandResult:
        async with self._lock:
            self.calls.append(list(command))
            self.captures.append(capture)
            response = self.responses.get(self.key(command), 0)
            if isinstance(response, list):
                response = response.pop(0) if len(response) > 1 else response[0]
            if isinstance(response, BaseException):
                raise response
            if isinstance(response, tuple):
                exit_code, output = response
            else:
                exit_code, output = response, b""
            return CommandResult(command=tuple(command), exit_code=exit_code, output=output)


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Keep structlog configuration from leaking between tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def make_runner() -> Callable[..., ScriptedRunner]:
    """Factory for scripted runners."""
    return ScriptedRunner


@pytest.fixture
def commands() -> YumCommandBuilder:
    """Command builder without the nsenter prefix."""
    return YumCommandBuilder(host_prefix=())


@pytest.fixture
def config() -> RunConfiguration:
    return RunConfiguration()


@pytest.fixture
def check_update_output() -> bytes:
    return CHECK_UPDATE_OUTPUT


@pytest.fixture
def launch_error() -> CommandLaunchError:
    return CommandLaunchError(["yum"], FileNotFoundError(2, "No such file or directory"))


@pytest.fixture
def pid_file(tmp_path: Path) -> Path:
    """Path of a yum PID file that does not exist yet."""
    return tmp_path / "yum.pid"
