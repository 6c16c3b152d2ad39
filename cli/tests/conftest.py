"""Shared test fixtures for CLI tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import structlog

from secupdater.config import NODE_ID_ENV

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Isolate tests from the node identity and logging setup of the host.

    Removes YUMSECUPDATER_NODE_ID so every test sets it explicitly, and
    resets structlog afterwards since the CLI configures it globally.
    """
    monkeypatch.delenv(NODE_ID_ENV, raising=False)
    yield
    structlog.reset_defaults()
