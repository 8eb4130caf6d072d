"""Shared test fixtures for reqflow.

Provides reusable fixtures for building clients over fake transports,
creating isolated config environments, managing output state, and running
CLI commands.  These fixtures are automatically discovered by pytest and
available to all test modules without explicit imports.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from reqflow.client.transport import RawResponse
from reqflow.models import RequestDescriptor
from reqflow.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------


Reply = Any


class FakeTransport:
    """Scripted transport that records every request it receives.

    Each entry of *replies* answers one call; the last entry is repeated
    once the script runs out.  An entry may be a :class:`RawResponse`, an
    exception instance to raise, or a callable taking the request and
    returning (or awaiting to) one of those.
    """

    def __init__(self, *replies: Reply) -> None:
        self.replies = list(replies) or [json_raw({"ok": True})]
        self.calls: list[RequestDescriptor] = []
        self.timeouts: list[Optional[float]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def send(self, request: RequestDescriptor, *, timeout: Optional[float] = None) -> RawResponse:
        self.calls.append(request)
        self.timeouts.append(timeout)
        index = min(len(self.calls), len(self.replies)) - 1
        reply = self.replies[index]
        if callable(reply) and not isinstance(reply, RawResponse):
            reply = reply(request)
            if hasattr(reply, "__await__"):
                reply = await reply
        if isinstance(reply, BaseException):
            raise reply
        return reply


def json_raw(data: Any, status: int = 200, headers: Optional[dict[str, str]] = None) -> RawResponse:
    """Build a :class:`RawResponse` with a JSON body."""
    import json

    all_headers = {"Content-Type": "application/json"}
    all_headers.update(headers or {})
    return RawResponse(status=status, headers=all_headers, content=json.dumps(data).encode())


@pytest.fixture
def fake_transport_factory() -> Callable[..., FakeTransport]:
    """Return the :class:`FakeTransport` constructor."""
    return FakeTransport


@pytest.fixture
def raw_json() -> Callable[..., RawResponse]:
    """Return the :func:`json_raw` builder."""
    return json_raw


@pytest.fixture
def no_sleep() -> Callable[[float], Any]:
    """A backoff sleep that records delays (seconds) without waiting."""
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path so that tests never touch real user
    config.  Clears all REQFLOW_* environment variables and changes
    the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("reqflow.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "REQFLOW_BASE_URL",
        "REQFLOW_TIMEOUT",
        "REQFLOW_RETRIES",
        "REQFLOW_CACHE",
        "REQFLOW_CACHE_TIME",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON-format OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
