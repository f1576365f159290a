"""Shared test fixtures for srpsession.

Provides the in-process fake API server, transports wired to it, isolated
config environments, output state management, and a CLI runner. These
fixtures are discovered by pytest and available to all test modules.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterator

import httpx
import pytest
from rich.logging import RichHandler

from fake_server import BASE_URL, FakeAPIServer
from srpsession.models import Profile, RetryPolicy, TransportConfig
from srpsession.output import OutputFormat, OutputManager, reset_output, set_output
from srpsession.transport import AsyncHttpxTransport, HttpxTransport

ALICE_PASSWORD = "correct horse battery staple"


# ---------------------------------------------------------------------------
# Auto-reset global output and logging state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> Iterator[None]:
    """Reset the global OutputManager and drop CLI log handlers after every test.

    Both cache references to sys.stdout/sys.stderr at creation time. When
    Typer's CliRunner redirects those streams and the test finishes, the
    references become stale ("I/O operation on closed file").
    """
    yield
    reset_output()
    logger = logging.getLogger("srpsession")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Fake server and transports
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_server() -> FakeAPIServer:
    """A fake API with one account, ``alice``, and no second factor."""
    server = FakeAPIServer()
    server.add_account("alice", ALICE_PASSWORD)
    return server


@pytest.fixture
def alice_password() -> str:
    return ALICE_PASSWORD


@pytest.fixture
def transport_config() -> TransportConfig:
    return TransportConfig(base_url=BASE_URL)


@pytest.fixture
def no_backoff() -> RetryPolicy:
    """Retry policy that never sleeps."""
    return RetryPolicy(max_retries=3, backoff_base=0.0, backoff_max=0.0)


@pytest.fixture
def transport(fake_server: FakeAPIServer, transport_config: TransportConfig) -> Iterator[HttpxTransport]:
    """Blocking transport routed to the fake server."""
    t = HttpxTransport(transport_config, transport=httpx.MockTransport(fake_server.handler))
    yield t
    t.close()


@pytest.fixture
def make_async_transport(
    fake_server: FakeAPIServer, transport_config: TransportConfig
) -> Callable[[], AsyncHttpxTransport]:
    """Factory for non-blocking transports routed to the fake server.

    Call it inside the coroutine under test and close the result there.
    """

    def factory() -> AsyncHttpxTransport:
        return AsyncHttpxTransport(
            transport_config, transport=httpx.MockTransport(fake_server.ahandler)
        )

    return factory


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points the XDG directories at ``tmp_path``, clears ``SRPSESSION_*``
    environment variables, and changes the working directory to ``tmp_path``.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("srpsession.config._is_xdg_platform", lambda: True)
    for var in ["SRPSESSION_PROFILE", "SRPSESSION_BASE_URL"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def sample_profile() -> Profile:
    return Profile(
        name="work",
        username="alice",
        password_source="env:SRPSESSION_TEST_PASSWORD",
        transport=TransportConfig(base_url=BASE_URL, timeout=5),
        retry=RetryPolicy(max_retries=1, backoff_base=0.0),
    )


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> Iterator[OutputManager]:
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> Iterator[OutputManager]:
    output = OutputManager(format=OutputFormat.JSON)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
