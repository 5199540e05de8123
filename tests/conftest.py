"""Shared test fixtures for poe_api.

Provides configuration builders bound to free loopback ports, environment
isolation, and resets for the global output manager and library logger.
These fixtures are discovered automatically by pytest.
"""

from __future__ import annotations

import logging
import socket
from typing import Any, Callable

import pytest

from poe_api.models import ApiConfig
from poe_api.output import reset_output


# ---------------------------------------------------------------------------
# Global state resets
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_global_state() -> None:
    """Reset the global OutputManager and the ``poe_api`` logger after every test.

    The CLI callback installs a handler bound to the stderr stream that
    Typer's CliRunner swaps in; once that stream is closed the handler
    would fail on the next record.
    """
    yield
    reset_output()
    logger = logging.getLogger("poe_api")
    logger.handlers[:] = []
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear every POE_* variable so the developer's environment never leaks in.

    Each variable is set before it is deleted so that monkeypatch also removes
    values a test loads from a ``.env`` file.
    """
    for var in [
        "POE_CLIENT_ID",
        "POE_VERSION",
        "POE_CONTACT_EMAIL",
        "POE_REDIRECT_URL",
        "POE_REDIRECT_ADDR",
        "POE_USER_AGENT_EXTRA",
        "POE_SUCCESS_HTML_FILE",
        "POE_ACCESS_TOKEN",
    ]:
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


def _find_free_port() -> int:
    """Find a free TCP port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def free_port() -> int:
    """A TCP port on 127.0.0.1 that was free a moment ago."""
    return _find_free_port()


@pytest.fixture
def free_port_factory() -> Callable[[], int]:
    """Returns a callable handing out further free ports."""
    return _find_free_port


@pytest.fixture
def make_config(free_port: int) -> Callable[..., ApiConfig]:
    """Factory for an ApiConfig whose redirect points at ``free_port``.

    Keyword arguments override the defaults.
    """

    def _make(**kwargs: Any) -> ApiConfig:
        defaults: dict[str, Any] = {
            "client_id": "c1",
            "version": "0.0.0",
            "contact_email": "email@email.com",
            "redirect_url": f"http://127.0.0.1:{free_port}",
            "redirect_addr": f"127.0.0.1:{free_port}",
        }
        defaults.update(kwargs)
        return ApiConfig(**defaults)

    return _make


@pytest.fixture
def api_config(make_config: Callable[..., ApiConfig]) -> ApiConfig:
    """A complete config with client_id ``c1`` and a loopback redirect."""
    return make_config()
