"""Canonical Pydantic models shared across poe_api.

The models fall into two groups:

**Configuration** -- :class:`ApiConfig`, the immutable bundle of client
identity and redirect settings handed to :class:`~poe_api.client.PoEApi`.
It is validated once at construction (redirect URL parsed, listen
addresses resolved) and raises :class:`~poe_api.exceptions.ConfigurationError`
on any problem.

**API payloads** -- :class:`TokenResponse`, :class:`Profile`,
:class:`ProfileAffiliation` and :class:`ProviderErrorBody`, deserialised from
the provider's JSON responses.

All models use Pydantic v2.
"""

from __future__ import annotations

import socket
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from poe_api.exceptions import ConfigurationError

DEFAULT_SUCCESS_HTML = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Authorization complete</title></head>
<body>
<h2>Authorization complete</h2>
<p>You can close this window and return to your application.</p>
</body>
</html>
"""


# --- Configuration ---


def _parse_socket_address(value: Any) -> tuple[str, int]:
    """Split a ``host:port`` string (or pass through a ``(host, port)`` pair)."""
    if isinstance(value, (tuple, list)) and len(value) == 2:
        host, port = value
    elif isinstance(value, str):
        host, sep, port = value.strip().rpartition(":")
        if not sep or not host:
            raise ValueError(f"'{value}' is not a host:port address")
        # [::1]:8088
        host = host.strip("[]")
    else:
        raise ValueError(f"Unsupported socket address: {value!r}")
    try:
        port = int(port)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid port in socket address {value!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"Port out of range in socket address {value!r}")
    return str(host), port


def _resolve_socket_address(host: str, port: int) -> tuple[str, int]:
    """Resolve *host* to a numeric address, keeping the first result."""
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except socket.gaierror as exc:
        raise ValueError(f"Cannot resolve socket address {host}:{port}: {exc}") from None
    if not infos:
        raise ValueError(f"Socket address {host}:{port} resolved to nothing")
    sockaddr = infos[0][4]
    return str(sockaddr[0]), int(sockaddr[1])


class ApiConfig(BaseModel):
    """Client identity and redirect settings.

    Only ``client_id``, ``version`` and ``contact_email`` are required to
    call the API. The authorization flow additionally needs
    ``redirect_url`` and ``redirect_addr``; the redirect URL's host and
    port must reach one of the listen addresses, which is the caller's
    responsibility and is not cross-checked here.

    Example::

        ApiConfig(
            client_id="my-tool",
            version="1.0.0",
            contact_email="me@example.com",
            redirect_url="http://localhost:8088",
            redirect_addr="127.0.0.1:8088",
        )

    Raises:
        ConfigurationError: If any field is missing or invalid.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(min_length=1, description="OAuth client identifier")
    version: str = Field(min_length=1, description="Client version for the User-Agent")
    contact_email: str = Field(min_length=1, description="Contact for the User-Agent")
    user_agent_extra: str = Field(
        default="", description="Suffix appended verbatim to the User-Agent"
    )
    custom_headers: dict[str, str] = Field(
        default_factory=dict, description="Extra headers sent with every API request"
    )
    redirect_url: Optional[str] = Field(
        default=None, description="Absolute redirect URI registered with the provider"
    )
    redirect_addr: tuple[tuple[str, int], ...] = Field(
        default=(), description="Local socket addresses the callback listener binds"
    )
    success_html: str = Field(
        default=DEFAULT_SUCCESS_HTML,
        description="Page served to the browser after a valid redirect",
    )

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise ConfigurationError(_format_validation_error(exc)) from exc

    @field_validator("redirect_url")
    @classmethod
    def _check_redirect_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        try:
            url = httpx.URL(value)
        except httpx.InvalidURL as exc:
            raise ValueError(f"Invalid redirect URL '{value}': {exc}") from None
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError(f"Redirect URL must be an absolute http(s) URL: '{value}'")
        return str(url)

    @field_validator("redirect_addr", mode="before")
    @classmethod
    def _resolve_redirect_addr(cls, value: Any) -> tuple[tuple[str, int], ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            entries: list[Any] = [part for part in value.split(",") if part.strip()]
        elif isinstance(value, tuple) and len(value) == 2 and isinstance(value[1], int):
            entries = [value]
        else:
            entries = list(value)
        return tuple(
            _resolve_socket_address(*_parse_socket_address(entry)) for entry in entries
        )

    @property
    def redirect_origin(self) -> str:
        """``scheme://host[:port]`` of :attr:`redirect_url`.

        Raises:
            ConfigurationError: If no redirect URL is configured.
        """
        if self.redirect_url is None:
            raise ConfigurationError("redirect_url is required for the authorization flow")
        url = httpx.URL(self.redirect_url)
        return f"{url.scheme}://{url.netloc.decode('ascii')}"

    @property
    def user_agent(self) -> str:
        """User-Agent in the form the provider asks third-party tools to send."""
        return (
            f"OAuth {self.client_id}/{self.version} "
            f"(contact: {self.contact_email}){self.user_agent_extra}"
        )


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "config"
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "Invalid configuration: " + "; ".join(parts)


# --- API payloads ---


class TokenResponse(BaseModel):
    """Token endpoint response.

    Only ``access_token`` is guaranteed; the remaining fields are filled
    when the provider sends them. Unknown fields are kept in
    ``model_extra``.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    username: Optional[str] = None
    sub: Optional[str] = None


class ProfileAffiliation(BaseModel):
    """A guild or Twitch channel linked to the account."""

    name: str


class Profile(BaseModel):
    """The authenticated account as returned by ``GET /profile``."""

    uuid: str
    name: str
    realm: Optional[str] = None
    locale: Optional[str] = None
    guild: Optional[ProfileAffiliation] = None
    twitch: Optional[ProfileAffiliation] = None


class ProviderErrorBody(BaseModel):
    """Structured error body returned by the API and the OAuth provider."""

    error: str
    error_description: str = ""
