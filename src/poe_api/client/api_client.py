"""Asynchronous client for the Path of Exile API.

This module provides :class:`PoEApi`, a thin wrapper around
:class:`httpx.AsyncClient` that:

- **Identifies the caller** -- every request carries the
  ``OAuth {client_id}/{version} (contact: ...)`` User-Agent the provider
  requires, plus any configured custom headers.
- **Maps errors** -- structured ``{error, error_description}`` bodies
  become :class:`~poe_api.exceptions.ProviderError`; network failures
  become :class:`~poe_api.exceptions.TransportError`.
- **Obtains tokens** -- :meth:`PoEApi.get_token` runs an
  :class:`~poe_api.auth.flow.AuthorizationFlow` over the same HTTP client,
  so the token exchange shares the User-Agent and transport.

Nothing is retried. Redirects are not followed.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

import httpx

from poe_api.auth.flow import AuthorizationFlow, PresentUrl
from poe_api.auth.listener import DEFAULT_POLL_INTERVAL
from poe_api.exceptions import ProviderError, TransportError
from poe_api.models import ApiConfig, Profile, ProviderErrorBody, TokenResponse
from poe_api.scopes import AccountScope

logger = logging.getLogger(__name__)

API_URL = "https://api.pathofexile.com"

DEFAULT_TIMEOUT = 30.0


def api_url(endpoint: str) -> str:
    """Join :data:`API_URL` and an endpoint path such as ``"/profile"``."""
    if not endpoint.startswith("/"):
        endpoint = f"/{endpoint}"
    return f"{API_URL}{endpoint}"


class PoEApi:
    """Client for the Path of Exile API.

    Usable as an async context manager so that the underlying connection
    pool is closed.

    Args:
        config: Validated client configuration.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests.
        timeout: Request timeout in seconds.
        poll_interval: Poll interval handed to authorization flows.

    Example::

        async with PoEApi(config) as api:
            token = await api.get_token([AccountScope.PROFILE], print)
            profile = await api.get_profile(token.access_token)
    """

    def __init__(
        self,
        config: ApiConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._config = config
        self._poll_interval = poll_interval
        self._flows: set[AuthorizationFlow] = set()

        headers = dict(config.custom_headers)
        headers["User-Agent"] = config.user_agent

        self._client = httpx.AsyncClient(
            base_url=API_URL,
            headers=headers,
            timeout=timeout,
            follow_redirects=False,
            transport=transport,
        )

    @property
    def config(self) -> ApiConfig:
        return self._config

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> PoEApi:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Authorization
    # ------------------------------------------------------------------ #

    async def get_token(
        self,
        scopes: Iterable[AccountScope | str],
        present_url: PresentUrl,
    ) -> TokenResponse:
        """Run the Authorization Code + PKCE flow and return the token.

        A new :class:`~poe_api.auth.flow.AuthorizationFlow` is created for
        every call; nothing is shared between calls. Concurrent calls need
        distinct listen addresses (or port 0).

        Args:
            scopes: Scopes to request.
            present_url: Called once with the authorization URL.

        Raises:
            ConfigurationError, ListenerBindError, FlowCancelled,
            TransportError, ExchangeFailure: See
            :meth:`AuthorizationFlow.run`.
        """
        flow = AuthorizationFlow(self._config, self._client, poll_interval=self._poll_interval)
        self._flows.add(flow)
        try:
            return await flow.run(scopes, present_url)
        finally:
            self._flows.discard(flow)

    def close_authorization_server(self) -> None:
        """Cancel every authorization flow currently waiting for its redirect.

        Safe to call from any thread. Does nothing when no flow is running.
        """
        for flow in list(self._flows):
            flow.close_authorization_server()

    # ------------------------------------------------------------------ #
    # Endpoints
    # ------------------------------------------------------------------ #

    async def get_profile(self, access_token: str) -> Profile:
        """Fetch the account behind *access_token*.

        Raises:
            ProviderError: If the API answers with a structured error body.
            TransportError: On network failures, on error responses without
                a structured body, or on an undecodable success body.
        """
        response = await self.get("/profile", access_token)
        try:
            return Profile.model_validate(response.json())
        except ValueError as exc:
            raise TransportError(
                f"Unexpected profile response: {exc}", status_code=response.status_code
            ) from exc

    async def get(self, endpoint: str, access_token: str, **kwargs: Any) -> httpx.Response:
        """Send an authenticated GET request."""
        return await self.request("GET", endpoint, access_token, **kwargs)

    async def request(
        self,
        method: str,
        endpoint: str,
        access_token: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send an authenticated request and map error responses.

        Args:
            method: HTTP method.
            endpoint: Path under :data:`API_URL`.
            access_token: Bearer token.
            **kwargs: Forwarded to :meth:`httpx.AsyncClient.request`.

        Returns:
            The successful :class:`httpx.Response`.
        """
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {access_token}"

        logger.debug("%s %s", method, endpoint)
        try:
            response = await self._client.request(method, api_url(endpoint), headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {endpoint} failed: {exc}") from exc

        self._map_response_error(response)
        return response

    def _map_response_error(self, response: httpx.Response) -> None:
        """Raise a typed exception for error HTTP status codes."""
        status = response.status_code
        if status < 400:
            return

        try:
            body = ProviderErrorBody.model_validate(response.json())
        except ValueError:
            # ValidationError and JSONDecodeError are both ValueErrors
            text = response.text[:200] if response.text else ""
            msg = f"HTTP {status}: {text}" if text else f"HTTP {status}"
            raise TransportError(msg, status_code=status) from None

        raise ProviderError(body.error, body.error_description, status_code=status)
