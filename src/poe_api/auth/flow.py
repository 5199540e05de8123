"""OAuth2 Authorization Code flow with PKCE against the Path of Exile provider.

:class:`AuthorizationFlow` drives one complete authorization:

1. Binds a :class:`~poe_api.auth.listener.CallbackListener` on the
   configured redirect address(es).
2. Generates a fresh PKCE pair and CSRF token.
3. Builds the authorization URL and hands it to the caller's
   ``present_url`` hook (print it, open a browser, ...).
4. Waits in a worker thread for the redirect carrying the matching
   ``state``.
5. Exchanges the code and PKCE verifier for a token.

The listener is closed on every exit path. :meth:`close_authorization_server`
may be called from any thread or task to abort a flow that is still waiting
for the redirect; the wait then ends with
:class:`~poe_api.exceptions.FlowCancelled` within one poll interval.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import threading
from typing import Any, Awaitable, Callable, Iterable, Union

import httpx

from poe_api.auth.listener import DEFAULT_POLL_INTERVAL, CallbackListener
from poe_api.auth.pkce import (
    AUTHORIZE_URL,
    TOKEN_URL,
    build_authorization_url,
    generate_csrf_token,
    generate_pkce_pair,
)
from poe_api.exceptions import ConfigurationError, ExchangeFailure, PoEApiError
from poe_api.models import ApiConfig, TokenResponse
from poe_api.scopes import AccountScope

logger = logging.getLogger(__name__)

PresentUrl = Callable[[str], Union[None, Awaitable[None]]]
"""Hook that puts the authorization URL in front of the user.

It may be a plain function or a coroutine function. Raising aborts the
flow before the listener starts waiting.
"""


class AuthorizationFlow:
    """One Authorization Code + PKCE exchange.

    Each instance owns its own cancellation event and runs at most once.

    Args:
        config: Client identity and redirect settings. ``redirect_url``
            and ``redirect_addr`` must both be set.
        http_client: Client used for the token request. It carries the
            User-Agent and transport of the owning
            :class:`~poe_api.client.PoEApi`.
        poll_interval: Seconds the listener waits between cancellation
            checks.
        authorize_url: Authorization endpoint.
        token_url: Token endpoint.

    Example::

        flow = AuthorizationFlow(config, client)
        token = await flow.run([AccountScope.PROFILE], print)
    """

    def __init__(
        self,
        config: ApiConfig,
        http_client: httpx.AsyncClient,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        authorize_url: str = AUTHORIZE_URL,
        token_url: str = TOKEN_URL,
    ) -> None:
        self._config = config
        self._http = http_client
        self._poll_interval = poll_interval
        self._authorize_url = authorize_url
        self._token_url = token_url
        self._cancelled = threading.Event()
        self._started = False

    @property
    def cancelled(self) -> bool:
        """Whether :meth:`close_authorization_server` has been called."""
        return self._cancelled.is_set()

    def close_authorization_server(self) -> None:
        """Abort the redirect wait. Thread-safe; idempotent."""
        self._cancelled.set()

    async def run(
        self,
        scopes: Iterable[AccountScope | str],
        present_url: PresentUrl,
    ) -> TokenResponse:
        """Perform the full flow and return the token response.

        Args:
            scopes: Scopes to request.
            present_url: Called once with the authorization URL.

        Returns:
            The provider's :class:`~poe_api.models.TokenResponse`.

        Raises:
            ConfigurationError: If the redirect settings are missing.
            ListenerBindError: If the listen address is unavailable.
            FlowCancelled: If the flow was cancelled while waiting.
            TransportError: If the listener fails.
            ExchangeFailure: If the code could not be exchanged.
            Exception: Whatever *present_url* raises, unchanged.
        """
        if self._started:
            raise RuntimeError("AuthorizationFlow.run() may only be called once")
        self._started = True

        config = self._config
        if config.redirect_url is None:
            raise ConfigurationError("redirect_url is required for the authorization flow")
        if not config.redirect_addr:
            raise ConfigurationError("redirect_addr is required for the authorization flow")

        with CallbackListener(config.redirect_addr, config.redirect_origin) as listener:
            code_verifier, code_challenge = generate_pkce_pair()
            csrf_token = generate_csrf_token()

            auth_url = build_authorization_url(
                client_id=config.client_id,
                redirect_uri=config.redirect_url,
                csrf_token=csrf_token,
                code_challenge=code_challenge,
                scopes=list(scopes),
                authorize_url=self._authorize_url,
            )
            logger.info("Starting authorization flow for client '%s'", config.client_id)

            result = present_url(auth_url)
            if inspect.isawaitable(result):
                await result

            waiter = asyncio.ensure_future(
                asyncio.to_thread(
                    listener.await_authorization_code,
                    csrf_token,
                    config.success_html,
                    self._poll_interval,
                    self._cancelled,
                )
            )
            try:
                code = await asyncio.shield(waiter)
            except asyncio.CancelledError:
                # The worker thread cannot be cancelled; stop its poll loop
                # and let it finish before the listener is closed.
                self._cancelled.set()
                with contextlib.suppress(PoEApiError):
                    await waiter
                raise

        return await self._exchange_code(code, code_verifier)

    async def _exchange_code(self, code: str, code_verifier: str) -> TokenResponse:
        """Exchange the authorization code for a token.

        Every failure is reported as the same :class:`ExchangeFailure`;
        the cause is logged and chained but not surfaced as its own type.
        """
        assert self._config.redirect_url

        data: dict[str, str] = {
            "client_id": self._config.client_id,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._config.redirect_url,
            "code_verifier": code_verifier,
        }

        try:
            response = await self._http.post(
                self._token_url,
                data=data,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            payload: Any = response.json()
            return TokenResponse.model_validate(payload)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Token exchange failed: %s", _describe_exchange_error(exc))
            raise ExchangeFailure() from exc


def _describe_exchange_error(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    return f"{type(exc).__name__}: {exc}"

