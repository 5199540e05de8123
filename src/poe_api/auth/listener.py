"""Local HTTP listener that captures the provider's redirect.

:class:`CallbackListener` binds one small :class:`~http.server.HTTPServer`
per configured listen address and waits for the browser to be redirected
back with ``?state=...&code=...``. The wait is a polling loop over a
single selector: each iteration blocks for at most ``poll_interval``
seconds and then checks a cancellation :class:`threading.Event`, so another
thread can abort the wait without any socket trickery.

Accepted connections are parked in the same selector and only handed to
the request handler once they have data to read. A browser's speculative
preconnect therefore never stalls the loop, and a request that stops
mid-way is dropped after one poll interval.

Only a request whose ``state`` equals the expected CSRF token *and* which
carries a ``code`` is accepted. Every other request, whatever its method,
is answered with ``422 Invalid Query`` and the wait continues.

See Also:
    :class:`poe_api.auth.flow.AuthorizationFlow`, which owns the listener
    for the duration of one flow.
"""

from __future__ import annotations

import hmac
import logging
import selectors
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Iterable, NamedTuple, Optional
from urllib.parse import parse_qs, urlparse

from poe_api.exceptions import (
    ConfigurationError,
    FlowCancelled,
    ListenerBindError,
    TransportError,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.1

IDLE_CONNECTION_TIMEOUT = 60.0
"""Seconds an accepted connection may stay silent before it is closed."""

INVALID_QUERY_BODY = b"Invalid Query"


class _CallbackHandler(BaseHTTPRequestHandler):
    """Answers one redirect request on behalf of the owning listener.

    The socket timeout is set by the listener before the handler runs.
    """

    server: _CallbackServer

    timeout = None

    def do_GET(self) -> None:
        self._answer(send_body=True)

    def do_HEAD(self) -> None:
        self._answer(send_body=False)

    def __getattr__(self, name: str) -> Callable[[], None]:
        # Any other method (POST, PUT, DELETE, ...) is answered like GET.
        if name.startswith("do_"):
            return self.do_GET
        raise AttributeError(name)

    def _answer(self, send_body: bool) -> None:
        listener = self.server.listener
        url = f"{listener.redirect_origin}{self.path}"
        params = parse_qs(urlparse(url).query)

        state = _first(params, "state")
        code = _first(params, "code")

        if state is not None and code is not None and listener._matches_state(state):
            listener._accept(code)
            body = listener._success_html.encode("utf-8")
            self.send_response(200)
            self.send_header("Content-Type", "text/html; charset=utf-8")
        else:
            logger.debug(
                "Rejected %s callback from %s: state/code missing or mismatched",
                self.command,
                self.client_address[0],
            )
            body = INVALID_QUERY_BODY
            self.send_response(422)
            self.send_header("Content-Type", "text/plain; charset=utf-8")

        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        if send_body:
            self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class _CallbackServer(HTTPServer):
    """HTTPServer bound to one listen address and pointing back at its listener."""

    def __init__(self, address: tuple[str, int], listener: CallbackListener) -> None:
        self.listener = listener
        if ":" in address[0]:
            self.address_family = socket.AF_INET6
        super().__init__(address, _CallbackHandler)

    def handle_error(self, request: Any, client_address: Any) -> None:
        logger.warning("Error while answering callback from %s", client_address, exc_info=True)


class _PendingConnection(NamedTuple):
    """An accepted connection waiting for its request bytes."""

    server: _CallbackServer
    client_address: Any
    deadline: float


def _first(params: dict[str, list[str]], name: str) -> Optional[str]:
    values = params.get(name)
    if not values:
        return None
    return values[0]


class CallbackListener:
    """Captures exactly one valid authorization redirect.

    The sockets are bound in the constructor, so an unavailable address
    fails immediately rather than after the user has been sent to the
    provider. Use as a context manager (or call :meth:`close`) to release
    them.

    Args:
        addresses: One or more ``(host, port)`` pairs to listen on.
        redirect_origin: ``scheme://host[:port]`` of the registered
            redirect URI. Requests only carry a path, so the full redirect
            URL is rebuilt from this origin.

    Raises:
        ConfigurationError: If no address is given.
        ListenerBindError: If any address cannot be bound.
    """

    def __init__(self, addresses: Iterable[tuple[str, int]], redirect_origin: str) -> None:
        self.redirect_origin = redirect_origin.rstrip("/")
        self._servers: list[_CallbackServer] = []
        self._selector = selectors.DefaultSelector()
        self._closed = False
        self._lock = threading.Lock()

        self._expected_state: Optional[str] = None
        self._success_html = ""
        self._code: Optional[str] = None

        addresses = list(addresses)
        if not addresses:
            self._selector.close()
            raise ConfigurationError("At least one redirect listen address is required")

        for host, port in addresses:
            try:
                server = _CallbackServer((host, port), self)
            except OSError as exc:
                self.close()
                raise ListenerBindError(
                    f"Cannot bind callback listener on {host}:{port}: {exc}"
                ) from exc
            self._servers.append(server)
            self._selector.register(server, selectors.EVENT_READ, server)
            logger.debug("Callback listener bound on %s:%s", *server.server_address[:2])

    @property
    def addresses(self) -> list[tuple[str, int]]:
        """The actually bound ``(host, port)`` pairs (useful with port 0)."""
        return [(str(s.server_address[0]), int(s.server_address[1])) for s in self._servers]

    @property
    def closed(self) -> bool:
        return self._closed

    def await_authorization_code(
        self,
        expected_state: str,
        success_html: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        cancelled: Optional[threading.Event] = None,
    ) -> str:
        """Block until a redirect with the expected state arrives.

        Requests are served one at a time on the calling thread. No step of
        the loop blocks for longer than *poll_interval*, which bounds how
        long a set *cancelled* event goes unnoticed.

        Args:
            expected_state: The CSRF token embedded in the authorization
                URL. Compared exactly, with no normalization.
            success_html: Page returned to the browser with ``200`` when
                the redirect is accepted.
            poll_interval: Upper bound in seconds on each wait, and on
                reading a request once its first bytes have arrived.
            cancelled: Event set by another thread to abort the wait.

        Returns:
            The ``code`` query parameter of the accepted redirect.

        Raises:
            FlowCancelled: If *cancelled* is set while waiting.
            TransportError: If the listener sockets fail or the listener
                was already closed or already produced a code.
        """
        if self._closed:
            raise TransportError("Callback listener is closed")
        if self._code is not None:
            raise TransportError("Callback listener already produced an authorization code")

        if cancelled is None:
            cancelled = threading.Event()

        self._expected_state = expected_state
        self._success_html = success_html
        try:
            while True:
                if cancelled.is_set():
                    logger.info("Authorization server closed while waiting for the redirect")
                    raise FlowCancelled("Authorization server was closed before a redirect arrived")

                try:
                    ready = self._selector.select(timeout=poll_interval)
                except (OSError, ValueError) as exc:
                    # ValueError: a socket was closed underneath the selector
                    raise TransportError(f"Callback listener failed: {exc}") from exc

                for key, _ in ready:
                    if isinstance(key.data, _CallbackServer):
                        self._accept_connection(key.data)
                    else:
                        self._serve_connection(key.fileobj, key.data, poll_interval)
                        if self._code is not None:
                            logger.info("Received authorization callback")
                            return self._code

                self._drop_idle_connections()
        finally:
            self._expected_state = None

    def _accept_connection(self, server: _CallbackServer) -> None:
        try:
            sock, client_address = server.get_request()
        except OSError as exc:
            logger.debug("Failed to accept callback connection: %s", exc)
            return
        deadline = time.monotonic() + IDLE_CONNECTION_TIMEOUT
        pending = _PendingConnection(server, client_address, deadline)
        self._selector.register(sock, selectors.EVENT_READ, pending)

    def _serve_connection(self, sock: Any, pending: _PendingConnection, poll_interval: float) -> None:
        self._selector.unregister(sock)
        sock.settimeout(poll_interval)
        server = pending.server
        try:
            server.process_request(sock, pending.client_address)
        except Exception:
            server.handle_error(sock, pending.client_address)
            server.shutdown_request(sock)

    def _drop_idle_connections(self) -> None:
        mapping = self._selector.get_map()
        if mapping is None:
            # closed from another thread; the next select reports it
            return
        now = time.monotonic()
        for key in list(mapping.values()):
            pending = key.data
            if isinstance(pending, _PendingConnection) and pending.deadline <= now:
                logger.debug("Closing idle callback connection from %s", pending.client_address)
                self._selector.unregister(key.fileobj)
                pending.server.shutdown_request(key.fileobj)

    def _matches_state(self, state: str) -> bool:
        expected = self._expected_state
        if expected is None or self._code is not None:
            return False
        return hmac.compare_digest(state.encode("utf-8"), expected.encode("utf-8"))

    def _accept(self, code: str) -> None:
        self._code = code

    def close(self) -> None:
        """Release every bound socket and open connection. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for key in list(self._selector.get_map().values()):
                if isinstance(key.data, _PendingConnection):
                    key.data.server.shutdown_request(key.fileobj)
            for server in self._servers:
                server.server_close()
            self._selector.close()
            logger.debug("Callback listener closed")

    def __enter__(self) -> CallbackListener:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
