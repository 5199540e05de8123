"""Exception hierarchy for poe_api.

All exceptions inherit from :class:`PoEApiError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`poe_api.exit_codes`.
Library callers branch on the subclass; the ``poe-api`` entry point catches
``PoEApiError`` and exits with the matching code.

Subclass hierarchy::

    PoEApiError (exit 1)
    +-- ConfigurationError  (exit 2)
    +-- TransportError      (exit 6)
    |   +-- ListenerBindError (exit 6)
    +-- ProviderError       (exit 3)
    +-- FlowCancelled       (exit 130)
    +-- ExchangeFailure     (exit 3)

A callback carrying the wrong ``state`` is deliberately *not* an exception:
the listener answers it with HTTP 422 and keeps waiting.
"""

from __future__ import annotations

from typing import Optional

from poe_api.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONFIG_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
)


class PoEApiError(Exception):
    """Base exception for all poe_api errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(PoEApiError):
    """Raised for an invalid URL, an unresolvable socket address or a missing required field."""

    exit_code = EXIT_CONFIG_ERROR


class TransportError(PoEApiError):
    """Raised when the HTTPS client or the local callback listener fails at the I/O level.

    Args:
        message: Human-readable error description.
        status_code: HTTP status of the response that triggered the error,
            when there was one.
    """

    exit_code = EXIT_CONNECTION_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ListenerBindError(TransportError):
    """Raised when the callback listener cannot bind its listen address."""


class ProviderError(PoEApiError):
    """Raised when the API returns a structured ``{error, error_description}`` body.

    Attributes:
        error: The provider's machine-readable error code
            (e.g. ``"invalid_token"``).
        error_description: The provider's human-readable description.
        status_code: The HTTP status of the error response.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(
        self,
        error: str,
        error_description: str,
        status_code: Optional[int] = None,
    ):
        super().__init__(f"{error}: {error_description}")
        self.error = error
        self.error_description = error_description
        self.status_code = status_code


class FlowCancelled(PoEApiError):
    """Raised when the authorization server is closed while waiting for the redirect."""

    exit_code = EXIT_CANCELLED


class ExchangeFailure(PoEApiError):
    """Raised when the authorization code could not be exchanged for a token.

    Network failures, provider rejections and malformed token responses all
    collapse into this one error.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, message: str = "failed to obtain authorization"):
        super().__init__(message)
