"""OAuth2 Authorization Code + PKCE support.

Exports:
    :class:`AuthorizationFlow` -- drives one complete authorization.
    :class:`CallbackListener` -- local listener capturing the redirect.
    :func:`generate_pkce_pair`, :func:`generate_csrf_token`,
    :func:`build_authorization_url` -- the per-flow secrets and the URL
    the user opens.

See Also:
    :meth:`poe_api.client.PoEApi.get_token` for the usual entry point.
"""

from poe_api.auth.flow import AuthorizationFlow, PresentUrl
from poe_api.auth.listener import DEFAULT_POLL_INTERVAL, CallbackListener
from poe_api.auth.pkce import (
    AUTHORIZE_URL,
    TOKEN_URL,
    build_authorization_url,
    generate_csrf_token,
    generate_pkce_pair,
)

__all__ = [
    "AUTHORIZE_URL",
    "AuthorizationFlow",
    "CallbackListener",
    "DEFAULT_POLL_INTERVAL",
    "PresentUrl",
    "TOKEN_URL",
    "build_authorization_url",
    "generate_csrf_token",
    "generate_pkce_pair",
]
