"""PKCE pair and CSRF token generation plus authorization URL construction.

Every authorization attempt gets a fresh :func:`generate_pkce_pair` and a
fresh :func:`generate_csrf_token`; neither is ever persisted.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from typing import Iterable
from urllib.parse import urlencode

from poe_api.scopes import AccountScope, render_scopes

AUTHORIZE_URL = "https://www.pathofexile.com/oauth/authorize"
TOKEN_URL = "https://www.pathofexile.com/oauth/token"


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    # RFC 7636: 43-128 characters from unreserved character set
    code_verifier = secrets.token_urlsafe(64)[:128]
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    code_challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return code_verifier, code_challenge


def generate_csrf_token() -> str:
    """Return an unguessable value for the ``state`` parameter."""
    return secrets.token_urlsafe(16)


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    csrf_token: str,
    code_challenge: str,
    scopes: Iterable[AccountScope | str],
    authorize_url: str = AUTHORIZE_URL,
) -> str:
    """Build the URL the user opens to grant access.

    Args:
        client_id: The registered OAuth client identifier.
        redirect_uri: Where the provider redirects after consent.
        csrf_token: Value echoed back as ``state`` on the redirect.
        code_challenge: S256 challenge derived from the PKCE verifier.
        scopes: Scopes to request; rendered with
            :func:`~poe_api.scopes.render_scopes`.
        authorize_url: Authorization endpoint.

    Returns:
        The full authorization URL.
    """
    params: dict[str, str] = {
        "client_id": client_id,
        "response_type": "code",
        "scope": render_scopes(scopes),
        "state": csrf_token,
        "redirect_uri": redirect_uri,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    return f"{authorize_url}?{urlencode(params)}"
