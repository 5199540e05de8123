"""Tests for PKCE, CSRF token generation and authorization URL building."""

from __future__ import annotations

import base64
import hashlib
import re
from urllib.parse import parse_qs, urlparse

import pytest

from poe_api.auth.pkce import (
    AUTHORIZE_URL,
    build_authorization_url,
    generate_csrf_token,
    generate_pkce_pair,
)
from poe_api.scopes import AccountScope

_UNRESERVED = re.compile(r"^[A-Za-z0-9\-._~]+$")


class TestPkcePair:
    def test_verifier_length_and_charset(self) -> None:
        verifier, _ = generate_pkce_pair()
        assert 43 <= len(verifier) <= 128
        assert _UNRESERVED.match(verifier)

    def test_challenge_is_s256_of_verifier(self) -> None:
        verifier, challenge = generate_pkce_pair()
        digest = hashlib.sha256(verifier.encode("ascii")).digest()
        assert challenge == base64.urlsafe_b64encode(digest).rstrip(b"=").decode()

    def test_challenge_has_no_padding(self) -> None:
        _, challenge = generate_pkce_pair()
        assert "=" not in challenge
        assert len(challenge) == 43

    def test_pairs_are_unique(self) -> None:
        verifiers = {generate_pkce_pair()[0] for _ in range(20)}
        assert len(verifiers) == 20


class TestCsrfToken:
    def test_url_safe(self) -> None:
        assert _UNRESERVED.match(generate_csrf_token())

    def test_unique(self) -> None:
        assert len({generate_csrf_token() for _ in range(20)}) == 20


class TestBuildAuthorizationUrl:
    def _build(self, **kwargs):
        defaults = {
            "client_id": "c1",
            "redirect_uri": "http://127.0.0.1:8099/callback",
            "csrf_token": "S",
            "code_challenge": "CHALLENGE",
            "scopes": [AccountScope.PROFILE],
        }
        defaults.update(kwargs)
        return build_authorization_url(**defaults)

    def test_endpoint(self) -> None:
        url = urlparse(self._build())
        assert f"{url.scheme}://{url.netloc}{url.path}" == AUTHORIZE_URL

    def test_parameters_round_trip(self) -> None:
        params = parse_qs(urlparse(self._build()).query)
        assert params == {
            "client_id": ["c1"],
            "response_type": ["code"],
            "scope": ["account:profile"],
            "state": ["S"],
            "redirect_uri": ["http://127.0.0.1:8099/callback"],
            "code_challenge": ["CHALLENGE"],
            "code_challenge_method": ["S256"],
        }

    def test_multiple_scopes_are_space_joined(self) -> None:
        url = self._build(scopes=[AccountScope.PROFILE, AccountScope.CHARACTERS])
        assert parse_qs(urlparse(url).query)["scope"] == ["account:profile account:characters"]

    def test_special_characters_are_encoded(self) -> None:
        url = self._build(csrf_token="a b&c=d")
        assert "a b&c=d" not in url
        assert parse_qs(urlparse(url).query)["state"] == ["a b&c=d"]

    def test_custom_endpoint(self) -> None:
        url = self._build(authorize_url="https://auth.test/authorize")
        assert url.startswith("https://auth.test/authorize?")

    def test_unknown_scope_string(self) -> None:
        with pytest.raises(ValueError, match="Unknown scope"):
            self._build(scopes=["account:nothing"])
