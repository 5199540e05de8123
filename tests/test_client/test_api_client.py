"""Tests for poe_api.client.PoEApi -- the async API client.

Uses ``httpx.MockTransport`` to exercise request construction and error
mapping without a live server. The authorization tests bind real loopback
listeners.
"""

from __future__ import annotations

import asyncio
import threading
from http.client import HTTPConnection
from typing import Callable
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from poe_api.client import API_URL, PoEApi, api_url
from poe_api.exceptions import FlowCancelled, ProviderError, TransportError
from poe_api.models import ApiConfig
from poe_api.scopes import AccountScope

PROFILE_BODY = {
    "uuid": "5f1c0d3e-0000-4000-8000-000000000001",
    "name": "exile#1234",
    "realm": "pc",
    "locale": "en_US",
    "twitch": {"name": "streamer"},
}


def _run(config: ApiConfig, handler: Callable[[httpx.Request], httpx.Response], coro_fn):
    async def go():
        async with PoEApi(config, transport=httpx.MockTransport(handler), poll_interval=0.05) as api:
            return await coro_fn(api)

    return asyncio.run(go())


class TestApiUrl:
    def test_join(self) -> None:
        assert api_url("/profile") == "https://api.pathofexile.com/profile"

    def test_missing_slash(self) -> None:
        assert api_url("league") == f"{API_URL}/league"


class TestGetProfile:
    def test_success(self, api_config: ApiConfig) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=PROFILE_BODY)

        profile = _run(api_config, handler, lambda api: api.get_profile("tok"))

        assert profile.name == "exile#1234"
        assert profile.twitch is not None and profile.twitch.name == "streamer"
        req = seen[0]
        assert req.method == "GET"
        assert str(req.url) == "https://api.pathofexile.com/profile"
        assert req.headers["Authorization"] == "Bearer tok"
        assert req.headers["User-Agent"] == "OAuth c1/0.0.0 (contact: email@email.com)"

    def test_user_agent_extra_and_custom_headers(self, make_config) -> None:
        config = make_config(user_agent_extra=" StrictMode", custom_headers={"X-Trace": "1"})
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=PROFILE_BODY)

        _run(config, handler, lambda api: api.get_profile("tok"))

        assert seen[0].headers["User-Agent"].endswith(") StrictMode")
        assert seen[0].headers["X-Trace"] == "1"

    def test_provider_error(self, api_config: ApiConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                401, json={"error": "invalid_token", "error_description": "expired"}
            )

        with pytest.raises(ProviderError) as exc_info:
            _run(api_config, handler, lambda api: api.get_profile("tok"))

        exc = exc_info.value
        assert exc.error == "invalid_token"
        assert exc.error_description == "expired"
        assert exc.status_code == 401
        assert str(exc) == "invalid_token: expired"
        assert exc.exit_code == 3

    def test_provider_error_on_success_status_is_not_raised(self, api_config: ApiConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=PROFILE_BODY)

        profile = _run(api_config, handler, lambda api: api.get_profile("tok"))
        assert profile.uuid == PROFILE_BODY["uuid"]

    def test_unstructured_error(self, api_config: ApiConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="Internal Server Error")

        with pytest.raises(TransportError) as exc_info:
            _run(api_config, handler, lambda api: api.get_profile("tok"))

        assert exc_info.value.status_code == 500
        assert "HTTP 500" in str(exc_info.value)
        assert exc_info.value.exit_code == 6

    def test_json_error_without_error_field(self, api_config: ApiConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"message": "nope"})

        with pytest.raises(TransportError) as exc_info:
            _run(api_config, handler, lambda api: api.get_profile("tok"))
        assert not isinstance(exc_info.value, ProviderError)
        assert exc_info.value.status_code == 403

    def test_redirect_is_not_followed(self, api_config: ApiConfig) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            return httpx.Response(302, headers={"Location": "https://elsewhere.test/"})

        with pytest.raises(TransportError):
            _run(api_config, handler, lambda api: api.get_profile("tok"))
        assert calls == ["https://api.pathofexile.com/profile"]

    def test_network_error(self, api_config: ApiConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError, match="GET /profile failed"):
            _run(api_config, handler, lambda api: api.get_profile("tok"))

    def test_malformed_profile(self, api_config: ApiConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        with pytest.raises(TransportError, match="Unexpected profile response"):
            _run(api_config, handler, lambda api: api.get_profile("tok"))

    def test_profile_without_redirect_config(self) -> None:
        config = ApiConfig(client_id="c1", version="0.0.0", contact_email="email@email.com")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=PROFILE_BODY)

        assert _run(config, handler, lambda api: api.get_profile("tok")).name == "exile#1234"


class TestRequest:
    def test_extra_headers_and_params(self, api_config: ApiConfig) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"leagues": []})

        response = _run(
            api_config,
            handler,
            lambda api: api.get("/account/leagues", "tok", params={"realm": "pc"}, headers={"X-A": "b"}),
        )

        assert response.json() == {"leagues": []}
        assert seen[0].url.params["realm"] == "pc"
        assert seen[0].headers["X-A"] == "b"
        assert seen[0].headers["Authorization"] == "Bearer tok"


class TestGetToken:
    def test_full_flow(self, api_config: ApiConfig, free_port: int) -> None:
        token_requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            token_requests.append(request)
            return httpx.Response(200, json={"access_token": "tok", "token_type": "bearer"})

        def present(url: str) -> None:
            state = parse_qs(urlparse(url).query)["state"][0]

            def browse() -> None:
                conn = HTTPConnection("127.0.0.1", free_port, timeout=5)
                conn.request("GET", f"/?state={state}&code=ABC")
                conn.getresponse().read()
                conn.close()

            threading.Thread(target=browse, daemon=True).start()

        token = _run(api_config, handler, lambda api: api.get_token([AccountScope.PROFILE], present))

        assert token.access_token == "tok"
        # Token exchange shares the client's identification headers.
        assert token_requests[0].headers["User-Agent"] == api_config.user_agent

    def test_close_authorization_server(self, api_config: ApiConfig) -> None:
        async def scenario(api: PoEApi):
            asyncio.get_running_loop().call_later(0.2, api.close_authorization_server)
            return await api.get_token([AccountScope.PROFILE], lambda url: None)

        with pytest.raises(FlowCancelled):
            _run(api_config, lambda request: httpx.Response(500), scenario)

    def test_close_cancels_concurrent_flows(self, make_config) -> None:
        config = make_config(redirect_addr="127.0.0.1:0")

        async def scenario(api: PoEApi):
            asyncio.get_running_loop().call_later(0.2, api.close_authorization_server)
            return await asyncio.gather(
                api.get_token([AccountScope.PROFILE], lambda url: None),
                api.get_token([AccountScope.PROFILE], lambda url: None),
                return_exceptions=True,
            )

        results = _run(config, lambda request: httpx.Response(500), scenario)

        assert len(results) == 2
        assert all(isinstance(r, FlowCancelled) for r in results)

    def test_close_without_flow_is_noop(self, api_config: ApiConfig) -> None:
        api = PoEApi(api_config)
        api.close_authorization_server()
        asyncio.run(api.aclose())

    def test_each_call_gets_a_new_flow(self, api_config: ApiConfig) -> None:
        async def scenario(api: PoEApi):
            api.close_authorization_server()
            loop = asyncio.get_running_loop()
            loop.call_later(0.1, api.close_authorization_server)
            with pytest.raises(FlowCancelled):
                await api.get_token([AccountScope.PROFILE], lambda url: None)
            # A close issued between calls does not leak into the next flow.
            api.close_authorization_server()
            loop.call_later(0.1, api.close_authorization_server)
            with pytest.raises(FlowCancelled):
                await api.get_token([AccountScope.PROFILE], lambda url: None)
            return "done"

        assert _run(api_config, lambda request: httpx.Response(500), scenario) == "done"


def test_config_property(api_config: ApiConfig) -> None:
    api = PoEApi(api_config)
    assert api.config is api_config
    asyncio.run(api.aclose())
