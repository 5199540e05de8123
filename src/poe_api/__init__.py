"""poe_api -- client for the Path of Exile web API.

Fetches the authenticated account profile and obtains access tokens
through the OAuth2 Authorization Code flow with PKCE, including the short
lived local listener that captures the provider's redirect.

Typical use::

    config = ApiConfig(
        client_id="my-tool",
        version="1.0.0",
        contact_email="me@example.com",
        redirect_url="http://localhost:8088",
        redirect_addr="127.0.0.1:8088",
    )
    async with PoEApi(config) as api:
        token = await api.get_token([AccountScope.PROFILE], print)
        profile = await api.get_profile(token.access_token)

Modules:
    client: :class:`PoEApi`, the async API client.
    auth: The authorization flow and its callback listener.
    models: Pydantic configuration and payload models.
    scopes: Account scopes and their wire strings.
    config: Environment-based configuration loading.
    exceptions: Exception hierarchy with exit-code mapping.
    app: The ``poe-api`` command line.
"""

__version__ = "0.3.0"

from poe_api.client import API_URL, PoEApi, api_url  # noqa: E402
from poe_api.exceptions import (  # noqa: E402
    ConfigurationError,
    ExchangeFailure,
    FlowCancelled,
    ListenerBindError,
    PoEApiError,
    ProviderError,
    TransportError,
)
from poe_api.models import (  # noqa: E402
    ApiConfig,
    Profile,
    ProfileAffiliation,
    TokenResponse,
)
from poe_api.scopes import AccountScope, render_scopes  # noqa: E402

__all__ = [
    "API_URL",
    "AccountScope",
    "ApiConfig",
    "ConfigurationError",
    "ExchangeFailure",
    "FlowCancelled",
    "ListenerBindError",
    "PoEApi",
    "PoEApiError",
    "Profile",
    "ProfileAffiliation",
    "ProviderError",
    "TokenResponse",
    "TransportError",
    "__version__",
    "api_url",
    "render_scopes",
]
