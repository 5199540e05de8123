"""HTTP client for the Path of Exile API.

Exports:
    :class:`PoEApi` -- async client for profile retrieval and token
    acquisition.
    :func:`api_url` -- joins the API base URL and an endpoint path.
"""

from poe_api.client.api_client import API_URL, PoEApi, api_url

__all__ = ["API_URL", "PoEApi", "api_url"]
