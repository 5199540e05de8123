"""Account permission scopes requested during authorization.

The Path of Exile OAuth provider grants access per scope. Each
:class:`AccountScope` member's value is its canonical wire string, and
:func:`render_scopes` joins a collection of them into the ``scope`` query
parameter of the authorization URL.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class AccountScope(str, Enum):
    """Account scopes understood by the provider."""

    PROFILE = "account:profile"
    LEAGUES = "account:leagues"
    STASHES = "account:stashes"
    CHARACTERS = "account:characters"
    LEAGUE_ACCOUNTS = "account:league_accounts"
    ITEM_FILTER = "account:item_filter"

    def __str__(self) -> str:
        return self.value


def render_scopes(scopes: Iterable[AccountScope | str]) -> str:
    """Render scopes to the space-joined form sent on the wire.

    Order is preserved and duplicates are passed through untouched.
    Plain strings are accepted when they name a known scope, either by
    wire value (``"account:profile"``) or member name (``"profile"``).

    Raises:
        ValueError: If a string does not name a known scope.
    """
    return " ".join(parse_scope(scope).value for scope in scopes)


def parse_scope(value: AccountScope | str) -> AccountScope:
    """Coerce *value* to an :class:`AccountScope`."""
    if isinstance(value, AccountScope):
        return value
    try:
        return AccountScope(value)
    except ValueError:
        pass
    try:
        return AccountScope[value.upper().replace("-", "_")]
    except KeyError:
        valid = ", ".join(s.value for s in AccountScope)
        raise ValueError(f"Unknown scope '{value}': must be one of {valid}") from None
