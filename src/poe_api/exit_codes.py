"""Numeric process exit codes used by the ``poe-api`` command line.

Each constant maps to an error category and is referenced by the
corresponding :class:`~poe_api.exceptions.PoEApiError` subclass, so shell
scripts can tell a cancelled login from a rejected token without parsing
stderr.

Example::

    $ poe-api profile --token-source env:POE_ACCESS_TOKEN
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the provider rejected the token
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_CONFIG_ERROR = 2
"""The configuration was missing a field or contained an invalid value."""

EXIT_AUTH_FAILURE = 3
"""The provider rejected the request or the token exchange failed."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, bind failure)."""

EXIT_CANCELLED = 130
"""The authorization flow was cancelled before a redirect arrived."""
