"""Configuration loading from the environment and credential resolution.

* **Environment config** -- :func:`load_config` builds an
  :class:`~poe_api.models.ApiConfig` from ``POE_*`` environment variables,
  the way the command line and small scripts configure the client.
  :func:`load_env_file` fills the environment from a ``.env`` file first.
* **Credential resolution** -- :func:`resolve_credential` reads an access
  token from an env var, a file or an interactive prompt.

Validation itself lives on :class:`~poe_api.models.ApiConfig`; this module
only gathers the raw values.
"""

from __future__ import annotations

import getpass
import logging
import os
import sys
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import find_dotenv, load_dotenv

from poe_api.exceptions import ConfigurationError
from poe_api.models import ApiConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "POE_"

_REQUIRED_VARS = ("CLIENT_ID", "VERSION", "CONTACT_EMAIL")


def load_env_file(path: Optional[Path] = None) -> bool:
    """Load ``KEY=value`` pairs from a ``.env`` file into ``os.environ``.

    Variables that are already set keep their value.

    Args:
        path: File to read. When ``None``, the nearest ``.env`` in the
            working directory or one of its parents is used, if any.

    Returns:
        ``True`` if a file was found and at least one variable was set.

    Raises:
        ConfigurationError: If an explicit *path* does not exist.
    """
    if path is None:
        found = find_dotenv(usecwd=True)
        if not found:
            return False
        path = Path(found)
    elif not path.is_file():
        raise ConfigurationError(f"Env file not found: {path}")
    logger.debug("Loading environment from %s", path)
    return load_dotenv(path, override=False)


def load_config(
    env_prefix: str = ENV_PREFIX,
    environ: Optional[Mapping[str, str]] = None,
) -> ApiConfig:
    """Build an :class:`ApiConfig` from environment variables.

    Reads ``{prefix}CLIENT_ID``, ``{prefix}VERSION`` and
    ``{prefix}CONTACT_EMAIL`` (required), plus the optional
    ``{prefix}REDIRECT_URL``, ``{prefix}REDIRECT_ADDR`` (comma separated
    ``host:port`` list), ``{prefix}USER_AGENT_EXTRA`` and
    ``{prefix}SUCCESS_HTML_FILE``.

    Args:
        env_prefix: Prefix prepended to every variable name.
        environ: Mapping to read from. Defaults to ``os.environ``.

    Returns:
        The validated configuration.

    Raises:
        ConfigurationError: If a required variable is unset, the success
            page file cannot be read, or validation fails.
    """
    env = os.environ if environ is None else environ

    missing = [f"{env_prefix}{name}" for name in _REQUIRED_VARS if not env.get(f"{env_prefix}{name}")]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    fields: dict[str, Any] = {
        "client_id": env[f"{env_prefix}CLIENT_ID"],
        "version": env[f"{env_prefix}VERSION"],
        "contact_email": env[f"{env_prefix}CONTACT_EMAIL"],
    }

    redirect_url = env.get(f"{env_prefix}REDIRECT_URL")
    if redirect_url:
        fields["redirect_url"] = redirect_url

    redirect_addr = env.get(f"{env_prefix}REDIRECT_ADDR")
    if redirect_addr:
        fields["redirect_addr"] = redirect_addr

    user_agent_extra = env.get(f"{env_prefix}USER_AGENT_EXTRA")
    if user_agent_extra:
        fields["user_agent_extra"] = user_agent_extra

    html_file = env.get(f"{env_prefix}SUCCESS_HTML_FILE")
    if html_file:
        path = Path(html_file).expanduser()
        try:
            fields["success_html"] = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Cannot read success page {path}: {exc}") from exc

    return ApiConfig(**fields)


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts the user interactively (requires a TTY)

    Raises:
        ConfigurationError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigurationError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigurationError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigurationError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigurationError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Access token: ")

    raise ConfigurationError(
        f"Unknown credential source '{source}': expected env:VAR, file:/path or prompt"
    )
