"""Typer application and console entry point for ``poe-api``.

Two commands cover the library's two capabilities:

* ``poe-api login`` -- runs the Authorization Code + PKCE flow and prints
  the token response as JSON.
* ``poe-api profile`` -- fetches the profile behind an access token.

Client identity is read from ``POE_*`` environment variables (see
:func:`poe_api.config.load_config`), which may also come from a ``.env``
file in the working directory or one of its parents. Library errors end
the process with the exit code carried by the
:class:`~poe_api.exceptions.PoEApiError` subclass.
"""

from __future__ import annotations

import asyncio
import sys
import threading
import webbrowser
from pathlib import Path
from typing import Optional

import typer

from poe_api import __version__
from poe_api.client import PoEApi
from poe_api.config import load_config, load_env_file, resolve_credential
from poe_api.exceptions import PoEApiError
from poe_api.exit_codes import EXIT_CANCELLED
from poe_api.models import ApiConfig, Profile, TokenResponse
from poe_api.output import error, info, notice, print_json, success
from poe_api.scopes import AccountScope, parse_scope


app = typer.Typer(
    name="poe-api",
    help="Authorize against and query the Path of Exile API.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"poe-api {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Plain JSON output, even on a terminal."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
    env_file: Optional[Path] = typer.Option(
        None,
        "--env-file",
        help="Read POE_* variables from this file instead of a discovered .env.",
    ),
) -> None:
    """Initialise output and logging from the global flags, then load ``.env``."""
    from poe_api.output import OutputFormat, OutputManager, set_output

    output = OutputManager(
        format=OutputFormat.JSON if json_output else OutputFormat.AUTO,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    output.configure_logging()
    set_output(output)

    try:
        load_env_file(env_file)
    except PoEApiError as exc:
        error(str(exc))
        raise typer.Exit(exc.exit_code) from exc


@app.command("login")
def login_command(
    scope: list[str] = typer.Option(
        [AccountScope.PROFILE.value],
        "--scope",
        "-s",
        help="Scope to request (repeatable), e.g. account:profile or stashes.",
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Only print the authorization URL."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", min=0.1, help="Give up after this many seconds."
    ),
) -> None:
    """Authorize in the browser and print the resulting token as JSON."""
    try:
        scopes = [parse_scope(s) for s in scope]
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--scope") from exc

    try:
        config = load_config()
        token = asyncio.run(_login(config, scopes, open_browser=not no_browser, timeout=timeout))
    except PoEApiError as exc:
        error(str(exc))
        raise typer.Exit(exc.exit_code) from exc

    success("Authorization complete.")
    print_json(token.model_dump(exclude_none=True))


@app.command("profile")
def profile_command(
    token_source: str = typer.Option(
        "env:POE_ACCESS_TOKEN",
        "--token-source",
        "-t",
        help="Where to read the access token: env:VAR, file:/path or prompt.",
    ),
) -> None:
    """Fetch the profile of the account behind an access token."""
    try:
        config = load_config()
        access_token = resolve_credential(token_source)
        profile = asyncio.run(_fetch_profile(config, access_token))
    except PoEApiError as exc:
        error(str(exc))
        raise typer.Exit(exc.exit_code) from exc

    print_json(profile.model_dump(exclude_none=True))


async def _login(
    config: ApiConfig,
    scopes: list[AccountScope],
    open_browser: bool,
    timeout: Optional[float],
) -> TokenResponse:
    async with PoEApi(config) as api:

        def present_url(url: str) -> None:
            notice("Open the following URL to authorize:")
            notice(url)
            if open_browser:
                # webbrowser.open can block on some platforms
                threading.Thread(target=webbrowser.open, args=(url,), daemon=True).start()
            info("Waiting for the authorization redirect...")

        handle = None
        if timeout is not None:
            handle = asyncio.get_running_loop().call_later(
                timeout, api.close_authorization_server
            )
        try:
            return await api.get_token(scopes, present_url)
        finally:
            if handle is not None:
                handle.cancel()


async def _fetch_profile(config: ApiConfig, access_token: str) -> Profile:
    async with PoEApi(config) as api:
        return await api.get_profile(access_token)


def main() -> None:
    """Console-script entry point."""
    try:
        app()
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
