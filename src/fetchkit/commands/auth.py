"""Auth commands -- manage the stored access token.

Provides the ``fetchkit auth`` sub-command group. Tokens are kept in a
:class:`~fetchkit.auth.SecretStore` scoped to the API host, and sent as
``Authorization: Bearer`` by ``fetchkit request``. Storing or clearing a
token publishes :attr:`~fetchkit.events.EventKind.CREDENTIAL_CHANGED`.

Typical workflow::

    fetchkit auth set-token                 # prompts for the token
    fetchkit auth show
    fetchkit auth clear-token
"""

from __future__ import annotations

from typing import Optional

import typer

from fetchkit.auth import ACCESS_TOKEN_KEY, SecretStore, service_for_base_url
from fetchkit.commands import load_config
from fetchkit.events import EventKind, get_bus
from fetchkit.exit_codes import EXIT_INVALID_USAGE
from fetchkit.output import error, format_response, info, success


auth_app = typer.Typer(no_args_is_help=True)


def _store(base_url: Optional[str]) -> SecretStore:
    config = load_config(base_url)
    return SecretStore(service_for_base_url(config.base_url))


def _mask(token: str) -> str:
    return token[:8] + "..." if len(token) > 8 else token


@auth_app.command("set-token")
def auth_set_token(
    token: Optional[str] = typer.Argument(
        None, help="Access token. Prompted for (hidden) when omitted."
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="API the token belongs to (default from config)."
    ),
) -> None:
    """Store the access token for an API.

    Example::

        fetchkit auth set-token
        fetchkit auth set-token "$API_TOKEN" --base-url https://api.example.com
    """
    if token is None:
        token = typer.prompt("Access token", hide_input=True)
    token = token.strip()
    if not token:
        error("Token must not be empty.")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    store = _store(base_url)
    store.set(ACCESS_TOKEN_KEY, token.encode("utf-8"))
    get_bus().publish(EventKind.CREDENTIAL_CHANGED, store.service)
    success(f"Token stored for {store.service}.")


@auth_app.command("show")
def auth_show(
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="API to show the token for (default from config)."
    ),
) -> None:
    """Show whether a token is stored, with the secret masked."""
    store = _store(base_url)
    data = store.get(ACCESS_TOKEN_KEY)
    if data is None:
        info(f"No token stored for {store.service}.")
        return
    format_response({
        "service": store.service,
        "token": _mask(data.decode("utf-8")),
        "path": str(store.path_for(ACCESS_TOKEN_KEY)),
    })


@auth_app.command("clear-token")
def auth_clear_token(
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="API to clear the token for (default from config)."
    ),
) -> None:
    """Delete the stored token. Clearing a missing token is not an error."""
    store = _store(base_url)
    store.delete(ACCESS_TOKEN_KEY)
    get_bus().publish(EventKind.CREDENTIAL_CHANGED, store.service)
    success(f"Token cleared for {store.service}.")
