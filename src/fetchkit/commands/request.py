"""Request command -- run one API call through the orchestrator.

``fetchkit request METHOD PATH`` builds a :class:`~fetchkit.models.Request`
from its options, submits it to an :class:`~fetchkit.client.ApiClient` wired
with the configured transport, response cache and stored access token, and
prints every delivered result: an intermediate cache hit first when the
``cache-then-network`` policy produces one, then the final result.

Typical usage::

    fetchkit request GET /me --key-path data --cache
    fetchkit request GET /videos -p page=2 --many --key-path data \\
        --policy cache-then-network
    fetchkit request DELETE /videos/42 --empty --attempts 3 --delay 0.5
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import typer
from pydantic import BaseModel, ConfigDict

from fetchkit.commands import load_config
from fetchkit.events import EventKind, get_bus
from fetchkit.exit_codes import EXIT_INVALID_USAGE
from fetchkit.models import CacheFetchPolicy, ClientConfig, Request, RetryPolicy
from fetchkit.output import debug, error, get_output, warning

if TYPE_CHECKING:
    from fetchkit.client import ApiClient


class RawPayload(BaseModel):
    """Accepts any JSON object; used when the CLI has no model to map onto."""

    model_config = ConfigDict(extra="allow")


def parse_parameters(params: Optional[list[str]], query: Optional[str]) -> dict[str, str]:
    """Merge ``--query`` and repeated ``-p key=value`` options; ``-p`` wins.

    Raises:
        typer.BadParameter: If a ``-p`` value has no ``=``.
    """
    from fetchkit.client.params import parameters_from_query_string

    parameters: dict[str, str] = {}
    if query:
        parameters.update(parameters_from_query_string(query) or {})
    for item in params or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got: {item}", param_hint="--param")
        parameters[key] = value
    return parameters


def build_request(
    method: str,
    path: str,
    parameters: dict[str, str],
    config: ClientConfig,
    policy: Optional[CacheFetchPolicy] = None,
    attempts: Optional[int] = None,
    delay: Optional[float] = None,
    key_path: Optional[str] = None,
    cache_response: bool = False,
    empty: bool = False,
    many: bool = False,
) -> Request:
    """Build the request descriptor for CLI options, filling gaps from *config*."""
    try:
        return Request.build(
            method,
            path,
            model=None if empty else RawPayload,
            many=many,
            parameters=parameters,
            cache_fetch_policy=policy or config.default_fetch_policy,
            retry_policy=RetryPolicy.multiple_attempts(
                attempts if attempts is not None else config.retry.attempt_count,
                delay if delay is not None else config.retry.initial_delay,
            ),
            should_cache_response=cache_response,
            model_key_path=key_path,
        )
    except ValueError as exc:
        error(f"Invalid request: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None


def build_client(config: ClientConfig) -> ApiClient:
    """Wire an :class:`~fetchkit.client.ApiClient` for *config*."""
    from fetchkit.auth import SecretStore, service_for_base_url, token_provider
    from fetchkit.cache import ResponseCache
    from fetchkit.client import ApiClient, HttpxTransport
    from fetchkit.config import get_cache_dir

    store = SecretStore(service_for_base_url(config.base_url))
    transport = HttpxTransport(config, token_provider=token_provider(store))
    cache = ResponseCache(get_cache_dir(), config.cache)
    return ApiClient(transport, cache=cache)


def _report_event(kind: EventKind, payload: object) -> None:
    if kind is EventKind.INVALID_CREDENTIAL:
        warning("Access token was rejected. Run 'fetchkit auth set-token' to replace it.")
    elif kind is EventKind.SERVICE_UNAVAILABLE:
        warning("The service reported itself unavailable.")


def request_command(
    ctx: typer.Context,
    method: str = typer.Argument(help="HTTP method: GET, POST, PUT, PATCH or DELETE."),
    path: str = typer.Argument(help="Request path relative to the base URL."),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-p", help="Parameter as key=value (repeatable)."
    ),
    query: Optional[str] = typer.Option(
        None, "--query", help="Parameters as a query string, e.g. 'a=1&b=2'."
    ),
    policy: Optional[CacheFetchPolicy] = typer.Option(
        None, "--policy", help="Cache fetch policy (default from config)."
    ),
    attempts: Optional[int] = typer.Option(
        None, "--attempts", min=1, help="Total attempts including the first."
    ),
    delay: Optional[float] = typer.Option(
        None, "--delay", min=0, help="Seconds before the first retry; doubles each retry."
    ),
    key_path: Optional[str] = typer.Option(
        None, "--key-path", help="Dotted path to the object inside the response."
    ),
    cache_response: bool = typer.Option(
        False, "--cache/--no-cache", help="Store the response in the cache once it maps."
    ),
    empty: bool = typer.Option(
        False, "--empty", help="Expect no response body."
    ),
    many: bool = typer.Option(
        False, "--many", help="Expect a list of objects at the key path."
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="Override the configured base URL."
    ),
) -> None:
    """Send a request and print each delivered result.

    Exits with the final error's exit code when the request fails.

    Example::

        fetchkit request GET /me --key-path data
        fetchkit --json request GET /videos --many --key-path data --cache
    """
    from fetchkit.client import format_result

    fmt = ctx.obj.get("format") if ctx.obj else None
    config = load_config(base_url, fmt)
    if not config.base_url:
        error(
            "No base URL configured. Pass --base-url, set FETCHKIT_BASE_URL, "
            "or run 'fetchkit config set base_url URL'."
        )
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    request = build_request(
        method, path, parse_parameters(param, query), config,
        policy=policy, attempts=attempts, delay=delay, key_path=key_path,
        cache_response=cache_response, empty=empty, many=many,
    )
    debug(
        f"{request.method.value} {config.base_url}{request.path} "
        f"policy={request.cache_fetch_policy.value} fingerprint={request.fingerprint[:12]}"
    )

    bus = get_bus()
    bus.subscribe(EventKind.INVALID_CREDENTIAL, _report_event)
    bus.subscribe(EventKind.SERVICE_UNAVAILABLE, _report_event)
    try:
        with build_client(config) as client:
            result = client.fetch_sync(request, on_result=format_result)
    finally:
        bus.unsubscribe(EventKind.INVALID_CREDENTIAL, _report_event)
        bus.unsubscribe(EventKind.SERVICE_UNAVAILABLE, _report_event)

    if result.error is not None:
        get_output().debug(f"Request failed with code {result.error.code}")
        raise typer.Exit(code=result.error.exit_code)
