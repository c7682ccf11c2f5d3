"""Cache commands -- inspect and prune the response cache.

Provides the ``fetchkit cache`` sub-command group. Records live under
``<cache dir>/<cache.directory_name>`` as one JSON file per request
fingerprint; these commands operate on that directory through
:class:`~fetchkit.cache.ResponseCache` so they respect the same layout and
work queue as the orchestrator.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import typer

from fetchkit.commands import load_config
from fetchkit.commands.request import build_request, parse_parameters
from fetchkit.output import format_response, info, success

if TYPE_CHECKING:
    from fetchkit.cache import ResponseCache
    from fetchkit.models import ClientConfig


cache_app = typer.Typer(no_args_is_help=True)


def _open_cache() -> tuple[ClientConfig, ResponseCache]:
    from fetchkit.cache import ResponseCache
    from fetchkit.config import get_cache_dir

    config = load_config()
    return config, ResponseCache(get_cache_dir(), config.cache)


@cache_app.command("stats")
def cache_stats() -> None:
    """Show record counts and the cache directory.

    Example::

        fetchkit cache stats
        fetchkit --json cache stats
    """
    _, cache = _open_cache()
    with cache:
        format_response(cache.stats())


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Delete every cached response.

    Asks for confirmation unless ``--force`` is active.

    Example::

        fetchkit --force cache clear
    """
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Delete all cached responses?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    _, cache = _open_cache()
    with cache:
        cache.clear()
    success("Response cache cleared.")


@cache_app.command("evict")
def cache_evict(
    method: str = typer.Argument(help="HTTP method of the cached request."),
    path: str = typer.Argument(help="Request path of the cached request."),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-p", help="Parameter as key=value (repeatable)."
    ),
    query: Optional[str] = typer.Option(
        None, "--query", help="Parameters as a query string."
    ),
    empty: bool = typer.Option(
        False, "--empty", help="The request expected no response body."
    ),
    many: bool = typer.Option(
        False, "--many", help="The request expected a list of objects."
    ),
) -> None:
    """Evict the record stored for one request.

    The record is located by the same fingerprint ``fetchkit request``
    uses, so pass the same method, path, parameters and ``--empty`` /
    ``--many`` flags. Evicting a missing record is not an error.

    Example::

        fetchkit cache evict GET /videos -p page=2 --many
    """
    config, cache = _open_cache()
    request = build_request(
        method, path, parse_parameters(param, query), config, empty=empty, many=many,
    )
    with cache:
        cache.evict(request.fingerprint)
    success(f"Evicted {request.method.value} {request.path} ({request.fingerprint[:12]})")
