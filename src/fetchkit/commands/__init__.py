"""Built-in CLI sub-commands for fetchkit.

* :mod:`~fetchkit.commands.request` -- run one request through the orchestrator.
* :mod:`~fetchkit.commands.cache` -- inspect, evict from and clear the response cache.
* :mod:`~fetchkit.commands.config` -- view and modify global settings.
* :mod:`~fetchkit.commands.auth` -- store and clear the access token.

Each module either exports a :class:`typer.Typer` sub-application (for
multi-command groups like ``cache`` and ``config``) or a plain callback
function registered directly on the root app (for single commands like
``request``).
"""

from __future__ import annotations

from typing import Optional

import typer

from fetchkit.exceptions import ConfigError
from fetchkit.models import ClientConfig
from fetchkit.output import error


def load_config(base_url: Optional[str] = None, fmt: Optional[str] = None) -> ClientConfig:
    """Resolve the effective config, exiting cleanly when it is invalid."""
    from fetchkit.config import resolve_config

    try:
        return resolve_config(cli_base_url=base_url, cli_format=fmt)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
