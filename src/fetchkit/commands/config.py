"""Config commands -- view and modify global configuration.

Provides the ``fetchkit config`` sub-command group for reading, updating,
and resetting the user's global configuration file
(:class:`~fetchkit.models.ClientConfig`). Settings are persisted in the
fetchkit config directory and control defaults such as the base URL, the
default fetch policy, retry budget and cache capacity.
"""

from __future__ import annotations

from typing import Any

import typer
from pydantic import ValidationError

from fetchkit.exit_codes import EXIT_INVALID_USAGE
from fetchkit.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show current configuration.

    Loads the global config from disk and prints the config directory
    path followed by the full configuration.

    Example::

        fetchkit config show
        fetchkit --json config show
    """
    from fetchkit.config import get_config_dir, load_global_config

    config = load_global_config()
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


def _coerce(key: str, current: Any, value: str) -> Any:
    """Coerce *value* to the type of the field's *current* value."""
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    if isinstance(current, float):
        try:
            return float(value)
        except ValueError:
            error(f"Expected number for {key}, got: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    if current is None and value.lower() in ("none", "null", ""):
        return None
    return value


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'cache.memory_capacity')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    Uses dot notation for nested keys. The value is coerced to match the
    existing field's type (bool, int, float or str) and the updated config
    is validated against :class:`~fetchkit.models.ClientConfig` before
    saving.

    Raises:
        typer.Exit: With code 2 if the key path is invalid, the value
            cannot be coerced, or validation fails.

    Example::

        fetchkit config set base_url https://api.example.com
        fetchkit config set default_fetch_policy cache-then-network
        fetchkit config set retry.attempt_count 3
    """
    from fetchkit.config import load_global_config, save_global_config
    from fetchkit.models import ClientConfig

    config = load_global_config()
    data = config.model_dump(mode="json")

    # Navigate the dot-separated key path.
    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target or isinstance(target[final_key], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    coerced = _coerce(key, target[final_key], value)
    target[final_key] = coerced

    try:
        new_config = ClientConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    ctx: typer.Context,
) -> None:
    """Reset configuration to defaults.

    Asks for confirmation unless ``--force`` is active.

    Example::

        fetchkit config reset
        fetchkit --force config reset
    """
    from fetchkit.config import save_global_config
    from fetchkit.models import ClientConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(ClientConfig())
    success("Configuration reset to defaults.")
