"""Config commands -- view and modify the user settings file.

Settings live in ``config.json`` under the querykit config directory and
hold the backend URL plus request, cache, session and output defaults. See
:func:`~querykit.config.resolve_settings` for how they combine with
``./querykit.json``, ``QUERYKIT_BASE_URL`` and ``--base-url``.
"""

from __future__ import annotations

from typing import Any

import typer

from querykit.config import get_config_dir, load_settings, resolve_settings, save_settings
from querykit.exceptions import QuerykitError
from querykit.exit_codes import EXIT_INVALID_USAGE
from querykit.models import Settings
from querykit.output import error, format_response, info, success

config_app = typer.Typer(no_args_is_help=True)


def _coerce(current: Any, value: str, key: str) -> Any:
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    try:
        if isinstance(current, int):
            return int(value)
        if isinstance(current, float):
            return float(value)
    except ValueError:
        error(f"Expected a number for {key}, got: {value}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    return value


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration.

    Example::

        querykit config show --json
    """
    obj = ctx.obj or {}
    try:
        settings = resolve_settings(obj.get("base_url"))
    except QuerykitError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    info(f"Config directory: {get_config_dir()}")
    format_response(settings.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key (dot notation, e.g. 'cache.keep_unused_for')."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a value in the user settings file.

    The value is coerced to the type of the existing field and the result
    is validated before it is saved.

    Example::

        querykit config set base_url https://shop.example.com/api/
        querykit config set request.max_retries 2
    """
    try:
        data = load_settings().model_dump(mode="json")
    except QuerykitError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    *parents, final_key = key.split(".")
    target = data
    for part in parents:
        if not isinstance(target.get(part), dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        target = target[part]
    if final_key not in target or isinstance(target[final_key], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    target[final_key] = _coerce(target[final_key], value, key)

    try:
        settings = Settings.model_validate(data)
    except ValueError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    save_settings(settings)
    success(f"Set {key} = {target[final_key]}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset the user settings to defaults. Asks first unless ``--force``."""
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    save_settings(Settings())
    success("Configuration reset to defaults.")
