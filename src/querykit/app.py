"""The ``querykit`` developer CLI.

A thin typer surface over :class:`~querykit.api.Api`: log in against a
backend, list the declared endpoints, and run queries and mutations through
the same cache, interceptor and session the UI uses.

:func:`main` is the console-script entry point declared in
``pyproject.toml``.
"""

from __future__ import annotations

import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from querykit import __version__
from querykit.commands.api import endpoints_command, mutate_command, query_command
from querykit.commands.auth import login_command, logout_command, whoami_command
from querykit.commands.config import config_app
from querykit.config import get_data_dir, resolve_settings
from querykit.exceptions import ConfigError, QuerykitError
from querykit.exit_codes import EXIT_GENERIC_FAILURE
from querykit.output import OutputFormat, OutputManager, configure_logging, error, set_output

app = typer.Typer(
    name="querykit",
    help="Query and mutate the shop backend through the querykit cache.",
    no_args_is_help=True,
    add_completion=False,
)

app.command("login")(login_command)
app.command("logout")(logout_command)
app.command("whoami")(whoami_command)
app.command("endpoints")(endpoints_command)
app.command("query")(query_command)
app.command("mutate")(mutate_command)
app.add_typer(config_app, name="config", help="Show or change the user settings.")


def _print_version(value: bool) -> None:
    if not value:
        return
    typer.echo(f"querykit {__version__}")
    raise typer.Exit()


def _configured_format(base_url: Optional[str]) -> OutputFormat:
    """The ``output.format`` setting; ``auto`` while the config is invalid.

    Commands that read the config report an invalid file themselves.
    """
    try:
        return OutputFormat(resolve_settings(base_url).output.format)
    except ConfigError:
        return OutputFormat.AUTO


@app.callback()
def main_callback(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="Backend root URL (overrides config and QUERYKIT_BASE_URL)."
    ),
    output_format: Optional[OutputFormat] = typer.Option(
        None, "--format", help="Result format [default: output.format setting].", case_sensitive=False
    ),
    json_output: bool = typer.Option(False, "--json", help="Shorthand for --format json."),
    plain_output: bool = typer.Option(False, "--plain", help="Shorthand for --format plain."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print results, warnings and errors."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging on stderr."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmations."),
    version: bool = typer.Option(
        False, "--version", callback=_print_version, is_eager=True, help="Show version and exit."
    ),
) -> None:
    """Set up output and logging, and share the global options with every command."""
    if json_output:
        output_format = OutputFormat.JSON
    elif plain_output:
        output_format = OutputFormat.PLAIN
    elif output_format is None:
        output_format = _configured_format(base_url)
    set_output(OutputManager(format=output_format, no_color=no_color, quiet=quiet))
    configure_logging(verbose)

    obj = ctx.ensure_object(dict)
    obj.update(base_url=base_url, force=force)


def _crash_report(exc: BaseException) -> Path:
    """Save the traceback of *exc* under ``<data_dir>/logs`` and return the file."""
    logs = get_data_dir() / "logs"
    logs.mkdir(parents=True, exist_ok=True)
    path = logs / f"crash-{datetime.now():%Y%m%d-%H%M%S}.log"
    path.write_text("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    return path


def main() -> None:
    """Console-script entry point.

    A :class:`~querykit.exceptions.QuerykitError` that escapes a command
    exits with its ``exit_code``. Anything else is a bug: its traceback is
    saved to a crash report and the process exits with a generic failure.
    """
    try:
        app()
    except QuerykitError as exc:
        error(str(exc))
        sys.exit(exc.exit_code)
    except Exception as exc:
        error(f"Unexpected error. Crash report: {_crash_report(exc)}")
        sys.exit(EXIT_GENERIC_FAILURE)
