"""Terminal output for the querykit CLI.

Query results are written to stdout and nothing else is: status lines,
warnings, errors, hints and log records all go to stderr, so
``querykit --json query get_orders | jq`` always sees clean JSON.

Results are shown in one of three formats:

* ``json`` -- the decoded response body, indented.
* ``plain`` -- tab-separated lines: one ``key<TAB>value`` line per field of
  an object, or a header line plus one line per record for lists and
  paginated ``{count, results}`` bodies.
* ``rich`` -- records as a table, anything else as highlighted JSON.

``auto`` picks ``rich`` on a colour terminal and ``plain`` otherwise. Colour
is off when ``NO_COLOR`` is set, ``TERM=dumb``, or ``--no-color`` is given.

The library packages never import this module; they log through
:mod:`logging` and :func:`configure_logging` forwards those records to
stderr through :class:`rich.logging.RichHandler`.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text


class OutputFormat(str, Enum):
    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


# prefix, style, hidden by --quiet
_LEVELS: dict[str, tuple[str, Optional[str], bool]] = {
    "info": ("", None, True),
    "success": ("", "green", True),
    "suggest": ("→ ", "dim", True),
    "warning": ("Warning: ", "yellow", False),
    "error": ("Error: ", "bold red", False),
}


def color_disabled() -> bool:
    """True when ``NO_COLOR`` is set (to any value) or ``TERM=dumb``."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


def stdout_is_terminal() -> bool:
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def records_of(data: Any) -> Optional[list[dict[str, Any]]]:
    """Return the records of a list or paginated body, or ``None`` if it has none."""
    if isinstance(data, dict) and isinstance(data.get("results"), list):
        data = data["results"]
    if isinstance(data, list) and data and all(isinstance(item, dict) for item in data):
        return data
    return None


def _columns(records: list[dict[str, Any]]) -> list[str]:
    seen: dict[str, None] = {}
    for record in records:
        seen.update(dict.fromkeys(record))
    return list(seen)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _dumps(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


class OutputManager:
    """Writes results to stdout and diagnostics to stderr.

    Args:
        format: Result format; ``AUTO`` is resolved once, here.
        no_color: Disable colour even on a terminal.
        quiet: Hide info, success and suggestion lines.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
    ) -> None:
        self.no_color = no_color or color_disabled()
        self.quiet = quiet
        if format == OutputFormat.AUTO:
            rich = stdout_is_terminal() and not self.no_color
            format = OutputFormat.RICH if rich else OutputFormat.PLAIN
        self.format = format
        self.stdout = Console(
            file=sys.stdout,
            no_color=self.no_color,
            force_terminal=format == OutputFormat.RICH,
            highlight=False,
        )
        self.stderr = Console(file=sys.stderr, no_color=self.no_color, highlight=False)

    # ------------------------------------------------------------------ #
    # Results (stdout)
    # ------------------------------------------------------------------ #

    def format_response(self, data: Any) -> None:
        """Print a decoded response body in the active format."""
        if self.format == OutputFormat.JSON:
            self._line(_dumps(data))
            return

        records = records_of(data)
        if records is not None:
            columns = _columns(records)
            rows = [[_cell(record.get(column)) for column in columns] for record in records]
            self.print_table(columns, rows)
        elif self.format == OutputFormat.PLAIN:
            if isinstance(data, dict):
                for key, value in data.items():
                    self._line(f"{key}\t{_cell(value)}")
            elif isinstance(data, list):
                for item in data:
                    self._line(_cell(item))
            elif data is not None:
                self._line(str(data))
        elif isinstance(data, (dict, list)):
            self.stdout.print(Syntax(_dumps(data), "json", word_wrap=True))
        elif data is not None:
            self.stdout.print(str(data), soft_wrap=True)

    def print_table(self, headers: list[str], rows: list[list[str]], title: Optional[str] = None) -> None:
        """Print rows as a table; JSON mode prints one object per row."""
        if self.format == OutputFormat.JSON:
            self._line(_dumps([dict(zip(headers, row)) for row in rows]))
        elif self.format == OutputFormat.PLAIN:
            for cells in [headers, *rows]:
                self._line("\t".join(cells))
        else:
            table = Table(*headers, title=title, header_style="bold cyan")
            for row in rows:
                table.add_row(*row)
            self.stdout.print(table)

    def _line(self, text: str) -> None:
        print(text, file=self.stdout.file, flush=True)

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def message(self, text: str, level: str = "info") -> None:
        """Print a diagnostic line. ``warning`` and ``error`` survive ``--quiet``."""
        prefix, style, quiet_hides = _LEVELS[level]
        if quiet_hides and self.quiet:
            return
        self.stderr.print(Text(prefix + text, style=style or ""), soft_wrap=True)


# ------------------------------------------------------------------ #
# Logging
# ------------------------------------------------------------------ #


def configure_logging(verbose: bool = False) -> None:
    """Send ``querykit`` log records to stderr.

    Warnings and above are always shown; ``verbose`` lowers the threshold
    to debug. Calling this again replaces the previous handler.
    """
    logger = logging.getLogger("querykit")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(
        console=get_output().stderr,
        show_path=verbose,
        rich_tracebacks=verbose,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


# ------------------------------------------------------------------ #
# Process-wide manager
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the process-wide manager, creating a default one on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the process-wide manager; used between tests."""
    global _output
    _output = None


def format_response(data: Any) -> None:
    get_output().format_response(data)


def print_table(headers: list[str], rows: list[list[str]], title: Optional[str] = None) -> None:
    get_output().print_table(headers, rows, title)


def info(text: str) -> None:
    get_output().message(text, "info")


def success(text: str) -> None:
    get_output().message(text, "success")


def suggest(text: str) -> None:
    get_output().message(text, "suggest")


def error(text: str) -> None:
    get_output().message(text, "error")
