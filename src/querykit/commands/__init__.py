"""Built-in CLI commands for querykit.

* :mod:`~querykit.commands.auth` -- ``login``, ``logout``, ``whoami``.
* :mod:`~querykit.commands.api` -- ``endpoints``, ``query``, ``mutate``.
* :mod:`~querykit.commands.config` -- view and modify user settings.

Commands that talk to the backend go through :func:`run_with_api`, which
builds an :class:`~querykit.api.Api` from the resolved settings, runs one
coroutine on a fresh event loop, and turns a
:class:`~querykit.exceptions.QuerykitError` into an error message and the
matching exit code.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer

from querykit.api import Api
from querykit.config import resolve_settings
from querykit.exceptions import QuerykitError
from querykit.output import error

T = TypeVar("T")


def run_with_api(ctx: typer.Context, action: Callable[[Api], Awaitable[T]]) -> T:
    """Run *action* against an :class:`Api` built from the CLI context.

    ``ctx.obj["transport"]``, when present, is handed to the executor; tests
    use it to install an :class:`httpx.MockTransport`.
    """
    obj = ctx.obj or {}

    async def _main() -> T:
        settings = resolve_settings(obj.get("base_url"))
        async with Api(settings, transport=obj.get("transport")) as api:
            return await action(api)

    try:
        return asyncio.run(_main())
    except QuerykitError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
