"""Session commands -- ``login``, ``logout`` and ``whoami``.

The session is persisted between invocations (see
:class:`~querykit.auth.credential_store.SessionStore`), so a ``login``
followed by ``query get_orders`` runs the query as the logged-in user.
"""

from __future__ import annotations

import typer

from querykit.api import Api
from querykit.commands import run_with_api
from querykit.exit_codes import EXIT_AUTH_FAILURE
from querykit.models import SessionSnapshot, User
from querykit.output import error, format_response, info, success, suggest


def login_command(
    ctx: typer.Context,
    username: str = typer.Argument(help="Account username."),
    password: str = typer.Option(
        ..., "--password", "-p", prompt=True, hide_input=True, help="Account password."
    ),
) -> None:
    """Log in and store the session.

    Example::

        querykit login alice
        querykit login alice --password secret
    """

    async def _login(api: Api) -> User:
        return (await api.login(username, password)).unwrap()

    user = run_with_api(ctx, _login)
    role = user.role.value if user.role else "unknown"
    success(f"Logged in as {user.username or username} ({role}).")
    suggest("Try: querykit query get_orders")


def logout_command(ctx: typer.Context) -> None:
    """End the stored session."""

    async def _logout(api: Api) -> bool:
        was_authenticated = api.snapshot().is_authenticated
        api.logout()
        return was_authenticated

    if run_with_api(ctx, _logout):
        success("Logged out.")
    else:
        info("Not logged in.")


def whoami_command(ctx: typer.Context) -> None:
    """Show the user of the stored session."""

    async def _whoami(api: Api) -> SessionSnapshot:
        return api.snapshot()

    snapshot = run_with_api(ctx, _whoami)
    if not snapshot.is_authenticated:
        error("Not logged in.")
        suggest("Log in: querykit login USERNAME")
        raise typer.Exit(code=EXIT_AUTH_FAILURE)
    format_response(snapshot.model_dump(mode="json"))
