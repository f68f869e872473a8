"""Endpoint commands -- ``endpoints``, ``query`` and ``mutate``.

Arguments are given as ``-a key=value`` pairs (values are parsed as JSON
when possible, so ``-a id=5`` passes the integer 5) and/or as a JSON
document with ``--args``. Endpoints that take a bare value, such as
``get_product_by_id``, accept ``--args 5``.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import typer

from querykit.api import Api
from querykit.commands import run_with_api
from querykit.endpoints import EndpointKind, create_default_registry
from querykit.exceptions import InvalidUsageError
from querykit.output import error, format_response, print_table, success


def _parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def parse_args(pairs: Optional[list[str]], raw_json: Optional[str]) -> Any:
    """Combine ``--args`` JSON and ``-a key=value`` pairs into endpoint args.

    Raises:
        InvalidUsageError: On malformed JSON or pairs, or when pairs are
            combined with a non-object ``--args``.
    """
    args: Any = None
    if raw_json is not None:
        try:
            args = json.loads(raw_json)
        except json.JSONDecodeError as exc:
            raise InvalidUsageError(f"--args is not valid JSON: {exc}") from exc

    if pairs:
        if args is None:
            args = {}
        if not isinstance(args, dict):
            raise InvalidUsageError("-a/--arg can only be combined with a JSON object in --args")
        for pair in pairs:
            key, sep, value = pair.partition("=")
            if not sep or not key:
                raise InvalidUsageError(f"Expected key=value, got: {pair}")
            args[key] = _parse_value(value)
    return args


def endpoints_command(
    kind: Optional[EndpointKind] = typer.Option(
        None, "--kind", "-k", help="Only list queries or mutations."
    ),
) -> None:
    """List the declared endpoints.

    Example::

        querykit endpoints
        querykit endpoints --kind mutation --json
    """
    registry = create_default_registry()
    rows = []
    for name in registry.names(kind):
        endpoint = registry.resolve(name)
        rows.append([name, endpoint.kind.value, endpoint.description])
    print_table(["NAME", "KIND", "DESCRIPTION"], rows, title="Endpoints")


def _call(ctx: typer.Context, name: str, kind: EndpointKind, pairs: Optional[list[str]], raw_json: Optional[str]) -> Any:
    try:
        args = parse_args(pairs, raw_json)
    except InvalidUsageError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    async def _run(api: Api) -> Any:
        api.registry.resolve(name, args, kind=kind, validate=True)
        if kind == EndpointKind.QUERY:
            result = await api.query(name, args)
        else:
            result = await api.mutate(name, args)
        return result.unwrap()

    return run_with_api(ctx, _run)


def query_command(
    ctx: typer.Context,
    name: str = typer.Argument(help="Query endpoint name, e.g. get_orders."),
    arg: Optional[list[str]] = typer.Option(None, "--arg", "-a", help="Argument as key=value; repeatable."),
    args_json: Optional[str] = typer.Option(None, "--args", help="Arguments as JSON."),
) -> None:
    """Run a query and print its data.

    Example::

        querykit query get_products -a page=2
        querykit query get_product_by_id --args 5
    """
    format_response(_call(ctx, name, EndpointKind.QUERY, arg, args_json))


def mutate_command(
    ctx: typer.Context,
    name: str = typer.Argument(help="Mutation endpoint name, e.g. checkout."),
    arg: Optional[list[str]] = typer.Option(None, "--arg", "-a", help="Argument as key=value; repeatable."),
    args_json: Optional[str] = typer.Option(None, "--args", help="Arguments as JSON."),
) -> None:
    """Run a mutation and print the backend's response.

    Example::

        querykit mutate update_delivery_task -a id=3 -a status='"delivered"'
    """
    data = _call(ctx, name, EndpointKind.MUTATION, arg, args_json)
    if data is not None:
        format_response(data)
    success(f"{name} succeeded.")
