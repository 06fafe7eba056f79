"""Handlers for `malloy connections <subcommand>`."""

import json
from functools import wraps

from rich.console import Console
from rich.markup import escape

from malloy_cli.connections.types import (
    BigQueryConnectionConfig,
    DuckDBConnectionConfig,
    PostgresConnectionConfig,
    to_dict,
)
from malloy_cli.errors import MalloyCLIError
from malloy_cli.log import get_filtered_results_logger, is_silenced


class _Output:
    """stdout console that respects --quiet."""

    def __init__(self):
        self.console = Console(soft_wrap=True, highlight=False)

    def print(self, *args, **kwargs):
        if not is_silenced():
            self.console.print(*args, **kwargs)

    def print_json(self, data):
        if not is_silenced():
            self.console.print_json(json.dumps(data))


def _reports_errors(fn):
    """Report MalloyCLIError on the error channel and exit 1."""
    @wraps(fn)
    def wrapper(args, ctx):
        try:
            return fn(args, ctx, _Output())
        except MalloyCLIError as e:
            get_filtered_results_logger([]).error(e)
            return 1
    return wrapper


@_reports_errors
def list_connections_command(args, ctx, out) -> int:
    configs = ctx.connections.list()
    if args.json:
        out.print_json([to_dict(c, args.show_secrets) for c in configs])
        return 0
    if not configs:
        out.print("No connections. Add one with [bold]malloy connections create-duckdb <name>[/bold]")
        return 0
    width = max(len(c.name) for c in configs)
    for c in configs:
        out.print(f"  {escape(c.name.ljust(width))}  [dim]{c.kind}[/dim]")
    return 0


@_reports_errors
def show_connection_command(args, ctx, out) -> int:
    config = ctx.connections.show(args.name)
    out.print_json(to_dict(config, args.show_secrets))
    return 0


@_reports_errors
def test_connection_command(args, ctx, out) -> int:
    result = ctx.connections.test(args.name)
    if result.ok:
        out.print(f"  [dim]{escape(result.name)}[/dim]  [green]ok[/green]")
        return 0
    out.print(f"  [dim]{escape(result.name)}[/dim]  [red]failed[/red]")
    get_filtered_results_logger([]).error(result.message)
    return 1


@_reports_errors
def remove_connection_command(args, ctx, out) -> int:
    ctx.connections.delete(args.name)
    out.print(f"Removed connection [bold]{escape(args.name)}[/bold]")
    return 0


def _created(out, config):
    out.print(f"Created {config.kind} connection [bold]{escape(config.name)}[/bold]")
    return 0


@_reports_errors
def create_bigquery_connection_command(args, ctx, out) -> int:
    config = BigQueryConnectionConfig(
        name=args.name,
        project=args.project,
        location=args.location,
        service_account_key_path=args.service_account_key_path,
        timeout=args.timeout,
        maximum_bytes_billed=args.maximum_bytes_billed,
    )
    return _created(out, ctx.connections.create(config))


@_reports_errors
def create_postgres_connection_command(args, ctx, out) -> int:
    config = PostgresConnectionConfig(
        name=args.name,
        host=args.host,
        username=args.username,
        port=args.port,
        database_name=args.database_name,
        password=args.password,
    )
    return _created(out, ctx.connections.create(config))


@_reports_errors
def create_duckdb_connection_command(args, ctx, out) -> int:
    config = DuckDBConnectionConfig(name=args.name, database_path=args.database_path)
    return _created(out, ctx.connections.create(config))
