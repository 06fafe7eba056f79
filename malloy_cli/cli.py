#!/usr/bin/env python3
"""
Malloy CLI — run and compile Malloy files, manage connections.

pip install malloy-cli
malloy run model.malloy                   # run the final query in the file
malloy compile model.malloy -n by_state   # print SQL for a named query
malloy connections create-duckdb local    # add a connection
"""

import argparse
import importlib.metadata
import os
import sys
from functools import partial

from rich.console import Console
from rich.markup import escape

from malloy_cli import __version__
from malloy_cli.commands.compile import compile_command
from malloy_cli.commands.config import config_show_command
from malloy_cli.commands.connections import (
    create_bigquery_connection_command,
    create_duckdb_connection_command,
    create_postgres_connection_command,
    list_connections_command,
    remove_connection_command,
    show_connection_command,
    test_connection_command,
)
from malloy_cli.commands.run import run_command
from malloy_cli.config import CONFIG_ENV_VAR, LOG_LEVELS, load_config
from malloy_cli.context import CLIContext
from malloy_cli.errors import CLIExit, CLIUsageError, MalloyCLIError
from malloy_cli.log import create_basic_logger, get_filtered_results_logger, logger, silence_loggers

TEST_ENV_VAR = "MALLOY_CLI_ENV"
HELP_HINT = "(add --help for additional information)"

RUN_DESCRIPTION = """\
execute a Malloy file (.malloy)

Only the final runnable query in the file is executed. If one does not exist,
nothing is executed unless a query is selected: --index runs the query at that
1-based index, --query-name runs the named query, and --query runs the given
Malloy query text against the file's model."""


class MalloyArgumentParser(argparse.ArgumentParser):
    """argparse with a red "Error:" prefix, and no exiting in test mode."""

    def __init__(self, *args, test_mode: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.test_mode = test_mode

    def error(self, message):
        if self.test_mode:
            raise CLIUsageError(message)
        err = Console(stderr=True, soft_wrap=True, highlight=False)
        err.print(f"[red]Error:[/red] {escape(self.prog)}: {escape(message)}")
        err.print(HELP_HINT)
        sys.exit(2)

    def exit(self, status=0, message=None):
        if not self.test_mode:
            super().exit(status, message)
        if message:
            self._print_message(message, sys.stderr)
        raise CLIExit(status)


# ============================================================
# Grammar
# ============================================================

def _add_query_selection(p):
    p.add_argument("file", help="path to a .malloy file")
    group = p.add_mutually_exclusive_group()
    group.add_argument("-i", "--index", type=int, metavar="NUMBER",
                       help="only run the query at index i (1-based)")
    group.add_argument("-n", "--query-name", metavar="NAME", help="run a named query")
    group.add_argument("--query", metavar="MALLOY", help="run a Malloy query against the file's model")
    p.add_argument("--json", action="store_true", help="output only the JSON result payload")


def _add_connection_commands(sub, parser_class):
    connections = sub.add_parser("connections", help="manage connection configuration",
                                 description="manage connection configuration")
    connections.set_defaults(help_parser=connections)
    csub = connections.add_subparsers(dest="connections_command", parser_class=parser_class)

    ls = csub.add_parser("list", help="list all database connections")
    ls.add_argument("--json", action="store_true", help="output JSON")
    ls.add_argument("--show-secrets", action="store_true", help="do not redact passwords")
    ls.set_defaults(handler=list_connections_command)

    bq = csub.add_parser("create-bigquery", help="add a new BigQuery database connection")
    bq.add_argument("name")
    bq.add_argument("-p", "--project", metavar="ID")
    bq.add_argument("-l", "--location", metavar="REGION", default="US")
    bq.add_argument("-k", "--service-account-key-path", metavar="PATH")
    bq.add_argument("-t", "--timeout", type=int, metavar="MILLISECONDS")
    bq.add_argument("-m", "--maximum-bytes-billed", type=int, metavar="BYTES")
    bq.set_defaults(handler=create_bigquery_connection_command)

    pg = csub.add_parser("create-postgres", help="add a new Postgres database connection")
    pg.add_argument("name")
    pg.add_argument("-H", "--host", metavar="URL")
    pg.add_argument("-u", "--username", metavar="NAME")
    pg.add_argument("-p", "--port", type=int, metavar="NUMBER")
    pg.add_argument("-d", "--database-name", metavar="NAME")
    pg.add_argument("--password", metavar="PASSWORD")
    pg.set_defaults(handler=create_postgres_connection_command)

    duck = csub.add_parser("create-duckdb", help="add a new DuckDB database connection")
    duck.add_argument("name")
    duck.add_argument("--database-path", metavar="PATH",
                      help="DuckDB database file (default: in-memory)")
    duck.set_defaults(handler=create_duckdb_connection_command)

    test = csub.add_parser("test", help="test a database connection")
    test.add_argument("name")
    test.set_defaults(handler=test_connection_command)

    show = csub.add_parser("show", help="show details for a database connection")
    show.add_argument("name")
    show.add_argument("--show-secrets", action="store_true", help="do not redact passwords")
    show.set_defaults(handler=show_connection_command)

    delete = csub.add_parser("delete", help="remove a database connection")
    delete.add_argument("name")
    delete.set_defaults(handler=remove_connection_command)


def create_cli(test_mode: bool | None = None) -> MalloyArgumentParser:
    if test_mode is None:
        test_mode = os.environ.get(TEST_ENV_VAR) == "test"
    parser_class = partial(MalloyArgumentParser, test_mode=test_mode)

    parser = MalloyArgumentParser(
        prog="malloy",
        description="Compile and run Malloy files.",
        test_mode=test_mode,
    )
    parser.set_defaults(help_parser=parser)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-c", "--config", metavar="FILE_PATH",
                        help=f"path to a config.json file (env: {CONFIG_ENV_VAR})")
    parser.add_argument("-q", "--quiet", action="store_true", default=None, help="silence output")
    parser.add_argument("-d", "--debug", action="store_true", help="print debug-level logs")
    parser.add_argument("-l", "--log-level", choices=LOG_LEVELS, default=None,
                        help="log level (default: warn)")

    sub = parser.add_subparsers(dest="command", parser_class=parser_class)

    run_p = sub.add_parser("run", help="execute a Malloy file (.malloy)",
                           description=RUN_DESCRIPTION,
                           formatter_class=argparse.RawDescriptionHelpFormatter)
    _add_query_selection(run_p)
    run_p.set_defaults(handler=run_command)

    compile_p = sub.add_parser("compile", help="compile a Malloy file and output resulting SQL")
    _add_query_selection(compile_p)
    compile_p.set_defaults(handler=compile_command)

    _add_connection_commands(sub, parser_class)

    config_p = sub.add_parser("config", help="output the current config")
    config_p.set_defaults(handler=config_show_command)

    return parser


# ============================================================
# Pre-action: logging, config, connections
# ============================================================

def _is_packaged() -> bool:
    """Frozen executable or installed distribution (not a source checkout)."""
    if getattr(sys, "frozen", False):
        return True
    try:
        importlib.metadata.distribution("malloy-cli")
    except importlib.metadata.PackageNotFoundError:
        return False
    return True


def prepare(args, test_mode: bool = False) -> CLIContext:
    """Initialize logging and config, open the connection store.

    Runs once, before any command handler.
    """
    debug = args.debug
    if not _is_packaged() and not args.quiet:
        if not test_mode:
            print('Running Malloy CLI unpackaged, defaulting to "debug" level output',
                  file=sys.stderr)
        debug = True

    level = "debug" if debug else args.log_level
    create_basic_logger(level or "warn")
    if args.quiet:
        silence_loggers()

    config = load_config(args.config, log_level=level, quiet=args.quiet)

    # file values apply where no flag was given
    if level is None:
        create_basic_logger(config.log_level)
    if config.quiet:
        silence_loggers()

    logger.debug("Config: %s", config.to_dict())
    return CLIContext.from_config(config, test_mode=test_mode)


def main(argv=None, test_mode: bool | None = None) -> int:
    parser = create_cli(test_mode)
    try:
        args = parser.parse_args(argv)
    except CLIExit as e:
        return e.status

    handler = getattr(args, "handler", None)
    if handler is None:
        args.help_parser.print_help()
        return 0

    try:
        ctx = prepare(args, test_mode=parser.test_mode)
    except MalloyCLIError as e:
        get_filtered_results_logger([]).error(e)
        return 1

    return handler(args, ctx)


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
