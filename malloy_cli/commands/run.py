import asyncio

from malloy_cli.errors import MalloyCLIError
from malloy_cli.log import get_filtered_results_logger
from malloy_cli.malloy.run import run_malloy
from malloy_cli.malloy.util import RunOrCompileOptions, query_options_from_args


def options_from_args(args, compile_only: bool) -> RunOrCompileOptions:
    return RunOrCompileOptions(
        query_options=query_options_from_args(
            index=args.index, query_name=args.query_name, query=args.query,
        ),
        compile_only=compile_only,
        json=args.json,
    )


def run_command(args, ctx, compile_only: bool = False) -> int:
    """Execute a Malloy file."""
    try:
        options = options_from_args(args, compile_only)
    except MalloyCLIError as e:
        get_filtered_results_logger([]).error(e)
        return 1
    result = asyncio.run(run_malloy(args.file, options, ctx))
    return 0 if result is not None else 1
