"""
Run/compile pipeline for one Malloy file.

load model -> select query -> compile to SQL -> (execute) -> JSON payload

Steps are awaited one after another; only one query is ever in flight.
"""

import json
import logging
import re
from pathlib import Path

from malloy_cli.context import CLIContext
from malloy_cli.connections.drivers import connection_for_config
from malloy_cli.errors import MalloyCLIError, QuerySelectionError
from malloy_cli.log import DEFAULT_OUTPUT_TYPES, get_filtered_results_logger
from malloy_cli.malloy.runtime import Runtime, read_file_url
from malloy_cli.malloy.util import QueryOptions, QueryOptionsType, RunOrCompileOptions

logger = logging.getLogger("malloy.run")

# Some dialects (Snowflake) reject INTERVAL '(1) DAY'; rewrite to INTERVAL '1 DAY'.
# TODO: drop once the Malloy compiler stops emitting the parenthesized form.
INTERVAL_LITERAL = re.compile(r"'\((\d+)\) ([a-zA-Z]+)'")


def fix_interval_literals(sql: str) -> str:
    return INTERVAL_LITERAL.sub(r"'\1 \2'", sql)


def dump_rows(rows, indent=None) -> str:
    """Rows as JSON; dates, decimals and the like become strings."""
    return json.dumps(rows, indent=indent, default=str)


async def load_query(model, query_options: QueryOptions | None):
    """Resolve the query to run. Any failure here is a QuerySelectionError."""
    try:
        if query_options is None:
            query = await model.load_final_query()
        elif query_options.type == QueryOptionsType.INDEX:
            query = await model.load_query_by_index(query_options.index)
        elif query_options.type == QueryOptionsType.NAME:
            query = await model.load_query_by_name(query_options.name)
        else:
            query = await model.load_query(f"run: {query_options.query}")
    except MalloyCLIError:
        raise
    except Exception as e:
        raise QuerySelectionError(str(e)) from e

    if query is None:
        raise QuerySelectionError("No runnable query found in file")
    return query


async def run_malloy(file_path: str, options: RunOrCompileOptions, ctx: CLIContext,
                     runtime_factory=None, model=None) -> str | None:
    """Compile (and unless compile_only, execute) a query from ``file_path``.

    Returns the JSON payload on success. On failure the error is reported
    on the error channel and None is returned.
    """
    results_log = get_filtered_results_logger("json" if options.json else DEFAULT_OUTPUT_TYPES)
    payload = {}
    lookup = None

    try:
        file_url = Path(file_path).resolve().as_uri()
        lookup = ctx.connections.get_connection_lookup(file_url)
        runtime = (runtime_factory or Runtime)(read_file_url, lookup)

        if model is None:
            model = runtime.load_model(file_url)
        else:
            model = model.extend_model(file_url)

        query = await load_query(model, options.query_options)

        sql = fix_interval_literals(await query.get_sql())
        payload["sql"] = sql.strip()

        if options.compile_only:
            results_log.sql("Compiled SQL:")
            results_log.sql(sql)
            results_log.json(payload)
            return json.dumps(payload)

        direct = ctx.connections.find_direct_execution_config()
        if direct is not None:
            logger.debug("Executing directly on connection '%s'", direct.name)
            results_log.task(f"Running SQL on '{direct.name}'")
            conn = connection_for_config(direct, working_directory=lookup.working_directory)
            try:
                rows = conn.run_sql(sql)
            finally:
                conn.close()
        else:
            results_log.task("Running query")
            rows = await query.run()

        results_log.result(dump_rows(rows, indent=2))
        payload["results"] = dump_rows(rows)
        results_log.json(payload)
        return json.dumps(payload)
    except Exception as e:
        results_log.error(e)
        return None
    finally:
        if lookup is not None:
            lookup.close()
