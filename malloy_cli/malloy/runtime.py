"""
Adapter over the Malloy runtime (malloy-py).

Exposes the materializer interface the run pipeline consumes:

    Runtime(url_reader, connection_lookup)
      .load_model(url)                   -> ModelMaterializer
    ModelMaterializer
      .extend_model(url)                 -> ModelMaterializer
      .load_query_by_index(i)            -> QueryMaterializer   (async)
      .load_query_by_name(name)          -> QueryMaterializer   (async)
      .load_query(text)                  -> QueryMaterializer   (async)
      .load_final_query()                -> QueryMaterializer   (async)
    QueryMaterializer
      .get_sql()                         -> str                 (async)
      .run()                             -> list[dict]          (async)

Compilation and execution happen inside malloy-py. The only source scanning
done here is locating the last top-level ``run:`` statement, since malloy-py
compiles by query name or query text only.
"""

import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

from malloy_cli.errors import CompileError, ExecutionError, QuerySelectionError

logger = logging.getLogger("malloy.runtime")

_STATEMENT = re.compile(r"(run|query|source|sql)\s*:|import\s")


def read_file_url(url: str) -> str:
    """Default url reader: file:// URLs only."""
    parsed = urlparse(url)
    if parsed.scheme != "file":
        raise CompileError(f"Cannot read '{url}': only file URLs are supported")
    path = Path(url2pathname(parsed.path))
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise CompileError(f"Could not read {path}: {e.strerror or e}") from e


def _url_directory(url: str) -> Optional[Path]:
    parsed = urlparse(url)
    if parsed.scheme != "file":
        return None
    return Path(url2pathname(parsed.path)).parent


# ============================================================
# Final query
# ============================================================

def _skip_quoted(text: str, i: int) -> int:
    quote = text[i]
    j = i + 1
    while j < len(text):
        if text[j] == "\\":
            j += 2
            continue
        if text[j] == quote:
            return j + 1
        j += 1
    return len(text)


def _statement_boundaries(text: str) -> tuple[list[tuple[int, str, int]], int]:
    """Top-level statement boundaries in Malloy source.

    Returns ``(boundaries, code_end)``. Each boundary is ``(offset, keyword,
    previous_code_end)``, where ``previous_code_end`` is the end of the last
    code character before it. Brackets, strings and comments are skipped.
    Annotations (``#``) and ``;`` at the top level also end the statement
    before them.
    """
    boundaries = []
    depth = 0
    code_end = 0
    i = 0
    n = len(text)
    while i < n:
        c = text[i]
        if text.startswith("//", i) or text.startswith("--", i):
            end = text.find("\n", i)
            i = n if end < 0 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end < 0 else end + 2
        elif text.startswith('"""', i):
            end = text.find('"""', i + 3)
            i = code_end = n if end < 0 else end + 3
        elif c in "'\"`":
            i = code_end = _skip_quoted(text, i)
        elif c == "#":
            if depth == 0:
                boundaries.append((i, "#", code_end))
            end = text.find("\n", i)
            i = n if end < 0 else end
        elif c.isspace():
            i += 1
        else:
            if c in "{([":
                depth += 1
            elif c in "})]":
                depth = max(depth - 1, 0)
            elif depth == 0 and c == ";":
                boundaries.append((i, ";", code_end))
            elif depth == 0 and (i == 0 or not (text[i - 1].isalnum() or text[i - 1] == "_")):
                m = _STATEMENT.match(text, i)
                if m:
                    boundaries.append((i, m.group(1) or "import", code_end))
                    i = code_end = m.end()
                    continue
            i += 1
            code_end = i
    return boundaries, code_end


def final_run_statement(source: str) -> Optional[str]:
    """Text of the last top-level ``run:`` statement in ``source``, or None."""
    boundaries, code_end = _statement_boundaries(source)
    for pos in range(len(boundaries) - 1, -1, -1):
        offset, keyword, _ = boundaries[pos]
        if keyword == "run":
            end = boundaries[pos + 1][2] if pos + 1 < len(boundaries) else code_end
            return source[offset:end].strip()
    return None


# ============================================================
# malloy-py glue
# ============================================================

def _import_malloy():
    try:
        import malloy
    except ImportError as e:
        raise CompileError(
            "The Malloy runtime is not installed. Run: pip install 'malloy-cli[runtime]'"
        ) from e
    return malloy


def _new_malloy_runtime():
    malloy = _import_malloy()
    from malloy.data.connection_manager import DefaultConnectionManager

    # the constructor's default manager is shared by every Runtime in the process
    return malloy.Runtime(connection_manager=DefaultConnectionManager())


def _malloy_connection(live):
    """malloy-py connection object for one of our live connections, or None."""
    if live.kind == "duckdb":
        from malloy_cli.malloy.connections import duckdb_connection

        return duckdb_connection(live.config, home_dir=live.working_directory)
    if live.kind == "bigquery":
        from malloy_cli.malloy.connections import bigquery_connection

        return bigquery_connection(live.config)
    return None


def _to_rows(result) -> list[dict]:
    """Rows from a malloy-py run result: a DuckDB connection or a BigQuery QueryJob."""
    if result is None:
        return []
    if hasattr(result, "fetchall"):
        if result.description is None:
            return []
        columns = [d[0] for d in result.description]
        return [dict(zip(columns, row)) for row in result.fetchall()]
    if hasattr(result, "result"):
        return [dict(row.items()) for row in result.result()]
    return [dict(r) for r in result]


# ============================================================
# Materializers
# ============================================================

class Runtime:
    def __init__(self, url_reader: Callable[[str], str] = read_file_url, connection_lookup=None):
        self.url_reader = url_reader
        self.connection_lookup = connection_lookup

    def load_model(self, url: str) -> "ModelMaterializer":
        return ModelMaterializer(self, [url])


class ModelMaterializer:
    def __init__(self, runtime: Runtime, urls: list[str]):
        self.runtime = runtime
        self.urls = list(urls)

    def extend_model(self, url: str) -> "ModelMaterializer":
        return ModelMaterializer(self.runtime, self.urls + [url])

    def source_text(self) -> str:
        return "\n".join(self.runtime.url_reader(u) for u in self.urls)

    def import_path(self) -> Optional[Path]:
        """Directory imports resolve from: that of the most recently added file."""
        return _url_directory(self.urls[-1])

    async def load_query_by_index(self, index: int) -> "QueryMaterializer":
        # malloy-py only addresses queries by name or text
        raise QuerySelectionError(
            f"Cannot select query #{index}: the Malloy runtime does not support "
            "selection by index. Use --query-name or --query."
        )

    async def load_query_by_name(self, name: str) -> "QueryMaterializer":
        return QueryMaterializer(self, named_query=name)

    async def load_query(self, query: str) -> "QueryMaterializer":
        return QueryMaterializer(self, query=query)

    async def load_final_query(self) -> Optional["QueryMaterializer"]:
        statement = final_run_statement(self.runtime.url_reader(self.urls[-1]))
        if statement is None:
            return None
        logger.debug("Final query: %s", statement)
        return QueryMaterializer(self, query=statement)


class QueryMaterializer:
    def __init__(self, model: ModelMaterializer, query: Optional[str] = None,
                 named_query: Optional[str] = None):
        if query is None and named_query is None:
            raise QuerySelectionError("No query selected")
        self.model = model
        self.query = query
        self.named_query = named_query

    @contextmanager
    def _session(self):
        """A malloy-py runtime with our connections registered and the model loaded."""
        rt = _new_malloy_runtime()
        opened = []
        try:
            lookup = self.model.runtime.connection_lookup
            if lookup is not None:
                for name in lookup.names():
                    conn = _malloy_connection(lookup.lookup_connection(name))
                    if conn is None:
                        logger.debug("Connection '%s' has no malloy-py counterpart, skipped", name)
                        continue
                    opened.append(conn)
                    rt.add_connection(conn)
            import_path = self.model.import_path()
            rt.load_source(self.model.source_text(),
                           import_path=str(import_path) if import_path else None)
            with rt:
                yield rt
        finally:
            for conn in opened:
                close = getattr(conn, "close", None)
                if callable(close):
                    close()

    async def get_sql(self) -> str:
        with self._session() as rt:
            try:
                result = await rt.get_sql(query=self.query, named_query=self.named_query)
            except Exception as e:
                raise CompileError(str(e)) from e
        if result is None:
            raise CompileError("The Malloy compiler returned no result")
        # malloy-py returns [sql, connection_name]
        sql = result[0] if isinstance(result, (tuple, list)) else result
        if not sql:
            raise QuerySelectionError("No runnable query found")
        return sql

    async def run(self) -> list[dict]:
        with self._session() as rt:
            try:
                result = await rt.run(query=self.query, named_query=self.named_query)
                # DuckDB results are read from the connection, so before it closes
                return _to_rows(result)
            except Exception as e:
                raise ExecutionError(str(e)) from e
