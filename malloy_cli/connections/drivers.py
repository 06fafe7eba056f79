"""
Live database connections.

One class per connection kind, picked by ``connection_for_config``.
Every connection answers ``run_sql(sql) -> list[dict]``.

Drivers are imported on first use so the CLI starts without them:
  duckdb                 duckdb
  postgres               psycopg (v3)
  bigquery               google-cloud-bigquery
"""

import logging
from pathlib import Path

from malloy_cli.connections.types import (
    BigQueryConnectionConfig,
    ConnectionConfig,
    DuckDBConnectionConfig,
    PostgresConnectionConfig,
)
from malloy_cli.errors import ExecutionError

logger = logging.getLogger("malloy.connections")

TEST_QUERY = "SELECT 1"


class _LiveConnection:
    kind = None
    package = None  # pip requirement for the driver

    def __init__(self, config: ConnectionConfig):
        self.config = config
        self.name = config.name

    def run_sql(self, sql: str) -> list[dict]:
        """Execute SQL, return list of dicts."""
        logger.debug("[%s] running SQL on '%s':\n%s", self.kind, self.name, sql)
        try:
            return self._run(sql)
        except ImportError as e:
            raise ExecutionError(
                f"{self.kind} driver not installed ({e.name}). Run: pip install {self.package}"
            ) from e
        except Exception as e:
            raise ExecutionError(f"{self.kind} connection '{self.name}': {e}") from e

    def test(self):
        """Trivial round trip. Raises ExecutionError on failure."""
        self.run_sql(TEST_QUERY)

    def close(self):
        pass

    def _run(self, sql: str) -> list[dict]:
        raise NotImplementedError


class DuckDBConnection(_LiveConnection):
    kind = "duckdb"
    package = "duckdb"

    def __init__(self, config: DuckDBConnectionConfig, working_directory: str | Path | None = None):
        super().__init__(config)
        self.working_directory = str(working_directory) if working_directory else None
        self._db = None

    def _connect(self):
        if self._db is None:
            import duckdb

            self._db = duckdb.connect(database=self.config.database_path or ":memory:")
            if self.working_directory:
                # relative paths in queries resolve from the Malloy file's directory
                quoted = self.working_directory.replace("'", "''")
                self._db.execute(f"SET file_search_path = '{quoted}'")
        return self._db

    def _run(self, sql):
        cursor = self._connect().execute(sql)
        if cursor.description is None:
            return []
        columns = [d[0] for d in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def close(self):
        if self._db is not None:
            self._db.close()
            self._db = None


class PostgresConnection(_LiveConnection):
    kind = "postgres"
    package = "psycopg[binary]"

    def _connect_kwargs(self) -> dict:
        c = self.config
        kwargs = {
            "host": c.host,
            "port": c.port,
            "user": c.username,
            "password": c.password,
            "dbname": c.database_name,
        }
        return {k: v for k, v in kwargs.items() if v is not None}

    def _run(self, sql):
        import psycopg
        from psycopg.rows import dict_row

        with psycopg.connect(row_factory=dict_row, **self._connect_kwargs()) as conn:
            with conn.cursor() as cur:
                cur.execute(sql)
                return cur.fetchall() if cur.description else []


class BigQueryConnection(_LiveConnection):
    kind = "bigquery"
    package = "google-cloud-bigquery"

    def __init__(self, config: BigQueryConnectionConfig):
        super().__init__(config)
        self._client = None

    def _get_client(self):
        if self._client is None:
            from google.cloud import bigquery

            c = self.config
            if c.service_account_key_path:
                self._client = bigquery.Client.from_service_account_json(
                    c.service_account_key_path, project=c.project, location=c.location,
                )
            else:
                self._client = bigquery.Client(project=c.project, location=c.location)
        return self._client

    def _run(self, sql):
        from google.cloud import bigquery

        c = self.config
        job_config = bigquery.QueryJobConfig()
        if c.maximum_bytes_billed is not None:
            job_config.maximum_bytes_billed = c.maximum_bytes_billed
        job = self._get_client().query(sql, job_config=job_config)
        timeout = c.timeout / 1000 if c.timeout else None
        return [dict(row.items()) for row in job.result(timeout=timeout)]

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None


def connection_for_config(config: ConnectionConfig, working_directory=None) -> _LiveConnection:
    """Build the live connection for a descriptor, selected by its kind."""
    if config.kind == "duckdb":
        return DuckDBConnection(config, working_directory=working_directory)
    if config.kind == "postgres":
        return PostgresConnection(config)
    if config.kind == "bigquery":
        return BigQueryConnection(config)
    raise ExecutionError(f"Unsupported connection kind '{config.kind}'")
