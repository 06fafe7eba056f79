"""
malloy-py connections built from stored descriptors.

Imported only when the Malloy runtime is used; importing it requires malloy-py.
"""

import duckdb
from malloy.data.bigquery import BigQueryConnection
from malloy.data.duckdb import DuckDbConnection

from malloy_cli.connections.types import BigQueryConnectionConfig, DuckDBConnectionConfig


class DuckDbFileConnection(DuckDbConnection):
    """DuckDbConnection that opens ``database_path`` instead of an in-memory database."""

    def __init__(self, database_path=None, home_dir=None, name="duckdb"):
        super().__init__(home_dir=home_dir, name=name)
        self.database_path = database_path

    def get_connection(self):
        if self._con is None:
            self._con = duckdb.connect(database=self.database_path or ":memory:",
                                       read_only=False,
                                       config=self._client_options)
        if self._home_directory:
            quoted = str(self._home_directory).replace("'", "''")
            self._con.execute(f"SET file_search_path = '{quoted}'")
        return self._con

    def close(self):
        if self._con is not None:
            self._con.close()
            self._con = None


def duckdb_connection(config: DuckDBConnectionConfig, home_dir=None) -> DuckDbFileConnection:
    return DuckDbFileConnection(database_path=config.database_path, home_dir=home_dir,
                                name=config.name)


def bigquery_options(config: BigQueryConnectionConfig) -> dict:
    """bigquery.Client keyword arguments for a stored BigQuery descriptor."""
    from google.cloud import bigquery

    options = {"project": config.project, "location": config.location}
    if config.service_account_key_path:
        from google.oauth2 import service_account

        options["credentials"] = service_account.Credentials.from_service_account_file(
            config.service_account_key_path
        )

    job_config = bigquery.QueryJobConfig()
    if config.maximum_bytes_billed is not None:
        job_config.maximum_bytes_billed = config.maximum_bytes_billed
    if config.timeout:
        job_config.job_timeout_ms = config.timeout
    options["default_query_job_config"] = job_config
    return options


def bigquery_connection(config: BigQueryConnectionConfig) -> BigQueryConnection:
    return BigQueryConnection(name=config.name).with_options(bigquery_options(config))
