"""
Malloy CLI Test Fixtures

Connection store redirected to tmp_path, a config-less environment, and a
fake Malloy runtime implementing the materializer interface used by
malloy_cli.malloy.run. DuckDB is the only real database touched.

Run with: pytest tests/ -v
"""
import pytest

from malloy_cli import log
from malloy_cli.config import Configuration
from malloy_cli.context import CLIContext


# =============================================================================
# Environment
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Redirect config + registry to tmp dir so tests don't touch real ~/.malloy/."""
    home = tmp_path / ".malloy"
    monkeypatch.setattr("malloy_cli.config.MALLOY_HOME", home)
    monkeypatch.setattr("malloy_cli.config.DEFAULT_CONFIG_FILE", home / "config.json")
    monkeypatch.setattr("malloy_cli.connections.registry.CONNECTIONS_DB", home / "connections.db")
    monkeypatch.delenv("MALLOY_CONFIG_FILE", raising=False)
    monkeypatch.setenv("MALLOY_CLI_ENV", "test")
    yield home
    # --quiet in one test must not mute the next
    log._silenced = False
    log.logger.disabled = False


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "connections.db"


@pytest.fixture
def ctx(store_path):
    config = Configuration(connections_path=str(store_path))
    return CLIContext.from_config(config, test_mode=True)


@pytest.fixture
def malloy_file(tmp_path):
    path = tmp_path / "model.malloy"
    path.write_text(
        "source: flights is duckdb.table('flights.parquet') extend {\n"
        "  measure: flight_count is count()\n"
        "}\n"
        "query: by_carrier is flights -> { group_by: carrier; aggregate: flight_count }\n"
        "run: flights -> { aggregate: flight_count }\n"
    )
    return path


# =============================================================================
# Fake Malloy runtime
# =============================================================================

class FakeQuery:
    def __init__(self, state, sql, rows):
        self.state = state
        self.sql = sql
        self.rows = rows

    async def get_sql(self):
        self.state.calls.append("get_sql")
        return self.sql

    async def run(self):
        self.state.calls.append("run")
        return self.rows


class FakeModel:
    def __init__(self, runtime, urls):
        self.runtime = runtime
        self.urls = urls

    @property
    def state(self):
        return self.runtime.state

    def extend_model(self, url):
        return FakeModel(self.runtime, self.urls + [url])

    def _query(self):
        self.state.loaded_urls = list(self.urls)
        for url in self.urls:
            self.runtime.url_reader(url)
        return FakeQuery(self.state, self.state.sql, self.state.rows)

    async def load_query_by_index(self, index):
        self.state.calls.append(("index", index))
        if index > self.state.query_count:
            raise IndexError(f"Query index {index} out of range")
        return self._query()

    async def load_query_by_name(self, name):
        self.state.calls.append(("name", name))
        if name not in self.state.names:
            raise KeyError(f"No query named '{name}'")
        return self._query()

    async def load_query(self, text):
        self.state.calls.append(("query", text))
        return self._query()

    async def load_final_query(self):
        self.state.calls.append("final")
        if not self.state.has_final:
            return None
        return self._query()


class FakeRuntime:
    def __init__(self, state, url_reader, connection_lookup):
        self.state = state
        self.url_reader = url_reader
        self.connection_lookup = connection_lookup

    def load_model(self, url):
        return FakeModel(self, [url])


class FakeRuntimeState:
    def __init__(self):
        self.sql = "SELECT 1 AS one"
        self.rows = [{"one": 1}]
        self.query_count = 2
        self.names = {"by_carrier"}
        self.has_final = True
        self.calls = []
        self.loaded_urls = []


@pytest.fixture
def fake_runtime():
    """Runtime factory for run_malloy; configure it through ``.state``."""
    state = FakeRuntimeState()

    def factory(url_reader, connection_lookup):
        return FakeRuntime(state, url_reader, connection_lookup)

    factory.state = state
    return factory
