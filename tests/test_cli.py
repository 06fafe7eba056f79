"""Tests for malloy_cli.cli: argument grammar and end-to-end commands."""

import json
import subprocess
import sys

import pytest

from malloy_cli import cli
from malloy_cli.cli import create_cli, main
from malloy_cli.errors import CLIUsageError

pytestmark = pytest.mark.unit


def _main(*argv):
    return main(list(argv), test_mode=True)


# =============================================================================
# Grammar
# =============================================================================

class TestGrammar:

    def test_index_and_query_name_exclusive(self, malloy_file):
        with pytest.raises(CLIUsageError, match="not allowed with"):
            _main("run", str(malloy_file), "--index", "1", "--query-name", "by_carrier")

    def test_exclusive_rejected_before_any_command(self, malloy_file, monkeypatch):
        calls = []
        monkeypatch.setattr(cli, "prepare", lambda *a, **k: calls.append(a))
        with pytest.raises(CLIUsageError):
            _main("compile", str(malloy_file), "-i", "1", "-n", "x")
        assert calls == []

    def test_unknown_command(self):
        with pytest.raises(CLIUsageError):
            _main("explode")

    def test_unknown_flag(self):
        with pytest.raises(CLIUsageError):
            _main("config", "--frobnicate")

    def test_index_must_be_int(self, malloy_file):
        with pytest.raises(CLIUsageError):
            _main("run", str(malloy_file), "--index", "two")

    def test_bad_log_level(self):
        with pytest.raises(CLIUsageError):
            _main("--log-level", "loud", "config")

    def test_interactive_error_exits(self, capsys):
        parser = create_cli(test_mode=False)
        with pytest.raises(SystemExit) as exc:
            parser.parse_args(["explode"])
        assert exc.value.code == 2
        err = capsys.readouterr().err
        assert "Error:" in err
        assert "(add --help for additional information)" in err

    def test_env_enables_test_mode(self, monkeypatch):
        monkeypatch.setenv("MALLOY_CLI_ENV", "test")
        assert create_cli().test_mode is True
        monkeypatch.delenv("MALLOY_CLI_ENV")
        assert create_cli().test_mode is False

    def test_no_command_prints_help(self, capsys):
        assert _main() == 0
        assert "usage: malloy" in capsys.readouterr().out

    def test_connections_without_subcommand(self, capsys):
        assert _main("connections") == 0
        assert "create-duckdb" in capsys.readouterr().out

    def test_help_returns_instead_of_exiting(self, capsys):
        assert _main("--help") == 0
        assert "usage: malloy" in capsys.readouterr().out

    def test_subcommand_help_returns(self, capsys):
        assert _main("run", "--help") == 0
        assert "final runnable query" in capsys.readouterr().out

    def test_version_returns_instead_of_exiting(self, capsys):
        assert _main("--version") == 0
        assert "0.0.1" in capsys.readouterr().out

    def test_interactive_help_exits(self, capsys):
        with pytest.raises(SystemExit) as exc:
            create_cli(test_mode=False).parse_args(["--help"])
        assert exc.value.code == 0

    def test_imports_in_fresh_interpreter(self):
        proc = subprocess.run([sys.executable, "-c", "import malloy_cli.cli"],
                              capture_output=True, text=True)
        assert proc.returncode == 0, proc.stderr


# =============================================================================
# Pre-action
# =============================================================================

class TestPrepare:

    def test_runs_once_before_handler(self, monkeypatch):
        order = []
        real_prepare = cli.prepare

        def tracking_prepare(args, test_mode=False):
            order.append("prepare")
            return real_prepare(args, test_mode=test_mode)

        def tracking_handler(args, ctx):
            order.append("handler")
            return 0

        monkeypatch.setattr(cli, "prepare", tracking_prepare)
        monkeypatch.setattr(cli, "config_show_command", tracking_handler)
        assert _main("config") == 0
        assert order == ["prepare", "handler"]

    def test_bad_config_reported(self, tmp_path, capsys):
        bad = tmp_path / "bad.json"
        bad.write_text("{oops")
        assert _main("--config", str(bad), "config") == 1
        assert "Error:" in capsys.readouterr().err

    def test_missing_default_config_ok(self):
        assert _main("config") == 0

    def test_connections_path_from_config(self, tmp_path):
        store = tmp_path / "elsewhere" / "conns.db"
        config = tmp_path / "c.json"
        config.write_text(json.dumps({"connections_path": str(store)}))
        assert _main("--config", str(config), "connections", "create-duckdb", "local") == 0
        assert store.exists()

    def test_unpackaged_forces_debug(self, monkeypatch):
        import logging
        from malloy_cli.log import logger
        monkeypatch.setattr(cli, "_is_packaged", lambda: False)
        assert _main("config") == 0
        assert logger.level == logging.DEBUG

    def test_packaged_respects_log_level(self, monkeypatch):
        import logging
        from malloy_cli.log import logger
        monkeypatch.setattr(cli, "_is_packaged", lambda: True)
        assert _main("--log-level", "error", "config") == 0
        assert logger.level == logging.ERROR

    def test_quiet_silences_output(self, capsys):
        _main("connections", "create-duckdb", "local")
        capsys.readouterr()
        assert _main("--quiet", "connections", "list") == 0
        assert capsys.readouterr().out == ""


# =============================================================================
# Commands end to end
# =============================================================================

class TestConfigCommand:

    def test_prints_effective_config(self, tmp_path, capsys):
        path = tmp_path / "c.json"
        path.write_text(json.dumps({"default_connection": "local"}))
        assert _main("--config", str(path), "config") == 0
        data = json.loads(capsys.readouterr().out)
        assert data["default_connection"] == "local"
        assert data["config_file_path"] == str(path)


class TestConnectionsCommands:

    def test_create_list_delete(self, capsys):
        assert _main("connections", "create-duckdb", "local") == 0
        assert _main("connections", "list") == 0
        assert "local" in capsys.readouterr().out
        assert _main("connections", "delete", "local") == 0
        assert _main("connections", "delete", "local") == 1
        assert "not found" in capsys.readouterr().err

    def test_duplicate_create(self, capsys):
        assert _main("connections", "create-duckdb", "local") == 0
        assert _main("connections", "create-postgres", "local") == 1
        assert "already exists" in capsys.readouterr().err

    def test_show_redacts_password(self, capsys):
        _main("connections", "create-postgres", "pg", "-H", "localhost",
              "-p", "5432", "--password", "hunter2")
        capsys.readouterr()
        assert _main("connections", "show", "pg") == 0
        data = json.loads(capsys.readouterr().out)
        assert data["port"] == 5432
        assert data["password"] != "hunter2"
        assert _main("connections", "show", "pg", "--show-secrets") == 0
        assert json.loads(capsys.readouterr().out)["password"] == "hunter2"

    def test_create_bigquery_options(self, capsys):
        assert _main("connections", "create-bigquery", "bq", "-p", "proj",
                     "-t", "60000", "-m", "1000000") == 0
        capsys.readouterr()
        _main("connections", "list", "--json")
        (data,) = json.loads(capsys.readouterr().out)
        assert data == {
            "name": "bq", "kind": "bigquery", "project": "proj", "location": "US",
            "service_account_key_path": None, "timeout": 60000,
            "maximum_bytes_billed": 1000000,
        }

    def test_test_duckdb(self, capsys):
        _main("connections", "create-duckdb", "local")
        assert _main("connections", "test", "local") == 0
        assert "ok" in capsys.readouterr().out

    def test_test_unknown(self, capsys):
        assert _main("connections", "test", "ghost") == 1
        assert "not found" in capsys.readouterr().err


class TestRunCommands:

    @pytest.fixture(autouse=True)
    def _fake_runtime(self, fake_runtime, monkeypatch):
        monkeypatch.setattr("malloy_cli.malloy.run.Runtime", fake_runtime)

    def test_compile_json(self, malloy_file, fake_runtime, capsys):
        fake_runtime.state.sql = "SELECT INTERVAL '(3) DAY'"
        assert _main("compile", str(malloy_file), "--json") == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload == {"sql": "SELECT INTERVAL '3 DAY'"}
        assert "run" not in fake_runtime.state.calls

    def test_run_json(self, malloy_file, fake_runtime, capsys):
        assert _main("run", str(malloy_file), "--json", "-n", "by_carrier") == 0
        payload = json.loads(capsys.readouterr().out)
        assert json.loads(payload["results"]) == [{"one": 1}]

    def test_run_query_text(self, malloy_file, fake_runtime):
        assert _main("run", str(malloy_file), "--query", "flights -> { aggregate: flight_count }") == 0
        assert ("query", "run: flights -> { aggregate: flight_count }") in fake_runtime.state.calls

    def test_run_index_zero(self, malloy_file, capsys):
        assert _main("run", str(malloy_file), "-i", "0") == 1
        assert "1-based" in capsys.readouterr().err

    def test_run_without_final_query(self, malloy_file, fake_runtime, capsys):
        fake_runtime.state.has_final = False
        assert _main("run", str(malloy_file)) == 1
        assert "No runnable query found" in capsys.readouterr().err
        assert "run" not in fake_runtime.state.calls
