"""Per-invocation state, built once by the CLI before any command runs."""

from dataclasses import dataclass

from malloy_cli.config import Configuration
from malloy_cli.connections.manager import ConnectionManager


@dataclass(frozen=True)
class CLIContext:
    config: Configuration
    connections: ConnectionManager
    test_mode: bool = False

    @classmethod
    def from_config(cls, config: Configuration, test_mode: bool = False) -> "CLIContext":
        manager = ConnectionManager(
            db_path=config.connections_path,
            default_connection=config.default_connection,
            direct_execution_connection=config.direct_execution_connection,
        )
        return cls(config=config, connections=manager, test_mode=test_mode)
