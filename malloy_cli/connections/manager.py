"""
Connection manager — CRUD over the registry plus live-connection lookup.

The run/compile pipeline never touches the registry directly; it asks the
manager for a ConnectionLookup bound to the file being run.
"""

# ConnectionManager.list shadows the builtin in its own class body
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

from malloy_cli.connections import registry
from malloy_cli.connections.drivers import connection_for_config
from malloy_cli.connections.types import ConnectionConfig
from malloy_cli.errors import ConnectionNotFoundError, MalloyCLIError

logger = logging.getLogger("malloy.connections")


@dataclass
class ConnectionTestResult:
    name: str
    ok: bool
    message: str


class ConnectionLookup:
    """Resolves connection names to live connections for one Malloy file.

    Live connections are created on first lookup and reused afterwards.
    """

    def __init__(self, manager: "ConnectionManager", file_url: str | None = None):
        self.manager = manager
        self.working_directory = _file_directory(file_url)
        self._live = {}

    def names(self) -> list[str]:
        return [c.name for c in self.manager.list()]

    def lookup_connection(self, name: Optional[str] = None):
        config = self.manager.resolve(name)
        if config.name not in self._live:
            logger.debug("Opening %s connection '%s'", config.kind, config.name)
            self._live[config.name] = connection_for_config(
                config, working_directory=self.working_directory
            )
        return self._live[config.name]

    def close(self):
        for conn in self._live.values():
            conn.close()
        self._live.clear()


def _file_directory(file_url: str | None) -> Path | None:
    if not file_url:
        return None
    parsed = urlparse(file_url)
    if parsed.scheme != "file":
        return None
    return Path(url2pathname(parsed.path)).parent


class ConnectionManager:
    def __init__(self, db_path=None, default_connection: str | None = None,
                 direct_execution_connection: str | None = None):
        self.db_path = db_path
        self.default_connection = default_connection
        self.direct_execution_connection = direct_execution_connection

    # --- CRUD ---

    def create(self, config: ConnectionConfig) -> ConnectionConfig:
        registry.add_connection(config, self.db_path)
        logger.info("Created %s connection '%s'", config.kind, config.name)
        return config

    def list(self) -> list[ConnectionConfig]:
        return registry.list_connections(self.db_path)

    def show(self, name: str) -> ConnectionConfig:
        config = registry.get_connection(name, self.db_path)
        if config is None:
            raise ConnectionNotFoundError(name)
        return config

    def delete(self, name: str):
        if not registry.remove_connection(name, self.db_path):
            raise ConnectionNotFoundError(name)
        logger.info("Removed connection '%s'", name)

    def test(self, name: str) -> ConnectionTestResult:
        """Round-trip a trivial query. Failure is a result, not an exception."""
        config = self.show(name)
        conn = connection_for_config(config)
        try:
            conn.test()
        except MalloyCLIError as e:
            return ConnectionTestResult(name, False, str(e))
        finally:
            conn.close()
        return ConnectionTestResult(name, True, "Connection test successful")

    # --- runtime support ---

    def resolve(self, name: str | None) -> ConnectionConfig:
        """Descriptor for ``name``; ``None`` means the default connection."""
        if name:
            return self.show(name)
        if self.default_connection:
            return self.show(self.default_connection)
        configs = self.list()
        if len(configs) == 1:
            return configs[0]
        raise ConnectionNotFoundError(None)

    def get_connection_lookup(self, file_url: str | None = None) -> ConnectionLookup:
        return ConnectionLookup(self, file_url)

    def get_all_connection_configs(self) -> list[ConnectionConfig]:
        return self.list()

    def find_direct_execution_config(self) -> ConnectionConfig | None:
        """The stored connection that bypasses the runtime, if any."""
        if not self.direct_execution_connection:
            return None
        for config in self.get_all_connection_configs():
            if config.name == self.direct_execution_connection:
                return config
        return None
