"""
Malloy Connection Registry — persisted connection descriptors.

Single source of truth for connection name -> descriptor.

Registry location: ~/.malloy/connections.db (override the directory with
MALLOY_HOME, or the file with "connections_path" in config.json).
Options are stored as JSON, one row per named connection.
"""

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from malloy_cli.config import MALLOY_HOME
from malloy_cli.connections.types import ConnectionConfig, config_from_options, options_of
from malloy_cli.errors import ConnectionStoreError, DuplicateConnectionNameError

CONNECTIONS_DB = MALLOY_HOME / "connections.db"

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS connections (
    id          TEXT PRIMARY KEY,
    name        TEXT UNIQUE NOT NULL,
    kind        TEXT NOT NULL,
    options     TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""


def _open_registry(db_path: str | Path | None = None) -> sqlite3.Connection:
    """Open the registry, creating its directory and table if needed."""
    path = Path(db_path).expanduser() if db_path else CONNECTIONS_DB
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        db = sqlite3.connect(str(path), timeout=5)
        db.row_factory = sqlite3.Row
        db.executescript(_SCHEMA)
    except (OSError, sqlite3.Error) as e:
        raise ConnectionStoreError(f"Could not open connection store {path}: {e}") from e
    return db


def _row_to_config(row: sqlite3.Row) -> ConnectionConfig:
    try:
        options = json.loads(row["options"])
        return config_from_options(row["name"], row["kind"], options)
    except (ValueError, TypeError) as e:
        raise ConnectionStoreError(f"Corrupt entry for connection '{row['name']}': {e}") from e


def add_connection(config: ConnectionConfig, db_path=None) -> str:
    """Insert a new connection. Returns its UUID id.

    Names are unique: an existing name raises DuplicateConnectionNameError.
    """
    db = _open_registry(db_path)
    now = datetime.now(timezone.utc).isoformat()
    conn_id = str(uuid.uuid4())
    try:
        db.execute(
            "INSERT INTO connections (id, name, kind, options, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (conn_id, config.name, config.kind, json.dumps(options_of(config)), now, now),
        )
        db.commit()
    except sqlite3.IntegrityError:
        raise DuplicateConnectionNameError(config.name) from None
    except sqlite3.Error as e:
        raise ConnectionStoreError(f"Could not save connection '{config.name}': {e}") from e
    finally:
        db.close()
    return conn_id


def remove_connection(name: str, db_path=None) -> bool:
    """Remove a connection. Returns True if it existed."""
    db = _open_registry(db_path)
    try:
        cursor = db.execute("DELETE FROM connections WHERE name = ?", (name,))
        db.commit()
        return cursor.rowcount > 0
    except sqlite3.Error as e:
        raise ConnectionStoreError(f"Could not remove connection '{name}': {e}") from e
    finally:
        db.close()


def get_connection(name: str, db_path=None) -> Optional[ConnectionConfig]:
    """Descriptor for ``name``, or None if it isn't registered."""
    db = _open_registry(db_path)
    try:
        row = db.execute(
            "SELECT name, kind, options FROM connections WHERE name = ?", (name,)
        ).fetchone()
    except sqlite3.Error as e:
        raise ConnectionStoreError(f"Could not read connection '{name}': {e}") from e
    finally:
        db.close()
    return _row_to_config(row) if row else None


def list_connections(db_path=None) -> list[ConnectionConfig]:
    """All registered connections, ordered by name."""
    db = _open_registry(db_path)
    try:
        rows = db.execute(
            "SELECT name, kind, options FROM connections ORDER BY name"
        ).fetchall()
    except sqlite3.Error as e:
        raise ConnectionStoreError(f"Could not list connections: {e}") from e
    finally:
        db.close()
    return [_row_to_config(r) for r in rows]
