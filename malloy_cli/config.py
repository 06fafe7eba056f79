"""
Malloy CLI config — config.json loading.

Config location: --config flag, else $MALLOY_CONFIG_FILE, else
~/.malloy/config.json (override the directory with MALLOY_HOME).
An explicitly named file must exist and parse. The default file is optional.
"""

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from malloy_cli.errors import ConfigError

MALLOY_HOME = Path(os.environ.get("MALLOY_HOME", Path.home() / ".malloy"))
DEFAULT_CONFIG_FILE = MALLOY_HOME / "config.json"
CONFIG_ENV_VAR = "MALLOY_CONFIG_FILE"

LOG_LEVELS = ("error", "warn", "info", "debug")
DEFAULT_DIRECT_CONNECTION = "bokksu"


@dataclass(frozen=True)
class Configuration:
    config_file_path: Optional[str] = None
    log_level: str = "warn"
    quiet: bool = False
    connections_path: Optional[str] = None
    default_connection: Optional[str] = None
    direct_execution_connection: Optional[str] = DEFAULT_DIRECT_CONNECTION

    def to_dict(self) -> dict:
        return asdict(self)


# key -> accepted types
_FIELDS = {
    "log_level": (str,),
    "quiet": (bool,),
    "connections_path": (str,),
    "default_connection": (str,),
    "direct_execution_connection": (str, type(None)),
}


def resolve_config_path(path: str | None = None) -> tuple[Path, bool]:
    """Return (path, explicit). explicit=False means the default location."""
    if path:
        return Path(path).expanduser(), True
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser(), True
    return DEFAULT_CONFIG_FILE, False


def _read_config_file(path: Path) -> dict:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Could not read config file {path}: {e.strerror or e}") from e
    try:
        data = json.loads(text) if text.strip() else {}
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def load_config(path: str | None = None, **overrides) -> Configuration:
    """Load the effective configuration.

    ``overrides`` are command-line values; ``None`` means "not given" and
    falls through to the file value, then to the built-in default.
    """
    config_path, explicit = resolve_config_path(path)
    if explicit or config_path.exists():
        data = _read_config_file(config_path)
    else:
        data = {}

    values = {}
    for key, types in _FIELDS.items():
        if key not in data:
            continue
        if not isinstance(data[key], types):
            raise ConfigError(
                f"Config file {config_path}: '{key}' has the wrong type "
                f"({type(data[key]).__name__})"
            )
        values[key] = data[key]

    for key, value in overrides.items():
        if value is not None:
            values[key] = value

    if values.get("log_level", "warn") not in LOG_LEVELS:
        raise ConfigError(
            f"Invalid log level '{values['log_level']}' "
            f"(choose from {', '.join(LOG_LEVELS)})"
        )

    return Configuration(
        config_file_path=str(config_path) if (explicit or config_path.exists()) else None,
        **values,
    )
