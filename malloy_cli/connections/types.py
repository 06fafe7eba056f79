"""Connection descriptors: one dataclass per kind, tagged by ``kind``."""

from dataclasses import asdict, dataclass, fields, replace
from typing import Optional

REDACTED = "********"


@dataclass(frozen=True)
class BigQueryConnectionConfig:
    name: str
    project: Optional[str] = None
    location: str = "US"
    service_account_key_path: Optional[str] = None
    timeout: Optional[int] = None  # milliseconds, passed to the driver as-is
    maximum_bytes_billed: Optional[int] = None
    kind = "bigquery"
    secret_fields = ()


@dataclass(frozen=True)
class PostgresConnectionConfig:
    name: str
    host: Optional[str] = None
    username: Optional[str] = None
    port: Optional[int] = None
    database_name: Optional[str] = None
    password: Optional[str] = None
    kind = "postgres"
    secret_fields = ("password",)


@dataclass(frozen=True)
class DuckDBConnectionConfig:
    name: str
    database_path: Optional[str] = None  # None -> in-memory
    kind = "duckdb"
    secret_fields = ()


ConnectionConfig = BigQueryConnectionConfig | PostgresConnectionConfig | DuckDBConnectionConfig

CONFIG_TYPES = {
    cls.kind: cls
    for cls in (BigQueryConnectionConfig, PostgresConnectionConfig, DuckDBConnectionConfig)
}


def options_of(config: ConnectionConfig) -> dict:
    """Kind-specific fields only (no name), as stored in the registry."""
    data = asdict(config)
    data.pop("name")
    return data


def config_from_options(name: str, kind: str, options: dict) -> ConnectionConfig:
    try:
        cls = CONFIG_TYPES[kind]
    except KeyError:
        raise ValueError(f"Unknown connection kind '{kind}'") from None
    known = {f.name for f in fields(cls)}
    return cls(name=name, **{k: v for k, v in options.items() if k in known})


def to_dict(config: ConnectionConfig, show_secrets: bool = False) -> dict:
    """Descriptor as shown to the user: name, kind, then options."""
    if not show_secrets:
        config = redacted(config)
    return {"name": config.name, "kind": config.kind, **options_of(config)}


def redacted(config: ConnectionConfig) -> ConnectionConfig:
    hidden = {f: REDACTED for f in config.secret_fields if getattr(config, f)}
    return replace(config, **hidden) if hidden else config
