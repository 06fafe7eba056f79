from malloy_cli.connections.manager import ConnectionLookup, ConnectionManager  # noqa: F401
