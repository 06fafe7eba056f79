"""Error taxonomy. Every error a handler reports is a MalloyCLIError."""


class MalloyCLIError(Exception):
    """Base class for errors reported to the user without a traceback."""


class CLIUsageError(MalloyCLIError):
    """Bad flags or arguments. Raised instead of exiting in test mode."""


class ConfigError(MalloyCLIError):
    """Config file given but missing, unreadable, or not a JSON object."""


class ConnectionStoreError(MalloyCLIError):
    """The connection store could not be read or written."""


class ConnectionNotFoundError(MalloyCLIError):
    def __init__(self, name: str | None):
        self.name = name
        if name is None:
            super().__init__("No connection name given and no default connection configured")
        else:
            super().__init__(f"Connection '{name}' not found")


class DuplicateConnectionNameError(MalloyCLIError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"A connection named '{name}' already exists")


class QuerySelectionError(MalloyCLIError):
    """Index out of range, unknown query name, or no final query in the file."""


class CompileError(MalloyCLIError):
    """The Malloy runtime failed to produce SQL."""


class ExecutionError(MalloyCLIError):
    """The database (or runtime) failed while executing SQL."""


class CLIExit(Exception):
    """Raised in place of SystemExit in test mode, e.g. after --help or --version."""

    def __init__(self, status: int = 0):
        self.status = status
        super().__init__(status)
