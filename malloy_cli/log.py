"""
Malloy CLI logging.

Two layers:
- the ``malloy`` diagnostic logger (stdlib logging, rich handler on stderr)
- results loggers: categorized command output on stdout, errors on stderr

Both are process-wide and set up once by the CLI pre-action step.
"""

import json
import logging
from enum import Enum
from typing import Iterable

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

logger = logging.getLogger("malloy")

LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

_silenced = False


class StandardOutputType(str, Enum):
    MALLOY = "malloy"
    COMPILED_SQL = "compiled-sql"
    RESULTS = "results"
    TASKS = "tasks"
    JSON = "json"


DEFAULT_OUTPUT_TYPES = (
    StandardOutputType.MALLOY,
    StandardOutputType.COMPILED_SQL,
    StandardOutputType.RESULTS,
    StandardOutputType.TASKS,
)


def create_basic_logger(level: str = "warn") -> logging.Logger:
    """Install the rich handler (once) and set the minimum level."""
    global _silenced
    _silenced = False
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            markup=False,
            rich_tracebacks=False,
        )
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(LEVELS.get(level, logging.WARNING))
    logger.disabled = False
    return logger


def silence_loggers():
    """Mute everything: diagnostics and results channels."""
    global _silenced
    _silenced = True
    logger.disabled = True


def is_silenced() -> bool:
    return _silenced


class ResultsLogger:
    """Routes command output by category.

    Only enabled categories are written. Errors are always written
    (to stderr) unless the loggers are silenced.
    """

    def __init__(self, types: Iterable[StandardOutputType]):
        self.types = frozenset(types)
        self.out = Console(soft_wrap=True, highlight=False)
        self.err = Console(stderr=True, soft_wrap=True, highlight=False)

    def _emit(self, kind: StandardOutputType, message):
        if _silenced or kind not in self.types:
            return
        self.out.out(str(message), highlight=False)

    def malloy(self, message):
        self._emit(StandardOutputType.MALLOY, message)

    def sql(self, message):
        self._emit(StandardOutputType.COMPILED_SQL, message)

    def result(self, message):
        self._emit(StandardOutputType.RESULTS, message)

    def task(self, message):
        self._emit(StandardOutputType.TASKS, message)

    def json(self, payload: dict):
        self._emit(StandardOutputType.JSON, json.dumps(payload, indent=2))

    def error(self, error):
        if logger.isEnabledFor(logging.DEBUG) and isinstance(error, BaseException):
            logger.debug("Traceback", exc_info=error)
        if _silenced:
            return
        self.err.print(f"[red]Error:[/red] {escape(str(error))}")


def get_filtered_results_logger(types) -> ResultsLogger:
    """Results logger for a list of output types, or ``"json"`` for JSON only."""
    if types == "json":
        return ResultsLogger([StandardOutputType.JSON])
    return ResultsLogger(types)
