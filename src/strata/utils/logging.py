"""Pipeline logging.

Provides three output modes:
- Human mode: [LEVEL] message (colored if TTY)
- Verbose mode: [LEVEL][HH:MM:SS] logger: message key=value ...
- CI/JSON mode: {"level":"...","ts":"...","logger":"...","msg":"...", ...fields}

Structured fields (org, level index, batch counts) are attached with
``StrataLogger.structured``. JSON mode merges them into the line, verbose mode
appends them as ``key=value`` pairs, and human mode drops them.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TextIO

ROOT_LOGGER = "strata"

# LogRecord attribute carrying structured fields
FIELDS_ATTR = "fields"

_RESET = "\033[0m"

LEVEL_COLORS = {
    logging.DEBUG: "\033[90m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[31m",
}


class LogMode(Enum):
    """Logging output mode."""

    HUMAN = "human"
    VERBOSE = "verbose"
    JSON = "json"


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, FIELDS_ATTR, None) or {}


class TextFormatter(logging.Formatter):
    """Terminal formatter.

    Human: ``[LEVEL] message``.
    Verbose: ``[LEVEL][HH:MM:SS] strata.pipeline: message key=value``,
    followed by the traceback when there is one.
    """

    def __init__(self, verbose: bool = False, use_colors: bool = True) -> None:
        super().__init__()
        self.verbose = verbose
        self.use_colors = use_colors

    def _level_tag(self, record: logging.LogRecord) -> str:
        tag = f"[{record.levelname}]"
        if self.use_colors:
            return f"{LEVEL_COLORS.get(record.levelno, _RESET)}{tag}{_RESET}"
        return tag

    def format(self, record: logging.LogRecord) -> str:
        if not self.verbose:
            return f"{self._level_tag(record)} {record.getMessage()}"

        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{self._level_tag(record)}[{clock}] {record.name}: {record.getMessage()}"
        fields = _record_fields(record)
        if fields:
            line += " " + " ".join(f"{key}={value}" for key, value in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JSONFormatter(logging.Formatter):
    """One JSON object per line, structured fields merged in."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "level": record.levelname,
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "logger": record.name,
            "msg": record.getMessage(),
            **_record_fields(record),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class StrataLogger(logging.Logger):
    """Logger with structured logging support."""

    def structured(self, level: int, msg: str, **fields: Any) -> None:
        """Log ``msg`` with extra fields rendered by the JSON and verbose formatters."""
        if self.isEnabledFor(level):
            self.log(level, msg, extra={FIELDS_ATTR: fields}, stacklevel=2)


logging.setLoggerClass(StrataLogger)


def get_logger(name: str = ROOT_LOGGER) -> StrataLogger:
    """Get a Strata logger (module ``__name__`` or the root ``strata`` logger)."""
    return logging.getLogger(name)  # type: ignore[return-value]


def setup_logging(
    mode: LogMode = LogMode.HUMAN,
    level: int = logging.INFO,
    stream: TextIO | None = None,
) -> None:
    """Configure the ``strata`` logger hierarchy.

    Args:
        mode: Output mode (human, verbose, json)
        level: Minimum log level
        stream: Output stream (default: stderr, so stdout stays clean for results)
    """
    stream = stream or sys.stderr
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    use_colors = hasattr(stream, "isatty") and stream.isatty()
    if mode == LogMode.JSON:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = TextFormatter(verbose=mode == LogMode.VERBOSE, use_colors=use_colors)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # LiteLLM logs every request at INFO
    logging.getLogger("LiteLLM").setLevel(
        logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    )


def configure_from_cli(verbose: bool = False, quiet: bool = False, ci: bool = False) -> None:
    """Configure logging from the global CLI flags.

    ``--ci`` selects JSON output and wins over ``--verbose``; ``--quiet``
    raises the threshold to WARNING regardless of mode.
    """
    if ci:
        mode = LogMode.JSON
    elif verbose:
        mode = LogMode.VERBOSE
    else:
        mode = LogMode.HUMAN

    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    setup_logging(mode=mode, level=level)
