"""Logging setup for the command-line entry point.

Two sinks are installed on the package logger:
- a Rich handler on stderr at the requested verbosity
- a JSON-lines file holding the full log of the last invocation
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from ocilot.errors import InvalidInputError

LOGGER_NAME = "ocilot"

# Verbosity steps, quietest last; None disables console output
_LEVELS: list[int | None] = [
    logging.DEBUG,
    logging.INFO,
    logging.WARNING,
    logging.ERROR,
    None,
]
_DEFAULT_INDEX = _LEVELS.index(logging.INFO)

logger = logging.getLogger(__name__)


class JsonLineFormatter(logging.Formatter):
    """Formatter that emits one JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, str] = {
            "timestamp": datetime.fromtimestamp(
                record.created, timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            event["exception"] = self.formatException(record.exc_info)
        return json.dumps(event, sort_keys=True, ensure_ascii=False)


def verbosity_to_level(
    verbose: int = 0,
    quiet: int = 0,
    default: int = logging.INFO,
) -> int | None:
    """Translate -v/-q counters into a logging level.

    Args:
        verbose: Number of -v flags.
        quiet: Number of -q flags.
        default: Level used without flags.

    Returns:
        Logging level, or None when console output is disabled.

    Raises:
        InvalidInputError: If both counters are set.
    """
    if verbose and quiet:
        raise InvalidInputError("--verbose and --quiet cannot be combined")
    start = _LEVELS.index(default) if default in _LEVELS else _DEFAULT_INDEX
    index = min(max(start - verbose + quiet, 0), len(_LEVELS) - 1)
    return _LEVELS[index]


def configure_logging(
    level: int | None,
    log_file: Path | None = None,
    console: Console | None = None,
) -> logging.Logger:
    """Install console and diagnostic-file handlers on the package logger.

    Existing handlers are replaced, so repeated calls do not duplicate output.

    Args:
        level: Console level, or None to silence the console.
        log_file: JSON-lines file, truncated on each call.
        console: Rich console for stderr output.

    Returns:
        The configured package logger.
    """
    root = logging.getLogger(LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.DEBUG)
    root.propagate = False

    if level is not None:
        stderr_handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
        )
        stderr_handler.setLevel(level)
        root.addHandler(stderr_handler)

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        except OSError as e:
            logger.warning("Cannot open diagnostic log %s: %s", log_file, e)
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(JsonLineFormatter())
            root.addHandler(file_handler)

    return root


def report_failure(error: BaseException, log_file: Path | None = None) -> None:
    """Log an unexpected failure with full detail.

    Args:
        error: The failure to report.
        log_file: Diagnostic log to point the user at.
    """
    logger.error(
        "Unexpected: '%s'",
        error,
        exc_info=(type(error), error, error.__traceback__),
    )
    if log_file is not None:
        logger.error(
            "Consider checking the logfile for complete logs of last execution: %s",
            log_file,
        )


__all__ = [
    "JsonLineFormatter",
    "LOGGER_NAME",
    "configure_logging",
    "report_failure",
    "verbosity_to_level",
]
