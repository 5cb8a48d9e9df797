"""
Logging setup for dbdiff.

Console output always goes to stderr: stdout is reserved for the verdict.
Only handlers installed here are replaced or removed, so handlers added by
an embedding application (or a test runner) are left alone.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path

from .formatters import ConsoleFormatter, JSONFormatter

# Level names accepted on the command line, including the short forms
# ("warn", "fatal") used by older tooling.
LEVEL_ALIASES = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

FILE_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"

# Libraries that log below WARNING on every span export or request
QUIET_LOGGERS = ("opentelemetry", "urllib3", "grpc")

_MARK = "_dbdiff_handler"


def resolve_level(level: str) -> int:
    """
    Convert a level name to a logging level number

    Args:
        level: Level name, case-insensitive (debug, info, warn, error, fatal, ...)

    Returns:
        Numeric logging level (INFO when the name is unknown)
    """
    return LEVEL_ALIASES.get(level.strip().lower(), logging.INFO)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def installed_handlers() -> list[logging.Handler]:
    """Handlers on the root logger that setup_logging installed."""
    return [h for h in logging.getLogger().handlers if getattr(h, _MARK, False)]


def _install(handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    setattr(handler, _MARK, True)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    logging.getLogger().addHandler(handler)


def setup_logging(
    level: str = "info",
    log_file: str | None = None,
    console_output: bool = True,
    json_format: bool = False,
    max_bytes: int = 50 * 1024 * 1024,
    backup_count: int = 3,
) -> None:
    """
    Configure the root logger for a dbdiff run

    Calling it again replaces the handlers of the previous call.

    Args:
        level: Log level name (debug, info, warn, error, fatal)
        log_file: Also append to this file, rotated at ``max_bytes``
        console_output: Log to stderr
        json_format: JSON lines instead of the console layout, for both
            stderr and the file
        max_bytes: Size at which the log file is rotated
        backup_count: Rotated files to keep
    """
    numeric_level = resolve_level(level)
    shutdown_logging()

    root = logging.getLogger()
    root.setLevel(numeric_level)

    if console_output:
        formatter = JSONFormatter() if json_format else ConsoleFormatter()
        _install(logging.StreamHandler(sys.stderr), numeric_level, formatter)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        formatter = JSONFormatter(include_source=True) if json_format else logging.Formatter(FILE_FORMAT)
        _install(handler, numeric_level, formatter)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging initialized: level={logging.getLevelName(numeric_level)}, "
        f"file={log_file or 'none'}, json={json_format}"
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """Flush, close and remove the handlers installed by setup_logging."""
    root = logging.getLogger()
    for handler in installed_handlers():
        root.removeHandler(handler)
        handler.flush()
        handler.close()


def configure_from_env() -> None:
    """
    Configure logging from environment variables

    Environment variables:
        LOG_LEVEL: Log level (default: info)
        LOG_FILE: Log file path (default: none)
        LOG_JSON: Use JSON format (default: false)
        LOG_CONSOLE: Log to stderr (default: true)
    """
    setup_logging(
        level=os.getenv("LOG_LEVEL", "info"),
        log_file=os.getenv("LOG_FILE"),
        console_output=_env_flag("LOG_CONSOLE", "true"),
        json_format=_env_flag("LOG_JSON", "false"),
    )
