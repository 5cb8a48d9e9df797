"""
Structured logging configuration for dbdiff

Provides console (colored) or JSON-formatted logging on stderr, optional
rotating log files, and a context-carrying logger wrapper.

Usage:
    from dbdiff.utils.logging import setup_logging, get_logger

    setup_logging(level="debug", json_format=False)

    logger = get_logger(__name__)
    logger.info("Comparing table", extra={"database": "shop", "table": "orders"})
"""

from .config import (
    configure_from_env,
    get_logger,
    resolve_level,
    setup_logging,
    shutdown_logging,
)
from .formatters import ConsoleFormatter, JSONFormatter
from .handlers import ContextLogger

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "resolve_level",
    "configure_from_env",
    "JSONFormatter",
    "ConsoleFormatter",
    "ContextLogger",
]
