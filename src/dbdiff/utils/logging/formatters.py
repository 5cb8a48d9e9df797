"""
Log formatters for dbdiff.

Records logged during a comparison usually carry ``database``, ``table``
and ``side`` through ``extra=`` (see ContextLogger). The console formatter
turns them into a short ``[shop.orders side 2]`` tag; the JSON formatter
keeps every extra field under ``context``.
"""

import json
import logging
import sys
import traceback
from datetime import UTC, datetime

# LogRecord attributes that are not user-supplied context
RESERVED_FIELDS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "message", "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName", "asctime",
})

SUBJECT_FIELDS = ("database", "table", "side")


def extract_context(record: logging.LogRecord) -> dict:
    """Return the extra fields attached to a record via ``extra=``."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in RESERVED_FIELDS and not key.startswith("_")
    }


def format_subject(context: dict) -> str:
    """``shop.orders side 2`` from the subject fields present in ``context``."""
    name = ".".join(str(context[key]) for key in ("database", "table") if context.get(key) is not None)
    if context.get("side") is not None:
        name = f"{name} side {context['side']}".strip()
    return name


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    ``thread`` is included because tables are compared on worker threads
    and interleave in the log.
    """

    def __init__(self, include_timestamp: bool = True, include_source: bool = False):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if self.include_timestamp:
            entry["timestamp"] = datetime.fromtimestamp(record.created, UTC).isoformat()
        if self.include_source:
            entry["source"] = f"{record.pathname}:{record.lineno}"

        context = extract_context(record)
        if context:
            entry["context"] = context

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": traceback.format_exception(exc_type, exc, tb),
            }

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable formatter for stderr.

    Layout: ``12:00:01 WARNING dbdiff.differ.table [shop.orders] message k=v``.
    Colors are only used when stderr is a terminal.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(datefmt="%H:%M:%S")
        self.use_colors = use_colors and sys.stderr.isatty()

    def _level(self, levelname: str) -> str:
        if self.use_colors and levelname in self.COLORS:
            return f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        return levelname

    def format(self, record: logging.LogRecord) -> str:
        context = extract_context(record)
        parts = [self.formatTime(record, self.datefmt), self._level(record.levelname), record.name]

        subject = format_subject(context)
        if subject:
            parts.append(f"[{subject}]")
        parts.append(record.getMessage())

        rest = [f"{key}={value}" for key, value in context.items() if key not in SUBJECT_FIELDS]
        if rest:
            parts.append(" ".join(rest))

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line
