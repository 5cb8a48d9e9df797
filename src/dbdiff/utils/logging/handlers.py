"""
Loggers that carry the subject of the work being logged.

A TableDiffer logs dozens of lines per table from several threads; binding
database and table once keeps every one of them attributable.
"""

import logging
from typing import Any

# Keyword arguments of Logger.log that must not be folded into ``extra``
_LOG_KWARGS = ("exc_info", "stack_info")


class ContextLogger:
    """
    Logger wrapper that attaches bound context to every record

    Context lands on the record as attributes (via ``extra``), so the JSON
    formatter emits it under "context" and the console formatter shows
    database/table/side as a bracketed subject.

    Usage:
        log = ContextLogger(__name__, database="shop", table="orders")
        log.info("Chunk differs", lower=10, upper=20)
        side2 = log.bind(side=2)
        side2.warning("Retrying checksum")
    """

    def __init__(self, name: str, **context: Any):
        self.logger = logging.getLogger(name)
        self.context = {k: v for k, v in context.items() if v is not None}

    def bind(self, **context: Any) -> "ContextLogger":
        """Child logger with extra context; this logger is unchanged."""
        child = ContextLogger(self.logger.name)
        child.context = {**self.context, **{k: v for k, v in context.items() if v is not None}}
        return child

    def _log(self, level: int, msg: str, *args, **kwargs) -> None:
        if not self.logger.isEnabledFor(level):
            return
        options = {k: kwargs.pop(k) for k in _LOG_KWARGS if k in kwargs}
        # stacklevel 3 skips _log and the level method, pointing at the caller
        self.logger.log(level, msg, *args, extra={**self.context, **kwargs}, stacklevel=3, **options)

    def debug(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs) -> None:
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs) -> None:
        """Log at ERROR with the active exception attached."""
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, *args, **kwargs)

    def isEnabledFor(self, level: int) -> bool:
        return self.logger.isEnabledFor(level)

    def get_context(self) -> dict[str, Any]:
        return dict(self.context)
