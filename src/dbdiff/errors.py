"""
Exception hierarchy for dbdiff.

ConfigError and DiffConnectionError abort a whole run. The remaining
errors are fatal for one table only and end up in that table's report.
"""


class DiffError(Exception):
    """Base class for all dbdiff errors."""


class ConfigError(DiffError):
    """Malformed connection URL, missing selection or invalid option."""


class DiffConnectionError(DiffError):
    """Initial connect or ping to a database failed."""

    def __init__(self, message: str, side: int | None = None, database: str | None = None):
        super().__init__(message)
        self.side = side
        self.database = database


class SchemaReadError(DiffError):
    """Table metadata could not be read (missing table, failed query, bad metadata)."""

    def __init__(self, message: str, table: str | None = None, side: int | None = None):
        super().__init__(message)
        self.table = table
        self.side = side


class ReadError(DiffError):
    """A data query failed."""


class TransientReadError(ReadError):
    """A data query failed in a way worth retrying (timeout, dropped connection)."""


class CancellationError(DiffError):
    """A table comparison was abandoned (fail-fast sibling failure or deadline)."""
