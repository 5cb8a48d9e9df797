"""SQLite connection pool implementation."""

import sqlite3
from pathlib import Path
from typing import Any

from opentelemetry import trace

from ..tracing import trace_operation
from .base import BaseConnectionPool


class SQLiteConnectionPool(BaseConnectionPool):
    """
    Connection pool for one SQLite database file, opened read-only.

    ``database=None`` opens an in-memory database, which is what catalog
    listing uses when it only needs a live handle on the directory.
    """

    def __init__(self, directory: str, database: str | None, suffix: str = ".db", **kwargs: Any):
        self.directory = Path(directory)
        self.database = database
        self.path = self.directory / f"{database}{suffix}" if database is not None else None

        super().__init__(**kwargs)

    def _create_connection(self) -> sqlite3.Connection:
        with trace_operation(
            "sqlite_connect",
            kind=trace.SpanKind.CLIENT,
            db_name=self.database or ":memory:",
        ):
            timeout = self.query_timeout or 5.0
            if not self.directory.is_dir():
                raise sqlite3.OperationalError(f"unable to open database file: {self.directory}")
            if self.path is None:
                return sqlite3.connect(":memory:", timeout=timeout, check_same_thread=False)

            if not self.path.is_file():
                raise sqlite3.OperationalError(f"unable to open database file: {self.path}")

            uri = f"{self.path.resolve().as_uri()}?mode=ro"
            return sqlite3.connect(uri, uri=True, timeout=timeout, check_same_thread=False)

    def _is_connection_healthy(self, conn: sqlite3.Connection) -> bool:
        try:
            conn.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error:
            return False

    def _close_connection(self, conn: sqlite3.Connection) -> None:
        conn.close()

    def _get_db_type(self) -> str:
        return "sqlite"
