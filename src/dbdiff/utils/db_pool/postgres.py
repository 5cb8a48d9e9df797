"""
psycopg2-backed pool for one PostgreSQL database.

Sessions are opened read-only in autocommit mode: every checksum query runs
in its own snapshot and a stray write is refused by the server.
"""

from typing import Any

import psycopg2
import psycopg2.extensions
from opentelemetry import trace

from ..tracing import trace_operation
from .base import BaseConnectionPool

APPLICATION_NAME = "dbdiff"


class PostgresConnectionPool(BaseConnectionPool):
    """
    Read-only connections to ``database`` on a PostgreSQL server.

    The per-statement timeout is handed to the server as ``statement_timeout``
    so a runaway checksum is cancelled server side, not just abandoned.
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str | None,
        password: str | None,
        connect_timeout: int = 10,
        **kwargs: Any,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.connect_timeout = connect_timeout

        super().__init__(**kwargs)

    def connect_kwargs(self) -> dict[str, Any]:
        """Arguments for psycopg2.connect, timeout option included."""
        options = None
        if self.query_timeout:
            options = f"-c statement_timeout={int(self.query_timeout * 1000)}"

        return {
            "host": self.host,
            "port": self.port,
            "dbname": self.database,
            "user": self.user,
            "password": self.password,
            "connect_timeout": self.connect_timeout,
            "application_name": APPLICATION_NAME,
            "options": options,
        }

    def _create_connection(self) -> psycopg2.extensions.connection:
        with trace_operation(
            "postgres_connect",
            kind=trace.SpanKind.CLIENT,
            db_host=self.host,
            db_name=self.database,
        ):
            conn = psycopg2.connect(**self.connect_kwargs())
            conn.set_session(readonly=True, autocommit=True)
            return conn

    def _is_connection_healthy(self, conn: psycopg2.extensions.connection) -> bool:
        if conn is None or conn.closed:
            return False

        try:
            with conn.cursor() as cursor:
                cursor.execute("SELECT 1")
                cursor.fetchone()
            return conn.get_transaction_status() != psycopg2.extensions.TRANSACTION_STATUS_INERROR
        except psycopg2.Error:
            return False

    def _close_connection(self, conn: psycopg2.extensions.connection) -> None:
        if conn is not None and not conn.closed:
            conn.close()

    def _get_db_type(self) -> str:
        return "postgresql"
