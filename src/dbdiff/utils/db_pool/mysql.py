"""
PyMySQL-backed pool for one MySQL-compatible database (MySQL, MariaDB, TiDB).

Connections run in autocommit mode so every checksum query sees its own
snapshot. No read-only session is requested: TiDB rejects
``SET TRANSACTION READ ONLY`` unless noop functions are enabled.
"""

import logging
import math
from typing import Any

import pymysql
from opentelemetry import trace

from ..tracing import trace_operation
from .base import BaseConnectionPool

logger = logging.getLogger(__name__)


class MySQLConnectionPool(BaseConnectionPool):
    """
    Connections to ``database`` on a MySQL-compatible server.

    ``database`` may be None for server-level catalog queries. The statement
    timeout becomes the client read timeout, rounded up to whole seconds.
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str | None,
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
        """Arguments for pymysql.connect."""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password or "",
            "database": self.database,
            "connect_timeout": self.connect_timeout,
            "read_timeout": math.ceil(self.query_timeout) if self.query_timeout else None,
            "autocommit": True,
            "charset": "utf8mb4",
            "program_name": "dbdiff",
        }

    def _create_connection(self) -> pymysql.connections.Connection:
        with trace_operation(
            "mysql_connect",
            kind=trace.SpanKind.CLIENT,
            db_host=self.host,
            db_name=self.database or "",
        ):
            return pymysql.connect(**self.connect_kwargs())

    def _is_connection_healthy(self, conn: pymysql.connections.Connection) -> bool:
        if conn is None or not conn.open:
            return False

        try:
            conn.ping(reconnect=False)
            return True
        except pymysql.err.Error:
            return False

    def _close_connection(self, conn: pymysql.connections.Connection) -> None:
        if conn is None or not conn.open:
            return
        try:
            conn.close()
        except pymysql.err.Error as e:
            # Closing sends COM_QUIT, which fails on a dropped socket
            logger.debug(f"Ignoring error on close: {e}")

    def _get_db_type(self) -> str:
        return "mysql"
