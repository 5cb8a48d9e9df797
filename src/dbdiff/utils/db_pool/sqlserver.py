"""pyodbc-backed pool for one SQL Server database."""

import logging
from typing import Any

from opentelemetry import trace

from ..tracing import trace_operation
from .base import BaseConnectionPool

logger = logging.getLogger(__name__)


def _odbc_value(value: Any) -> str:
    # Values holding ODBC delimiters must be braced, with "}" doubled
    text = str(value)
    if any(c in text for c in ";{}=") or text != text.strip():
        return "{" + text.replace("}", "}}") + "}"
    return text


class SQLServerConnectionPool(BaseConnectionPool):
    """
    Read-intent connections to ``database`` on a SQL Server instance.

    pyodbc needs the system ODBC libraries, so it is imported when the first
    connection is opened rather than when dbdiff is imported. The statement
    timeout is pyodbc's per-connection ``timeout``, in whole seconds.
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str | None,
        password: str | None,
        driver: str = "ODBC Driver 18 for SQL Server",
        connect_timeout: int = 10,
        **kwargs: Any,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.driver = driver
        self.connect_timeout = connect_timeout

        super().__init__(**kwargs)

    def connection_string(self) -> str:
        attributes = {
            "SERVER": f"{self.host},{self.port}",
            "DATABASE": self.database,
            "UID": self.user,
            "PWD": self.password,
            "APP": "dbdiff",
            "TrustServerCertificate": "yes",
            "Encrypt": "yes",
            "ApplicationIntent": "ReadOnly",
        }
        parts = [f"DRIVER={{{self.driver}}};"]
        parts.extend(f"{k}={_odbc_value(v)};" for k, v in attributes.items() if v is not None)
        return "".join(parts)

    def _create_connection(self) -> Any:
        import pyodbc

        with trace_operation(
            "sqlserver_connect",
            kind=trace.SpanKind.CLIENT,
            db_host=self.host,
            db_name=self.database,
        ):
            conn = pyodbc.connect(self.connection_string(), timeout=self.connect_timeout)
            conn.autocommit = True
            if self.query_timeout:
                conn.timeout = max(1, int(self.query_timeout))
            return conn

    def _is_connection_healthy(self, conn: Any) -> bool:
        import pyodbc

        if conn is None:
            return False

        try:
            with conn.cursor() as cursor:
                cursor.execute("SELECT 1").fetchone()
            return True
        except pyodbc.Error:
            return False

    def _close_connection(self, conn: Any) -> None:
        import pyodbc

        if conn is None:
            return
        try:
            conn.close()
        except pyodbc.Error as e:
            # Connections dropped by the server fail to close cleanly
            logger.debug(f"Ignoring error on close: {e}")

    def _get_db_type(self) -> str:
        return "sqlserver"
