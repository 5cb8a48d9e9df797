"""
Read-only access to one database on one side of a comparison.

DatabaseConnection wraps a connection pool and a dialect. Everything the
engine reads goes through ``query`` or ``iter_query``, which translate
driver exceptions into ReadError / TransientReadError so the rest of the
code never sees driver-specific types.
"""

import logging
from collections.abc import Iterator, Sequence
from contextlib import closing
from typing import Any

from .config import DatabaseURL
from .dialects import Dialect, get_dialect
from .errors import DiffConnectionError, DiffError, ReadError, TransientReadError
from .utils.db_pool import BaseConnectionPool, create_pool
from .utils.retry import is_retryable_db_exception

logger = logging.getLogger(__name__)


def _translate(exc: Exception, sql: str) -> ReadError:
    logger.debug(f"Query failed: {' '.join(sql.split())[:200]}")
    if is_retryable_db_exception(exc):
        return TransientReadError(f"{type(exc).__name__}: {exc}")
    return ReadError(f"{type(exc).__name__}: {exc}")


class DatabaseConnection:
    """
    Pooled, read-only connection to a single database.

    Safe to share between threads: every call checks a connection out of
    the pool for its own duration.
    """

    def __init__(
        self,
        url: DatabaseURL,
        database: str | None,
        pool: BaseConnectionPool,
        dialect: Dialect | None = None,
        side: int | None = None,
    ):
        self.url = url
        self.database = database
        self.pool = pool
        self.dialect = dialect or get_dialect(url.dialect)
        self.side = side

    @classmethod
    def open(
        cls,
        url: DatabaseURL,
        database: str | None = None,
        pool_size: int = 4,
        query_timeout: float | None = None,
        side: int | None = None,
    ) -> "DatabaseConnection":
        """
        Create the pool and verify the database answers

        Raises:
            DiffConnectionError: If the first connection or ping fails
        """
        pool = create_pool(
            url,
            database,
            max_size=pool_size,
            query_timeout=query_timeout,
            pool_name=f"side{side}:{database}" if side else database,
        )
        connection = cls(url, database, pool, side=side)
        try:
            connection.ping()
        except ReadError as e:
            connection.close()
            raise DiffConnectionError(
                f"cannot connect to {url.display()} database {database or '(server)'}: {e}",
                side=side,
                database=database,
            ) from e

        logger.debug(f"Connected to {url.display()} database {database or '(server)'}")
        return connection

    def ping(self) -> None:
        self.query("SELECT 1")

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        """
        Run a statement and fetch every row

        Raises:
            TransientReadError: On timeouts and dropped connections
            ReadError: On any other failure
        """
        try:
            with self.pool.acquire() as conn:
                with closing(conn.cursor()) as cursor:
                    if params:
                        cursor.execute(sql, tuple(params))
                    else:
                        cursor.execute(sql)
                    return [tuple(row) for row in cursor.fetchall()]
        except DiffError:
            raise
        except Exception as e:
            raise _translate(e, sql) from e

    def iter_query(
        self, sql: str, params: Sequence[Any] = (), batch_size: int = 1000
    ) -> Iterator[tuple]:
        """
        Stream rows in batches of ``batch_size``

        The pooled connection stays checked out until the iterator is
        exhausted or closed.
        """
        try:
            with self.pool.acquire() as conn:
                with closing(conn.cursor()) as cursor:
                    if params:
                        cursor.execute(sql, tuple(params))
                    else:
                        cursor.execute(sql)
                    while True:
                        rows = cursor.fetchmany(batch_size)
                        if not rows:
                            break
                        for row in rows:
                            yield tuple(row)
        except DiffError:
            raise
        except Exception as e:
            raise _translate(e, sql) from e

    def scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        rows = self.query(sql, params)
        return rows[0][0] if rows else None

    def close(self) -> None:
        self.pool.close()

    def __enter__(self) -> "DatabaseConnection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<DatabaseConnection {self.url.display()} db={self.database} side={self.side}>"
