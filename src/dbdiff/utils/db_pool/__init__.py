"""
Database connection pooling for PostgreSQL, SQL Server, MySQL and SQLite.

Provides thread-safe per-database pools with health checks on acquire,
lifetime-based recycling and Prometheus metrics.
"""

from typing import TYPE_CHECKING, Any

from .base import (
    BaseConnectionPool,
    ConnectionPoolError,
    PoolClosedError,
    PooledConnection,
    PoolExhaustedError,
)
from .mysql import MySQLConnectionPool
from .postgres import PostgresConnectionPool
from .sqlite import SQLiteConnectionPool
from .sqlserver import SQLServerConnectionPool

if TYPE_CHECKING:
    from dbdiff.config import DatabaseURL


def create_pool(
    url: "DatabaseURL",
    database: str | None,
    max_size: int = 4,
    query_timeout: float | None = None,
    pool_name: str | None = None,
    **pool_kwargs: Any,
) -> BaseConnectionPool:
    """
    Build the pool matching the URL's dialect.

    Args:
        url: Parsed server location
        database: Database to connect to; None selects the dialect's
            maintenance database (postgres, master), no default
            database (mysql) or an in-memory handle (sqlite)
        max_size: Maximum connections in the pool
        query_timeout: Per-statement timeout in seconds
        pool_name: Name used in metrics, defaults to the database name
        **pool_kwargs: Additional arguments for BaseConnectionPool

    Raises:
        ValueError: If the dialect has no pool implementation
    """
    pool_kwargs.update(
        max_size=max_size,
        query_timeout=query_timeout,
        pool_name=pool_name or database or "catalog",
    )

    if url.dialect == "postgresql":
        return PostgresConnectionPool(
            host=url.host,
            port=url.port,
            database=database or "postgres",
            user=url.user,
            password=url.password,
            **pool_kwargs,
        )

    if url.dialect == "sqlserver":
        return SQLServerConnectionPool(
            host=url.host,
            port=url.port,
            database=database or "master",
            user=url.user,
            password=url.password,
            **pool_kwargs,
        )

    if url.dialect == "mysql":
        return MySQLConnectionPool(
            host=url.host,
            port=url.port,
            database=database,
            user=url.user,
            password=url.password,
            **pool_kwargs,
        )

    if url.dialect == "sqlite":
        return SQLiteConnectionPool(directory=url.path, database=database, **pool_kwargs)

    raise ValueError(f"No connection pool for dialect '{url.dialect}'")


__all__ = [
    "BaseConnectionPool",
    "ConnectionPoolError",
    "PoolClosedError",
    "PoolExhaustedError",
    "MySQLConnectionPool",
    "PooledConnection",
    "PostgresConnectionPool",
    "SQLServerConnectionPool",
    "SQLiteConnectionPool",
    "create_pool",
]
