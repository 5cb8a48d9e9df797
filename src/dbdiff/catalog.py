"""
Catalog listing: which databases a server holds and which tables a
database holds.
"""

import logging
from dataclasses import dataclass, field

from .config import DatabaseURL
from .connection import DatabaseConnection
from .errors import DiffConnectionError, ReadError
from .utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class CatalogDifference:
    """Names present on only one side."""

    only_side1: list[str] = field(default_factory=list)
    only_side2: list[str] = field(default_factory=list)

    @property
    def equal(self) -> bool:
        return not self.only_side1 and not self.only_side2

    def describe(self, what: str = "database") -> list[str]:
        lines = [f"{what} {name} exists only on side 1" for name in self.only_side1]
        lines.extend(f"{what} {name} exists only on side 2" for name in self.only_side2)
        return lines


def _read_catalog(
    connection: DatabaseConnection, reader, what: str, retry_policy: RetryPolicy | None
) -> list[str]:
    policy = retry_policy or RetryPolicy()
    try:
        return list(policy.call(reader, connection))
    except ReadError as e:
        # Without the catalog there is nothing to compare on this side
        raise DiffConnectionError(
            f"cannot list {what} of {connection.url.display()} database "
            f"{connection.database or '(server)'}: {e}",
            side=connection.side,
            database=connection.database,
        ) from e


def list_databases(connection: DatabaseConnection, retry_policy: RetryPolicy | None = None) -> list[str]:
    """
    User databases on the connection's server, system databases excluded

    Raises:
        DiffConnectionError: If the catalog cannot be read
    """
    return _read_catalog(connection, connection.dialect.list_databases, "databases", retry_policy)


def list_tables(connection: DatabaseConnection, retry_policy: RetryPolicy | None = None) -> list[str]:
    """
    Base tables in the default schema of the connection's database

    Raises:
        DiffConnectionError: If the catalog cannot be read
    """
    return _read_catalog(connection, connection.dialect.list_tables, "tables", retry_policy)


def read_databases(
    url: DatabaseURL,
    side: int,
    query_timeout: float | None = None,
    retry_policy: RetryPolicy | None = None,
) -> list[str]:
    """
    Open a short-lived server connection and list its databases

    Raises:
        DiffConnectionError: If the server cannot be reached
    """
    with DatabaseConnection.open(url, None, pool_size=1, query_timeout=query_timeout, side=side) as conn:
        names = list_databases(conn, retry_policy)

    logger.debug(f"Side {side} ({url.display()}) has {len(names)} databases")
    return names


def compare_catalogs(names1: list[str], names2: list[str]) -> CatalogDifference:
    first, second = set(names1), set(names2)
    return CatalogDifference(
        only_side1=sorted(first - second),
        only_side2=sorted(second - first),
    )
