"""
Range partitioning over a table's comparison key.

Keyed tables are cut into contiguous half-open KeyRanges of roughly
``chunk_size`` rows. Boundaries are computed server side in one
ROW_NUMBER() query, so only every chunk_size-th key crosses the network.
Tables without a usable key are treated as a single unbounded range.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from .connection import DatabaseConnection
from .dialects import Dialect
from .models import KeyRange, KeyValue, TableSchema
from .utils.metrics import READ_RETRIES
from .utils.retry import RetryPolicy
from .utils.tracing import trace_operation

logger = logging.getLogger(__name__)

ROW_NUMBER_ALIAS = "dbdiff_rn"


@dataclass(frozen=True)
class KeyedPartition:
    """Table ordered and identified by ``key``; supports chunking and narrowing."""

    key: tuple[str, ...]


@dataclass(frozen=True)
class WholeTablePartition:
    """Table without a usable key; compared as one unit."""


PartitionStrategy = KeyedPartition | WholeTablePartition


def select_strategy(schema: TableSchema) -> PartitionStrategy:
    if schema.comparison_key:
        return KeyedPartition(tuple(schema.comparison_key))
    return WholeTablePartition()


def _lexicographic(
    dialect: Dialect, columns: Sequence[str], values: Sequence[Any], strict: str, last: str
) -> tuple[str, list[Any]]:
    """
    Expand a tuple comparison into AND/OR terms

    For (a, b) >= (x, y): ``a > x OR (a = x AND b >= y)``.
    """
    terms = []
    params: list[Any] = []
    for position, column in enumerate(columns):
        parts = []
        for prefix_column, prefix_value in zip(columns[:position], values[:position]):
            parts.append(f"{dialect.quote_identifier(prefix_column)} = {dialect.placeholder}")
            params.append(prefix_value)
        operator = last if position == len(columns) - 1 else strict
        parts.append(f"{dialect.quote_identifier(column)} {operator} {dialect.placeholder}")
        params.append(values[position])
        terms.append(parts[0] if len(parts) == 1 else "(" + " AND ".join(parts) + ")")

    return "(" + " OR ".join(terms) + ")", params


def range_predicate(
    dialect: Dialect, key: Sequence[str], key_range: KeyRange
) -> tuple[str, list[Any]]:
    """
    WHERE clause selecting the rows of ``key_range``

    Returns:
        (sql, params) with placeholders in the dialect's style
    """
    clauses = []
    params: list[Any] = []

    if key_range.lower is not None:
        sql, values = _lexicographic(dialect, key, key_range.lower, ">", ">=")
        clauses.append(sql)
        params.extend(values)

    if key_range.upper is not None:
        sql, values = _lexicographic(dialect, key, key_range.upper, "<", "<")
        clauses.append(sql)
        params.extend(values)

    if not clauses:
        return "1 = 1", []
    return " AND ".join(clauses), params


class RangePartitioner:
    """
    Compute chunk boundaries and bisection points.

    Example:
        >>> partitioner = RangePartitioner(chunk_size=5000)
        >>> ranges = partitioner.partition(connection, schema)
    """

    def __init__(self, chunk_size: int = 5000, retry_policy: RetryPolicy | None = None):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be at least 1, got {chunk_size}")
        self.chunk_size = chunk_size
        self.retry_policy = retry_policy or RetryPolicy()

    def _on_retry(self, attempt: int, exc: BaseException, delay: float) -> None:
        READ_RETRIES.labels(operation="partition").inc()

    def _query(self, connection: DatabaseConnection, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        return self.retry_policy.call(connection.query, sql, params, on_retry=self._on_retry)

    def count_rows(self, connection: DatabaseConnection, schema: TableSchema) -> int:
        """Exact row count of the table."""
        sql = f"SELECT COUNT(*) FROM {connection.dialect.quote_table(schema.name)}"
        count = self.retry_policy.call(connection.scalar, sql, on_retry=self._on_retry)
        return int(count or 0)

    def estimate_rows(self, connection: DatabaseConnection, schema: TableSchema) -> int:
        """
        Statistics-based cardinality, falling back to an exact count when the
        estimate is missing or below one chunk
        """
        estimate = self.retry_policy.call(
            connection.dialect.estimate_rows, connection, schema.name, on_retry=self._on_retry
        )
        if estimate is None or estimate < self.chunk_size:
            return self.count_rows(connection, schema)
        return estimate

    def boundaries(self, connection: DatabaseConnection, schema: TableSchema) -> list[KeyValue]:
        """Keys of rows chunk_size + 1, 2 * chunk_size + 1, ... in key order."""
        dialect = connection.dialect
        columns = ", ".join(dialect.quote_identifier(c) for c in schema.comparison_key)
        row_number = dialect.quote_identifier(ROW_NUMBER_ALIAS)

        sql = (
            f"SELECT {columns} FROM ("
            f"SELECT {columns}, ROW_NUMBER() OVER (ORDER BY {columns}) AS {row_number} "
            f"FROM {dialect.quote_table(schema.name)}"
            f") numbered "
            f"WHERE {row_number} > 1 AND {dialect.modulo(f'{row_number} - 1', self.chunk_size)} = 0 "
            f"ORDER BY {row_number}"
        )
        return [tuple(row) for row in self._query(connection, sql)]

    def partition(self, connection: DatabaseConnection, schema: TableSchema) -> list[KeyRange]:
        """
        Cut the table into contiguous key ranges

        Returns:
            [] for an empty keyed table, one unbounded range for a small or
            unkeyed table, otherwise ranges whose first lower and last upper
            bounds are unbounded
        """
        strategy = select_strategy(schema)

        with trace_operation(
            "partition",
            database=connection.database,
            table=schema.name,
            side=connection.side,
            strategy=type(strategy).__name__,
        ) as span:
            if isinstance(strategy, WholeTablePartition):
                return [KeyRange.unbounded()]

            rows = self.estimate_rows(connection, schema)
            if rows == 0:
                return []
            if rows <= self.chunk_size:
                return [KeyRange.unbounded()]

            bounds = self.boundaries(connection, schema)
            span.set_attribute("chunks", len(bounds) + 1)

        edges: list[KeyValue | None] = [None, *bounds, None]
        ranges = [KeyRange(lower, upper) for lower, upper in zip(edges, edges[1:])]

        logger.debug(
            f"Partitioned {connection.database}.{schema.name}: ~{rows} rows into {len(ranges)} chunks"
        )
        return ranges

    def bisect(
        self,
        connection: DatabaseConnection,
        schema: TableSchema,
        key_range: KeyRange,
        row_count: int,
    ) -> KeyValue | None:
        """
        Key of the row at offset ``row_count // 2`` inside ``key_range``

        Returns None when the range holds fewer rows than expected.
        """
        if not schema.comparison_key:
            raise ValueError(f"table {schema.name} has no comparison key to bisect on")

        dialect = connection.dialect
        columns = ", ".join(dialect.quote_identifier(c) for c in schema.comparison_key)
        where, params = range_predicate(dialect, schema.comparison_key, key_range)

        sql = dialect.paginate(
            f"SELECT {columns} FROM {dialect.quote_table(schema.name)} WHERE {where}",
            order_by=columns,
            offset=row_count // 2,
            limit=1,
        )
        rows = self._query(connection, sql, params)
        return tuple(rows[0]) if rows else None
