"""
Schema introspection.

Reads column and index metadata for one table through the connection's
dialect and builds a normalized TableSchema.
"""

import logging
from collections.abc import Iterable

from ..connection import DatabaseConnection
from ..dialects import RawColumn, RawIndex
from ..errors import ReadError, SchemaReadError
from ..models import ColumnDescriptor, IndexDescriptor, TableSchema
from ..utils.metrics import READ_RETRIES
from ..utils.retry import RetryPolicy
from ..utils.tracing import add_span_attributes, trace_operation
from .normalize import normalize_default, normalize_type

logger = logging.getLogger(__name__)

PRIMARY_KEY_NAME = "PRIMARY"


def select_comparison_key(
    columns: Iterable[ColumnDescriptor], indexes: Iterable[IndexDescriptor]
) -> tuple[str, ...] | None:
    """
    Pick the columns that order and identify rows

    The primary key wins. Otherwise the first unique index, by name, whose
    columns are all NOT NULL. None means the table has no usable key.
    """
    nullable = {column.name: column.nullable for column in columns}
    indexes = list(indexes)

    for index in indexes:
        if index.primary:
            return index.columns

    for index in sorted(indexes, key=lambda i: i.name):
        if not index.unique or not index.columns:
            continue
        if all(nullable.get(column) is False for column in index.columns):
            return index.columns

    return None


def build_schema(table: str, raw_columns: list[RawColumn], raw_indexes: list[RawIndex]) -> TableSchema:
    """
    Normalize raw catalog rows into a TableSchema

    Raises:
        SchemaReadError: If an index refers to a column the table lacks
    """
    columns = tuple(
        ColumnDescriptor(
            name=raw.name,
            data_type=normalize_type(raw.data_type),
            nullable=bool(raw.nullable),
            default=normalize_default(raw.default),
            ordinal=position,
        )
        for position, raw in enumerate(raw_columns, start=1)
    )
    known = {column.name for column in columns}

    indexes = set()
    for raw in raw_indexes:
        missing = [column for column in raw.columns if column not in known]
        if missing:
            raise SchemaReadError(
                f"index {raw.name} of {table} refers to unknown columns {missing}", table=table
            )
        indexes.add(
            IndexDescriptor(
                name=PRIMARY_KEY_NAME if raw.primary else raw.name,
                columns=tuple(raw.columns),
                unique=bool(raw.unique or raw.primary),
                primary=bool(raw.primary),
            )
        )

    return TableSchema(
        name=table,
        columns=columns,
        indexes=frozenset(indexes),
        comparison_key=select_comparison_key(columns, indexes),
    )


class SchemaIntrospector:
    """Read a table's normalized schema from one side."""

    def __init__(self, retry_policy: RetryPolicy | None = None):
        self.retry_policy = retry_policy or RetryPolicy()

    def _on_retry(self, attempt: int, exc: BaseException, delay: float) -> None:
        READ_RETRIES.labels(operation="introspect").inc()

    def introspect(self, connection: DatabaseConnection, table: str) -> TableSchema:
        """
        Read and normalize the schema of ``table``

        Raises:
            SchemaReadError: Table not found, metadata query failed after
                retries, or metadata could not be interpreted
        """
        dialect = connection.dialect

        with trace_operation(
            "schema_introspect",
            database=connection.database,
            table=table,
            side=connection.side,
        ):
            try:
                raw_columns = self.retry_policy.call(
                    dialect.read_columns, connection, table, on_retry=self._on_retry
                )
                if not raw_columns:
                    raise SchemaReadError(
                        f"table {table} not found in {connection.database} (side {connection.side})",
                        table=table,
                        side=connection.side,
                    )
                raw_indexes = self.retry_policy.call(
                    dialect.read_indexes, connection, table, on_retry=self._on_retry
                )
            except ReadError as e:
                raise SchemaReadError(
                    f"cannot read metadata of {table} (side {connection.side}): {e}",
                    table=table,
                    side=connection.side,
                ) from e

            try:
                schema = build_schema(table, raw_columns, raw_indexes)
            except SchemaReadError as e:
                e.side = connection.side
                raise
            except (TypeError, ValueError) as e:
                raise SchemaReadError(
                    f"unexpected metadata for {table} (side {connection.side}): {e}",
                    table=table,
                    side=connection.side,
                ) from e

            add_span_attributes(column_count=len(schema.columns), keyed=schema.comparison_key is not None)

        logger.debug(
            f"Introspected {connection.database}.{table} side {connection.side}: "
            f"{len(schema.columns)} columns, key={schema.comparison_key}"
        )
        return schema
