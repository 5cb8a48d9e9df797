"""
Comparison of one table across two connections.

TableDiffer runs the per-table state machine:

    SchemaCheck -> NOT_EQUAL | ERROR
                -> RowCheck -> EQUAL | NOT_EQUAL | ERROR

RowCheck partitions side 1 into key ranges, checksums each range on both
sides concurrently and narrows mismatching ranges by bisection, breadth
first, until single keys are isolated or a limit is hit.
"""

import logging
import re
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from ..checksum import ChecksumEngine
from ..config import DiffConfig
from ..connection import DatabaseConnection
from ..errors import CancellationError, ReadError, SchemaReadError
from ..models import (
    ChunkChecksum,
    Divergence,
    DivergenceKind,
    KeyRange,
    KeyValue,
    TableReport,
    TableSchema,
    TableStatus,
)
from ..partition import RangePartitioner, WholeTablePartition, select_strategy
from ..schema import SchemaIntrospector, compare_schemas
from ..utils.logging import ContextLogger
from ..utils.metrics import CHUNKS_COMPARED, NARROWING_STEPS
from ..utils.tracing import add_span_event

logger = logging.getLogger(__name__)

# Key types whose ordering depends on the server collation
COLLATED_KEY_TYPE = re.compile(r"char|text|clob|string|uuid|uniqueidentifier", re.IGNORECASE)


@dataclass
class _Pending:
    """A mismatching range waiting to be narrowed."""

    key_range: KeyRange
    left: ChunkChecksum
    right: ChunkChecksum
    depth: int


def _counts(left: ChunkChecksum, right: ChunkChecksum) -> str:
    return f"side 1: {left.row_count} rows, side 2: {right.row_count} rows"


class TableDiffer:
    """
    Decide whether one table is equal on both sides and, if not, where.

    Both connections must point at the same-named database on each side.
    ``checksum_mode`` is already resolved to "client" or "server" so that
    both sides always use the same digest.
    """

    def __init__(
        self,
        side1: DatabaseConnection,
        side2: DatabaseConnection,
        config: DiffConfig,
        checksum_mode: str = "client",
    ):
        self.side1 = side1
        self.side2 = side2
        self.config = config
        self.introspector = SchemaIntrospector(config.retry)
        self.partitioner = RangePartitioner(config.chunk_size, config.retry)
        self.engine = ChecksumEngine(config.retry, checksum_mode, config.fetch_batch_size)

    @property
    def database(self) -> str:
        return self.side1.database

    def compare(self, table: str, cancellation_token: threading.Event | None = None) -> TableReport:
        """
        Compare ``table`` on both sides

        Per-table failures are captured into the report rather than raised.
        """
        started = time.perf_counter()
        deadline = started + self.config.table_timeout if self.config.table_timeout else None
        token = cancellation_token or threading.Event()
        log = ContextLogger(__name__, database=self.database, table=table)

        report = TableReport(database=self.database, table=table, status=TableStatus.EQUAL)

        try:
            self._check_cancelled(token, deadline)
            schema1 = self.introspector.introspect(self.side1, table)
            schema2 = self.introspector.introspect(self.side2, table)

            comparison = compare_schemas(schema1, schema2)
            if not comparison.equal:
                report.status = TableStatus.NOT_EQUAL
                report.schema_discrepancies = comparison.describe()
                log.info(f"Schema differs: {len(comparison.discrepancies)} discrepancies")
            else:
                self._check_rows(schema1, report, token, deadline, log)

        except CancellationError as e:
            report.status = TableStatus.CANCELLED
            report.error = str(e)
            report.error_type = type(e).__name__
            log.info(f"Cancelled: {e}")

        except (SchemaReadError, ReadError) as e:
            report.status = TableStatus.ERROR
            report.error = str(e)
            report.error_type = type(e).__name__
            log.exception(f"Comparison failed: {e}")

        report.duration_seconds = time.perf_counter() - started
        return report

    def _check_cancelled(self, token: threading.Event, deadline: float | None) -> None:
        if token.is_set():
            raise CancellationError("cancelled by a failing sibling table")
        if deadline is not None and time.perf_counter() > deadline:
            raise CancellationError(f"table deadline of {self.config.table_timeout}s exceeded")

    def _collation_may_differ(self, schema: TableSchema) -> bool:
        """
        True when the two servers are of different types and the comparison
        key holds text, so a boundary read from side 1 may cut side 2 at a
        different place
        """
        if self.side1.dialect.name == self.side2.dialect.name or not schema.comparison_key:
            return False
        for name in schema.comparison_key:
            column = schema.column(name)
            if column is not None and COLLATED_KEY_TYPE.search(column.data_type):
                return True
        return False

    def _checksum_pair(
        self, pool: ThreadPoolExecutor, schema: TableSchema, key_range: KeyRange
    ) -> tuple[ChunkChecksum, ChunkChecksum]:
        left = pool.submit(self.engine.compute, self.side1, schema, key_range)
        right = pool.submit(self.engine.compute, self.side2, schema, key_range)
        pair = left.result(), right.result()

        CHUNKS_COMPARED.labels(result="match" if pair[0].matches(pair[1]) else "mismatch").inc()
        return pair

    def _check_rows(
        self,
        schema: TableSchema,
        report: TableReport,
        token: threading.Event,
        deadline: float | None,
        log: ContextLogger,
    ) -> None:
        if self._collation_may_differ(schema):
            log.warning(
                "Text comparison key across different server types; "
                "comparing the table as a single chunk"
            )
            ranges = [KeyRange.unbounded()]
        else:
            ranges = self.partitioner.partition(self.side1, schema)
        if not ranges:
            # Side 1 is empty; one unbounded range still catches rows on side 2
            ranges = [KeyRange.unbounded()]

        unkeyed = isinstance(select_strategy(schema), WholeTablePartition)
        divergences: list[Divergence] = []
        rows1 = rows2 = 0

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="dbdiff-pair") as pool:
            for key_range in ranges:
                self._check_cancelled(token, deadline)

                left, right = self._checksum_pair(pool, schema, key_range)
                report.chunks_compared += 1
                rows1 += left.row_count
                rows2 += right.row_count

                if left.matches(right) or len(divergences) >= self.config.max_divergences:
                    continue

                log.debug(
                    "Chunk differs", key_range=str(key_range), rows1=left.row_count, rows2=right.row_count
                )

                if unkeyed:
                    divergences.append(
                        Divergence(key_range, DivergenceKind.TABLE, detail=_counts(left, right))
                    )
                elif not self.config.narrow:
                    divergences.append(
                        Divergence(key_range, DivergenceKind.RANGE, detail=_counts(left, right))
                    )
                else:
                    start = _Pending(key_range, left, right, 0)
                    self._narrow(pool, schema, start, divergences, token, deadline)

        report.row_counts = (rows1, rows2)
        report.divergences = divergences[: self.config.max_divergences]
        report.status = TableStatus.NOT_EQUAL if divergences else TableStatus.EQUAL

        if divergences:
            log.info(f"Rows differ: {len(report.divergences)} divergences in {report.chunks_compared} chunks")

    def _narrow(
        self,
        pool: ThreadPoolExecutor,
        schema: TableSchema,
        start: _Pending,
        divergences: list[Divergence],
        token: threading.Event,
        deadline: float | None,
    ) -> None:
        """
        Bisect a mismatching range breadth first

        Every split happens at the middle row of the side holding more rows,
        so each child has strictly fewer rows in total than its parent.
        """
        queue: deque[_Pending] = deque([start])
        cap = self.config.max_divergences

        while queue:
            self._check_cancelled(token, deadline)
            item = queue.popleft()
            left, right = item.left, item.right

            if left.row_count <= 1 and right.row_count <= 1:
                divergences.extend(self._resolve_single(schema, item))
                continue

            larger = max(left.row_count, right.row_count)
            reason = None
            if item.depth >= self.config.max_depth:
                reason = f"depth limit {self.config.max_depth} reached"
            elif larger <= self.config.narrow_floor_rows:
                reason = f"row floor {self.config.narrow_floor_rows} reached"
            elif len(divergences) + len(queue) + 1 >= cap:
                reason = f"divergence limit {cap} reached"

            if reason is None:
                bigger_side = self.side1 if left.row_count >= right.row_count else self.side2
                mid = self.partitioner.bisect(bigger_side, schema, item.key_range, larger)
                if mid is None:
                    reason = "range changed during narrowing"

            if reason is not None:
                divergences.append(
                    Divergence(
                        item.key_range,
                        DivergenceKind.RANGE,
                        detail=f"{_counts(left, right)}; {reason}",
                    )
                )
                continue

            NARROWING_STEPS.inc()
            add_span_event("narrow_split", key_range=item.key_range, depth=item.depth, mid=mid)
            for child in item.key_range.split(mid):
                child_left, child_right = self._checksum_pair(pool, schema, child)
                if not child_left.matches(child_right):
                    queue.append(_Pending(child, child_left, child_right, item.depth + 1))

    def _single_key(
        self, side: DatabaseConnection, schema: TableSchema, item: _Pending, count: int
    ) -> KeyValue | None:
        if count == 0:
            return None
        return self.partitioner.bisect(side, schema, item.key_range, 0)

    def _resolve_single(self, schema: TableSchema, item: _Pending) -> list[Divergence]:
        """Classify a range holding at most one row per side."""
        key1 = self._single_key(self.side1, schema, item, item.left.row_count)
        key2 = self._single_key(self.side2, schema, item, item.right.row_count)

        if key1 is not None and key2 is not None:
            if key1 == key2:
                return [
                    Divergence(item.key_range, DivergenceKind.ROW, key=key1, detail="row contents differ")
                ]
            return [
                Divergence(item.key_range, DivergenceKind.MISSING, key=key1, detail="only on side 1"),
                Divergence(item.key_range, DivergenceKind.EXTRA, key=key2, detail="only on side 2"),
            ]
        if key1 is not None:
            return [Divergence(item.key_range, DivergenceKind.MISSING, key=key1, detail="only on side 1")]
        if key2 is not None:
            return [Divergence(item.key_range, DivergenceKind.EXTRA, key=key2, detail="only on side 2")]

        detail = f"{_counts(item.left, item.right)}; rows vanished"
        return [Divergence(item.key_range, DivergenceKind.RANGE, detail=detail)]
