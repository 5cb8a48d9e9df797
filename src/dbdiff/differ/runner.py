"""
Parallel table comparison.

ParallelRunner fans a list of tables out over a ThreadPoolExecutor and
collects one TableReport per table, in input order. With fail_fast, the
first unequal or failed table signals every other table's cancellation
token: queued tables are never started and running ones stop at their
next chunk boundary.
"""

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed

from opentelemetry import trace

from ..errors import CancellationError
from ..models import TableReport, TableStatus
from ..utils.metrics import (
    RUNNER_ACTIVE_WORKERS,
    RUNNER_QUEUE_SIZE,
    TABLE_SECONDS,
    TABLES_COMPARED,
)
from ..utils.tracing import trace_operation

logger = logging.getLogger(__name__)

CompareFunc = Callable[[str, threading.Event], TableReport]


class ParallelRunner:
    """
    Orchestrates parallel comparison of the tables of one database.

    Example:
        >>> runner = ParallelRunner(max_workers=4, fail_fast=True)
        >>> reports = runner.run("shop", ["orders", "users"], differ.compare)
        >>> all(r.equal for r in reports)
        True
    """

    def __init__(self, max_workers: int = 4, fail_fast: bool = True):
        """
        Initialize parallel runner.

        Args:
            max_workers: Maximum tables compared at once
            fail_fast: Cancel the remaining tables after the first
                unequal or failed one
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")

        self.max_workers = max_workers
        self.fail_fast = fail_fast
        self._metrics_lock = threading.Lock()
        self._cancellation_tokens: dict[str, threading.Event] = {}

    def cancel_all(self) -> None:
        """Signal cancellation to every table of the current run."""
        for token in self._cancellation_tokens.values():
            token.set()

    def run(self, database: str, tables: list[str], compare_func: CompareFunc) -> list[TableReport]:
        """
        Compare tables in parallel

        Args:
            database: Database name, used for reports and logs
            tables: Table names in the order reports should come back in
            compare_func: Callable(table, cancellation_token) -> TableReport

        Returns:
            One TableReport per table, in the order of ``tables``
        """
        if not tables:
            logger.warning(f"No tables to compare in {database}")
            return []

        reports: dict[str, TableReport] = {}

        with trace_operation(
            "compare_tables",
            kind=trace.SpanKind.INTERNAL,
            database=database,
            table_count=len(tables),
            max_workers=self.max_workers,
        ):
            logger.info(
                f"Comparing {len(tables)} tables of {database} with {self.max_workers} workers"
            )

            self._cancellation_tokens = {table: threading.Event() for table in tables}
            with self._metrics_lock:
                RUNNER_QUEUE_SIZE.set(len(tables))

            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                future_to_table: dict[Future, str] = {
                    executor.submit(
                        self._compare_wrapper,
                        database,
                        table,
                        compare_func,
                        self._cancellation_tokens[table],
                    ): table
                    for table in tables
                }

                completed = 0
                for future in as_completed(future_to_table):
                    table = future_to_table[future]
                    completed += 1

                    with self._metrics_lock:
                        RUNNER_QUEUE_SIZE.set(len(tables) - completed)

                    if future.cancelled():
                        report = self._cancelled(database, table, "not started")
                    else:
                        report = future.result()
                    reports[table] = report

                    TABLES_COMPARED.labels(status=report.status.value.lower()).inc()
                    logger.info(
                        f"{database}.{table}: {report.status.value} ({completed}/{len(tables)})"
                    )

                    if self.fail_fast and report.status in (TableStatus.NOT_EQUAL, TableStatus.ERROR):
                        logger.warning(
                            f"Fail-fast: {database}.{table} is {report.status.value}, "
                            f"cancelling remaining tables"
                        )
                        self.cancel_all()
                        for pending in future_to_table:
                            pending.cancel()

            self._cancellation_tokens.clear()
            with self._metrics_lock:
                RUNNER_QUEUE_SIZE.set(0)
                RUNNER_ACTIVE_WORKERS.set(0)

        return [reports[table] for table in tables]

    def _cancelled(self, database: str, table: str, reason: str) -> TableReport:
        return TableReport(
            database=database,
            table=table,
            status=TableStatus.CANCELLED,
            error=reason,
            error_type="CancellationError",
        )

    def _compare_wrapper(
        self,
        database: str,
        table: str,
        compare_func: CompareFunc,
        cancellation_token: threading.Event,
    ) -> TableReport:
        """
        Run one comparison, turning any escaped exception into a report.

        Returns:
            The TableReport from compare_func, or an ERROR / CANCELLED report
        """
        if cancellation_token.is_set():
            return self._cancelled(database, table, "cancelled before start")

        with self._metrics_lock:
            RUNNER_ACTIVE_WORKERS.inc()

        start = time.perf_counter()
        try:
            with trace_operation("compare_table", database=database, table=table) as span:
                report = compare_func(table, cancellation_token)
                span.set_attribute("status", report.status.value)
        except CancellationError as e:
            report = self._cancelled(database, table, str(e))
        except Exception as e:
            logger.error(f"Error comparing {database}.{table}: {e}", exc_info=True)
            report = TableReport(
                database=database,
                table=table,
                status=TableStatus.ERROR,
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            with self._metrics_lock:
                RUNNER_ACTIVE_WORKERS.dec()

        duration = time.perf_counter() - start
        if not report.duration_seconds:
            report.duration_seconds = duration
        TABLE_SECONDS.observe(duration)
        return report
