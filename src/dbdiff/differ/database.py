"""
Database-level orchestration.

DatabaseDiffer compares every table of one database across the two
sides; diff_databases and diff_all_databases build the run-level verdict.
"""

import logging
from datetime import UTC, datetime

from ..catalog import compare_catalogs, list_tables, read_databases
from ..checksum import resolve_checksum_mode
from ..config import DatabaseURL, DiffConfig
from ..connection import DatabaseConnection
from ..models import DatabaseReport, RunReport
from ..utils.tracing import trace_operation
from .runner import ParallelRunner
from .table import TableDiffer

logger = logging.getLogger(__name__)


class DatabaseDiffer:
    """
    Compare the tables of same-named databases on two servers.

    Each side gets its own pool of ``2 * concurrency`` connections, so the
    two checksum queries of every running table can proceed at once.
    """

    def __init__(self, url1: DatabaseURL, url2: DatabaseURL, config: DiffConfig):
        self.url1 = url1
        self.url2 = url2
        self.config = config

    def _open(self, url: DatabaseURL, database: str, side: int) -> DatabaseConnection:
        return DatabaseConnection.open(
            url,
            database,
            pool_size=2 * self.config.concurrency,
            query_timeout=self.config.query_timeout,
            side=side,
        )

    def select_tables(self, side1: DatabaseConnection, side2: DatabaseConnection) -> list[str]:
        """
        Sorted union of both sides' tables, or the configured table list

        A table present on one side only is kept, so that it is reported.
        """
        if self.config.tables:
            return sorted(set(self.config.tables))

        tables = set(list_tables(side1, self.config.retry)) | set(list_tables(side2, self.config.retry))
        return sorted(tables)

    def compare(self, database: str) -> DatabaseReport:
        """
        Compare one database

        Raises:
            DiffConnectionError: If either side cannot be reached
        """
        with trace_operation("compare_database", database=database):
            side1 = self._open(self.url1, database, side=1)
            try:
                side2 = self._open(self.url2, database, side=2)
            except Exception:
                side1.close()
                raise

            try:
                mode = resolve_checksum_mode(self.config.checksum_mode, side1.dialect, side2.dialect)
                tables = self.select_tables(side1, side2)
                logger.info(f"Database {database}: {len(tables)} tables, {mode} checksums")

                differ = TableDiffer(side1, side2, self.config, checksum_mode=mode)
                runner = ParallelRunner(max_workers=self.config.concurrency, fail_fast=self.config.fail_fast)
                reports = runner.run(database, tables, differ.compare)
            finally:
                side1.close()
                side2.close()

        return DatabaseReport(database=database, tables=reports)


def diff_databases(
    url1: DatabaseURL,
    url2: DatabaseURL,
    databases: list[str],
    config: DiffConfig,
) -> RunReport:
    """
    Compare the named databases in order

    With fail_fast the first unequal database ends the run.

    Raises:
        DiffConnectionError: If a side cannot be reached
    """
    run = RunReport()
    differ = DatabaseDiffer(url1, url2, config)

    for database in databases:
        report = differ.compare(database)
        run.databases.append(report)

        if not report.equal and config.fail_fast:
            logger.info(f"Database {database} differs, stopping")
            break

    run.finished_at = datetime.now(UTC)
    return run


def diff_all_databases(url1: DatabaseURL, url2: DatabaseURL, config: DiffConfig) -> RunReport:
    """
    Compare every user database on both servers

    Differing database name sets make the run unequal without comparing
    any table.

    Raises:
        DiffConnectionError: If a side cannot be reached
    """
    names1 = read_databases(url1, side=1, query_timeout=config.query_timeout, retry_policy=config.retry)
    names2 = read_databases(url2, side=2, query_timeout=config.query_timeout, retry_policy=config.retry)

    difference = compare_catalogs(names1, names2)
    if not difference.equal:
        logger.info(f"Database sets differ: {', '.join(difference.describe())}")
        run = RunReport(discrepancies=difference.describe())
        run.finished_at = datetime.now(UTC)
        return run

    return diff_databases(url1, url2, names1, config)
