"""
dbdiff: verify that two database servers hold identical schemas and rows

The reconciliation engine compares same-named tables on two connections
with order-independent chunk checksums, pushed down to the server where
the dialect allows it, and narrows mismatching chunks down to the
differing keys.

Components:
- schema: Introspection, normalization and comparison of table schemas
- partition: Key range partitioning and bisection
- checksum: Canonical row hashing and chunk digests
- differ: Table, database and run-level orchestration
- report: Report generation and formatting

Usage:
    from dbdiff import DatabaseURL, DiffConfig, diff_databases

    run = diff_databases(
        DatabaseURL.parse("app:secret@primary:5432"),
        DatabaseURL.parse("app:secret@replica:5432"),
        ["shop"],
        DiffConfig(),
    )
    print(run.equal)
"""

from .config import DatabaseURL, DiffConfig
from .differ import DatabaseDiffer, TableDiffer, diff_all_databases, diff_databases
from .errors import (
    CancellationError,
    ConfigError,
    DiffConnectionError,
    DiffError,
    ReadError,
    SchemaReadError,
    TransientReadError,
)
from .models import DatabaseReport, RunReport, TableReport, TableStatus

__version__ = "1.0.0"
__all__ = [
    "DatabaseURL",
    "DiffConfig",
    "DatabaseDiffer",
    "TableDiffer",
    "diff_databases",
    "diff_all_databases",
    "DiffError",
    "ConfigError",
    "DiffConnectionError",
    "SchemaReadError",
    "ReadError",
    "TransientReadError",
    "CancellationError",
    "RunReport",
    "DatabaseReport",
    "TableReport",
    "TableStatus",
]
