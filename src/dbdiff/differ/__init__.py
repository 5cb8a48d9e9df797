"""
Table, database and run-level comparison.
"""

from .database import DatabaseDiffer, diff_all_databases, diff_databases
from .runner import ParallelRunner
from .table import TableDiffer

__all__ = [
    "DatabaseDiffer",
    "ParallelRunner",
    "TableDiffer",
    "diff_all_databases",
    "diff_databases",
]
