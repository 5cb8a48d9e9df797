"""
Data model shared by the reconciliation engine.

Schema descriptors are immutable and rebuilt on every run. KeyRange and
ChunkChecksum values live for one table pass; the report classes are the
durable output handed back to callers.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

KeyValue = tuple[Any, ...]


@dataclass(frozen=True)
class ColumnDescriptor:
    """One column, with its type already normalized."""

    name: str
    data_type: str
    nullable: bool
    default: str | None = None
    ordinal: int = 0


@dataclass(frozen=True)
class IndexDescriptor:
    """An index; the primary key is the one with primary=True."""

    name: str
    columns: tuple[str, ...]
    unique: bool
    primary: bool = False


@dataclass(frozen=True)
class TableSchema:
    """Normalized definition of one table."""

    name: str
    columns: tuple[ColumnDescriptor, ...]
    indexes: frozenset[IndexDescriptor] = frozenset()
    comparison_key: tuple[str, ...] | None = None

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    @property
    def primary_key(self) -> IndexDescriptor | None:
        for index in self.indexes:
            if index.primary:
                return index
        return None

    def column(self, name: str) -> ColumnDescriptor | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def structurally_equal(self, other: "TableSchema") -> bool:
        """Columns (name, type, nullability, in order) and index sets match."""
        mine = [(c.name, c.data_type, c.nullable) for c in self.columns]
        theirs = [(c.name, c.data_type, c.nullable) for c in other.columns]
        return mine == theirs and self.indexes == other.indexes


@dataclass(frozen=True)
class KeyRange:
    """
    Half-open range [lower, upper) over the comparison key.

    A bound of None is unbounded on that side.
    """

    lower: KeyValue | None = None
    upper: KeyValue | None = None

    @classmethod
    def unbounded(cls) -> "KeyRange":
        return cls(None, None)

    @property
    def is_unbounded(self) -> bool:
        return self.lower is None and self.upper is None

    def split(self, mid: KeyValue) -> tuple["KeyRange", "KeyRange"]:
        """Split into [lower, mid) and [mid, upper)."""
        return KeyRange(self.lower, mid), KeyRange(mid, self.upper)

    def to_dict(self) -> dict[str, Any]:
        return {
            "lower": list(self.lower) if self.lower is not None else None,
            "upper": list(self.upper) if self.upper is not None else None,
        }

    def __str__(self) -> str:
        lower = "-inf" if self.lower is None else repr(self.lower)
        upper = "+inf" if self.upper is None else repr(self.upper)
        return f"[{lower}, {upper})"


@dataclass(frozen=True)
class ChunkChecksum:
    """Order-independent digest of the rows in one range, with their count."""

    key_range: KeyRange
    row_count: int
    digest: str

    def matches(self, other: "ChunkChecksum") -> bool:
        return self.row_count == other.row_count and self.digest == other.digest


class DivergenceKind(str, Enum):
    ROW = "ROW"          # same key on both sides, different contents
    MISSING = "MISSING"  # key present on side 1 only
    EXTRA = "EXTRA"      # key present on side 2 only
    RANGE = "RANGE"      # range differs, not further localized
    TABLE = "TABLE"      # unkeyed table differs as a whole


@dataclass(frozen=True)
class Divergence:
    """A localized difference between the two sides of a table."""

    key_range: KeyRange
    kind: DivergenceKind
    key: KeyValue | None = None
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "range": self.key_range.to_dict(),
            "key": list(self.key) if self.key is not None else None,
            "detail": self.detail,
        }


class TableStatus(str, Enum):
    EQUAL = "EQUAL"
    NOT_EQUAL = "NOT_EQUAL"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"


@dataclass
class TableReport:
    """Outcome of comparing one table across the two sides."""

    database: str
    table: str
    status: TableStatus
    schema_discrepancies: list[str] = field(default_factory=list)
    divergences: list[Divergence] = field(default_factory=list)
    error: str | None = None
    error_type: str | None = None
    row_counts: tuple[int, int] | None = None
    chunks_compared: int = 0
    duration_seconds: float = 0.0

    @property
    def equal(self) -> bool:
        return self.status is TableStatus.EQUAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "database": self.database,
            "table": self.table,
            "status": self.status.value,
            "schema_discrepancies": list(self.schema_discrepancies),
            "divergences": [d.to_dict() for d in self.divergences],
            "error": self.error,
            "error_type": self.error_type,
            "row_counts": list(self.row_counts) if self.row_counts else None,
            "chunks_compared": self.chunks_compared,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class DatabaseReport:
    """Per-table reports for one database, in table order."""

    database: str
    tables: list[TableReport] = field(default_factory=list)

    @property
    def equal(self) -> bool:
        return all(table.equal for table in self.tables)

    def to_dict(self) -> dict[str, Any]:
        return {
            "database": self.database,
            "equal": self.equal,
            "tables": [t.to_dict() for t in self.tables],
        }


@dataclass
class RunReport:
    """Result of a whole run; equal is the AND over every table compared."""

    databases: list[DatabaseReport] = field(default_factory=list)
    discrepancies: list[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    @property
    def equal(self) -> bool:
        return not self.discrepancies and all(db.equal for db in self.databases)

    def table_reports(self) -> list[TableReport]:
        return [table for db in self.databases for table in db.tables]

    def to_dict(self) -> dict[str, Any]:
        return {
            "equal": self.equal,
            "discrepancies": list(self.discrepancies),
            "databases": [db.to_dict() for db in self.databases],
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
