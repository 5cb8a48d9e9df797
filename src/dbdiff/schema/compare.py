"""
Structural comparison of two table schemas.

compare_schemas is pure and symmetric: swapping its arguments swaps the
left/right values of every discrepancy and nothing else.
"""

from dataclasses import dataclass, field

from ..models import IndexDescriptor, TableSchema

MISSING_COLUMN = "MISSING_COLUMN"
TYPE_MISMATCH = "TYPE_MISMATCH"
NULLABILITY_MISMATCH = "NULLABILITY_MISMATCH"
COLUMN_ORDER = "COLUMN_ORDER"
MISSING_INDEX = "MISSING_INDEX"
INDEX_MISMATCH = "INDEX_MISMATCH"

ABSENT = "absent"


@dataclass(frozen=True)
class SchemaDiscrepancy:
    kind: str
    subject: str
    left: str
    right: str

    def describe(self) -> str:
        return f"{self.kind} {self.subject}: side 1 {self.left}, side 2 {self.right}"


@dataclass
class SchemaComparison:
    table: str
    discrepancies: list[SchemaDiscrepancy] = field(default_factory=list)

    @property
    def equal(self) -> bool:
        return not self.discrepancies

    def describe(self) -> list[str]:
        return [d.describe() for d in self.discrepancies]


def _describe_index(index: IndexDescriptor) -> str:
    prefix = "PRIMARY KEY " if index.primary else "UNIQUE " if index.unique else ""
    return f"{prefix}({', '.join(index.columns)})"


def _nullability(nullable: bool) -> str:
    return "NULL" if nullable else "NOT NULL"


def compare_schemas(left: TableSchema, right: TableSchema) -> SchemaComparison:
    """
    List every structural difference between two schemas

    Defaults are not compared. Discrepancies are sorted by kind and subject.
    """
    found: list[SchemaDiscrepancy] = []

    left_columns = {c.name: c for c in left.columns}
    right_columns = {c.name: c for c in right.columns}

    for name in left_columns.keys() - right_columns.keys():
        found.append(SchemaDiscrepancy(MISSING_COLUMN, name, "present", ABSENT))
    for name in right_columns.keys() - left_columns.keys():
        found.append(SchemaDiscrepancy(MISSING_COLUMN, name, ABSENT, "present"))

    for name in left_columns.keys() & right_columns.keys():
        mine, theirs = left_columns[name], right_columns[name]
        if mine.data_type != theirs.data_type:
            found.append(SchemaDiscrepancy(TYPE_MISMATCH, name, mine.data_type, theirs.data_type))
        if mine.nullable != theirs.nullable:
            found.append(
                SchemaDiscrepancy(
                    NULLABILITY_MISMATCH, name, _nullability(mine.nullable), _nullability(theirs.nullable)
                )
            )

    left_order = [c.name for c in left.columns if c.name in right_columns]
    right_order = [c.name for c in right.columns if c.name in left_columns]
    if left_order != right_order:
        found.append(
            SchemaDiscrepancy(COLUMN_ORDER, "columns", ", ".join(left_order), ", ".join(right_order))
        )

    left_indexes = {i.name: i for i in left.indexes}
    right_indexes = {i.name: i for i in right.indexes}

    for name in left_indexes.keys() - right_indexes.keys():
        found.append(SchemaDiscrepancy(MISSING_INDEX, name, _describe_index(left_indexes[name]), ABSENT))
    for name in right_indexes.keys() - left_indexes.keys():
        found.append(SchemaDiscrepancy(MISSING_INDEX, name, ABSENT, _describe_index(right_indexes[name])))

    for name in left_indexes.keys() & right_indexes.keys():
        if left_indexes[name] != right_indexes[name]:
            found.append(
                SchemaDiscrepancy(
                    INDEX_MISMATCH,
                    name,
                    _describe_index(left_indexes[name]),
                    _describe_index(right_indexes[name]),
                )
            )

    found.sort(key=lambda d: (d.kind, d.subject, d.left, d.right))
    return SchemaComparison(table=left.name, discrepancies=found)
