"""
Report generation from comparison results.

generate_report turns a RunReport into a plain dictionary with an overall
status, per-table discrepancy records and recommendations. The same
dictionary is what the JSON export writes and what load_report reads back.
"""

from collections import Counter
from datetime import UTC, datetime
from typing import Any

from ..models import RunReport, TableReport, TableStatus

# Divergences listed per table in a report; the rest are only counted
MAX_LISTED_DIVERGENCES = 20


class DiscrepancyType:
    """Constants for discrepancy types."""

    DATABASE_SET_MISMATCH = "DATABASE_SET_MISMATCH"
    SCHEMA_MISMATCH = "SCHEMA_MISMATCH"
    DATA_MISMATCH = "DATA_MISMATCH"
    COMPARISON_ERROR = "COMPARISON_ERROR"
    CANCELLED = "CANCELLED"


def _calculate_severity(row_count: int, divergent: int) -> str:
    """
    Severity of a data mismatch from the share of divergent rows or ranges

    Args:
        row_count: Rows on side 1
        divergent: Number of divergences found

    Returns:
        Severity level: LOW, MEDIUM, HIGH, or CRITICAL
    """
    if row_count == 0:
        return "LOW" if divergent == 0 else "CRITICAL"

    percentage = (divergent / row_count) * 100

    if percentage < 0.1:
        return "LOW"
    elif percentage < 1.0:
        return "MEDIUM"
    elif percentage < 10.0:
        return "HIGH"
    else:
        return "CRITICAL"


def _table_discrepancy(table: TableReport) -> dict[str, Any] | None:
    base = {"database": table.database, "table": table.table, "status": table.status.value}

    if table.status is TableStatus.EQUAL:
        return None

    if table.status is TableStatus.ERROR:
        return {
            **base,
            "issue_type": DiscrepancyType.COMPARISON_ERROR,
            "severity": "HIGH",
            "details": {"error": table.error, "error_type": table.error_type},
        }

    if table.status is TableStatus.CANCELLED:
        return {
            **base,
            "issue_type": DiscrepancyType.CANCELLED,
            "severity": "LOW",
            "details": {"reason": table.error},
        }

    if table.schema_discrepancies:
        return {
            **base,
            "issue_type": DiscrepancyType.SCHEMA_MISMATCH,
            "severity": "CRITICAL",
            "details": {"schema_discrepancies": list(table.schema_discrepancies)},
        }

    rows1, rows2 = table.row_counts or (0, 0)
    kinds = Counter(d.kind.value for d in table.divergences)
    return {
        **base,
        "issue_type": DiscrepancyType.DATA_MISMATCH,
        "severity": _calculate_severity(rows1, len(table.divergences)),
        "details": {
            "side1_rows": rows1,
            "side2_rows": rows2,
            "divergences_by_kind": dict(sorted(kinds.items())),
            "divergences": [d.to_dict() for d in table.divergences[:MAX_LISTED_DIVERGENCES]],
        },
    }


def generate_report(run: RunReport) -> dict[str, Any]:
    """
    Generate a report dictionary from a RunReport

    Returns:
        Dictionary containing:
        - status: PASS, FAIL, or NO_DATA
        - equal: the run verdict
        - total_databases / total_tables
        - tables_equal / tables_not_equal / tables_error / tables_cancelled
        - discrepancies: one record per unequal table or run-level mismatch
        - summary: Human-readable summary
        - recommendations: List of recommended actions
        - side1_total_rows / side2_total_rows
        - tables: every TableReport as a dictionary
        - started_at, finished_at, timestamp
    """
    tables = run.table_reports()
    statuses = Counter(t.status for t in tables)

    discrepancies = [
        {
            "database": "",
            "table": "",
            "status": TableStatus.NOT_EQUAL.value,
            "issue_type": DiscrepancyType.DATABASE_SET_MISMATCH,
            "severity": "CRITICAL",
            "details": {"description": text},
        }
        for text in run.discrepancies
    ]
    for table in tables:
        record = _table_discrepancy(table)
        if record is not None:
            discrepancies.append(record)

    if not tables and not run.discrepancies:
        status = "NO_DATA"
    else:
        status = "PASS" if run.equal else "FAIL"

    report = {
        "status": status,
        "equal": run.equal,
        "total_databases": len(run.databases),
        "total_tables": len(tables),
        "tables_equal": statuses[TableStatus.EQUAL],
        "tables_not_equal": statuses[TableStatus.NOT_EQUAL],
        "tables_error": statuses[TableStatus.ERROR],
        "tables_cancelled": statuses[TableStatus.CANCELLED],
        "discrepancies": discrepancies,
        "summary": "",
        "recommendations": [],
        "side1_total_rows": sum(t.row_counts[0] for t in tables if t.row_counts),
        "side2_total_rows": sum(t.row_counts[1] for t in tables if t.row_counts),
        "tables": [t.to_dict() for t in tables],
        "started_at": run.started_at.isoformat(),
        "finished_at": run.finished_at.isoformat() if run.finished_at else None,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    report["summary"] = _generate_summary(report)
    report["recommendations"] = _generate_recommendations(discrepancies)
    return report


def _generate_summary(report: dict[str, Any]) -> str:
    if report["status"] == "NO_DATA":
        return "No tables were compared"

    if report["equal"]:
        return (
            f"All {report['total_tables']} tables in {report['total_databases']} "
            f"database(s) are equal on both sides."
        )

    parts = []
    if report["tables_not_equal"]:
        parts.append(f"{report['tables_not_equal']} differ")
    if report["tables_error"]:
        parts.append(f"{report['tables_error']} failed")
    if report["tables_cancelled"]:
        parts.append(f"{report['tables_cancelled']} were cancelled")

    if not parts:
        return "The two sides hold different sets of databases."
    return f"Of {report['total_tables']} tables, " + ", ".join(parts) + "."


def _generate_recommendations(discrepancies: list[dict[str, Any]]) -> list[str]:
    """
    Actionable recommendations for the discrepancies found

    Returns:
        List of recommendation strings
    """
    if not discrepancies:
        return ["Both sides are consistent. No action needed."]

    by_type = Counter(d["issue_type"] for d in discrepancies)
    recommendations = []

    if by_type[DiscrepancyType.DATABASE_SET_MISMATCH]:
        recommendations.append(
            "The servers hold different databases. Create or drop databases so both "
            "sides match, or compare an explicit list with --databases."
        )

    if by_type[DiscrepancyType.SCHEMA_MISMATCH]:
        recommendations.append(
            f"{by_type[DiscrepancyType.SCHEMA_MISMATCH]} table(s) differ in structure. "
            "Apply pending migrations before comparing row data."
        )

    if by_type[DiscrepancyType.DATA_MISMATCH]:
        missing = extra = 0
        for d in discrepancies:
            kinds = d["details"].get("divergences_by_kind", {})
            missing += kinds.get("MISSING", 0)
            extra += kinds.get("EXTRA", 0)

        recommendations.append(
            f"{by_type[DiscrepancyType.DATA_MISMATCH]} table(s) hold different rows. "
            "Inspect the listed keys and ranges on both sides."
        )
        if missing:
            recommendations.append(
                f"{missing} key(s) exist only on side 1. Check replication lag or failed copies."
            )
        if extra:
            recommendations.append(
                f"{extra} key(s) exist only on side 2. Look for writes applied to the copy only."
            )

    if by_type[DiscrepancyType.COMPARISON_ERROR]:
        recommendations.append(
            "Some tables could not be compared. Check that they exist on both sides and "
            "rerun with --log-level debug for the failing queries."
        )

    if by_type[DiscrepancyType.CANCELLED]:
        recommendations.append(
            "Tables were skipped after the first difference. Use --continue-on-error to "
            "compare every table."
        )

    return recommendations
