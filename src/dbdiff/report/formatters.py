"""
Report formatting and export utilities.

Exports a generated report as JSON, CSV or console text, and reads a
saved JSON report back for re-rendering.
"""

import csv
import io
import json
from pathlib import Path
from typing import Any

REQUIRED_KEYS = ("status", "equal", "discrepancies", "tables")

CSV_HEADER = [
    "Database",
    "Table",
    "Status",
    "Issue Type",
    "Severity",
    "Side 1 Rows",
    "Side 2 Rows",
    "Details",
]


def export_report_json(report: dict[str, Any], output_path: str | Path) -> None:
    """
    Export report to JSON file

    Args:
        report: Report dictionary
        output_path: Path to output file
    """
    with open(output_path, "w") as f:
        json.dump(report, f, indent=2, default=str)


def format_report_json(report: dict[str, Any]) -> str:
    return json.dumps(report, indent=2, default=str)


def _csv_details(discrepancy: dict[str, Any]) -> str:
    details = dict(discrepancy.get("details", {}))
    details.pop("divergences", None)
    details.pop("side1_rows", None)
    details.pop("side2_rows", None)
    return json.dumps(details, sort_keys=True, default=str)


def write_report_csv(report: dict[str, Any], stream) -> None:
    """One CSV row per discrepancy."""
    writer = csv.writer(stream)
    writer.writerow(CSV_HEADER)

    for discrepancy in report.get("discrepancies", []):
        details = discrepancy.get("details", {})
        writer.writerow([
            discrepancy.get("database", ""),
            discrepancy.get("table", ""),
            discrepancy.get("status", ""),
            discrepancy.get("issue_type", ""),
            discrepancy.get("severity", ""),
            details.get("side1_rows", ""),
            details.get("side2_rows", ""),
            _csv_details(discrepancy),
        ])


def export_report_csv(report: dict[str, Any], output_path: str | Path) -> None:
    """
    Export report to CSV file

    Args:
        report: Report dictionary
        output_path: Path to output file
    """
    with open(output_path, "w", newline="") as f:
        write_report_csv(report, f)


def format_report_csv(report: dict[str, Any]) -> str:
    buffer = io.StringIO()
    write_report_csv(report, buffer)
    return buffer.getvalue()


def format_report_console(report: dict[str, Any]) -> str:
    """
    Format report for console output

    Args:
        report: Report dictionary

    Returns:
        Formatted string for console display
    """
    lines = []

    lines.append("=" * 80)
    lines.append("DBDIFF REPORT")
    lines.append("=" * 80)
    lines.append(f"Status: {report['status']}")
    lines.append(f"Started: {report.get('started_at')}")
    lines.append(f"Finished: {report.get('finished_at')}")
    lines.append(f"Databases: {report.get('total_databases', 0)}")
    lines.append(f"Tables: {report.get('total_tables', 0)}")
    lines.append(f"  Equal: {report.get('tables_equal', 0)}")
    lines.append(f"  Not equal: {report.get('tables_not_equal', 0)}")
    lines.append(f"  Errors: {report.get('tables_error', 0)}")
    lines.append(f"  Cancelled: {report.get('tables_cancelled', 0)}")
    lines.append(f"Side 1 Total Rows: {report.get('side1_total_rows', 0):,}")
    lines.append(f"Side 2 Total Rows: {report.get('side2_total_rows', 0):,}")
    lines.append("")

    lines.append("SUMMARY")
    lines.append("-" * 80)
    lines.append(report.get("summary", ""))
    lines.append("")

    if report["discrepancies"]:
        lines.append("DISCREPANCIES")
        lines.append("-" * 80)

        for disc in report["discrepancies"]:
            name = ".".join(part for part in (disc.get("database"), disc.get("table")) if part)
            lines.append(f"{name or '(run)'}")
            lines.append(f"  Issue: {disc['issue_type']}")
            lines.append(f"  Severity: {disc['severity']}")

            details = disc.get("details", {})
            for text in details.get("schema_discrepancies", []):
                lines.append(f"  - {text}")
            for div in details.get("divergences", []):
                key = div.get("key")
                where = f"key {key}" if key is not None else f"range {div['range']}"
                lines.append(f"  - {div['kind']} {where} {div.get('detail', '')}".rstrip())
            for field in ("description", "error", "reason"):
                if details.get(field):
                    lines.append(f"  {field.capitalize()}: {details[field]}")
            lines.append("")

    if report.get("recommendations"):
        lines.append("RECOMMENDATIONS")
        lines.append("-" * 80)
        for i, rec in enumerate(report["recommendations"], 1):
            lines.append(f"{i}. {rec}")
        lines.append("")

    lines.append("=" * 80)

    return "\n".join(lines)


FORMATTERS = {
    "json": format_report_json,
    "csv": format_report_csv,
    "console": format_report_console,
}


def render_report(report: dict[str, Any], fmt: str) -> str:
    """
    Render a report in one of the supported formats

    Raises:
        ValueError: If the format is unknown
    """
    try:
        return FORMATTERS[fmt](report)
    except KeyError:
        raise ValueError(f"Unknown report format: {fmt}") from None


def load_report(path: str | Path) -> dict[str, Any]:
    """
    Read a report saved by export_report_json

    Raises:
        ValueError: If the file is not a dbdiff JSON report
    """
    with open(path) as f:
        try:
            report = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"{path} is not valid JSON: {e}") from e

    if not isinstance(report, dict) or any(key not in report for key in REQUIRED_KEYS):
        raise ValueError(f"{path} is not a dbdiff report (expected keys: {', '.join(REQUIRED_KEYS)})")
    return report
