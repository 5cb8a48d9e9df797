"""
Report generation and formatting.

Turns a RunReport into a summary dictionary and renders it as JSON, CSV
or console text.
"""

from .formatters import (
    export_report_csv,
    export_report_json,
    format_report_console,
    format_report_csv,
    format_report_json,
    load_report,
    render_report,
)
from .generator import DiscrepancyType, generate_report

__all__ = [
    "DiscrepancyType",
    "generate_report",
    "export_report_json",
    "export_report_csv",
    "format_report_console",
    "format_report_csv",
    "format_report_json",
    "load_report",
    "render_report",
]
