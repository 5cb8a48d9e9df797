"""
CLI command implementations.

- run: compare two servers and print the verdict
- report: re-render a saved JSON report
"""

import argparse
import logging
import os
from pathlib import Path

from ..config import DEFAULT_URL1, DatabaseURL, DiffConfig
from ..dialects import validate_identifier
from ..differ import diff_all_databases, diff_databases
from ..errors import ConfigError, DiffConnectionError
from ..models import RunReport
from ..report import (
    export_report_csv,
    export_report_json,
    generate_report,
    load_report,
    render_report,
)
from ..utils.metrics import MetricsPublisher
from ..utils.retry import RetryPolicy
from ..utils.tracing import initialize_tracing, shutdown_tracing

logger = logging.getLogger(__name__)

TRUE = "true"
FALSE = "false"


def _split_list(value: str, what: str) -> list[str]:
    items = [item.strip() for item in value.split(",") if item.strip()]
    if not items:
        raise ConfigError(f"{what} list is empty")
    return items


def resolve_url(
    value: str | None, env_var: str, flag: str, default: str | None = None
) -> DatabaseURL:
    """
    Parse a URL from its flag, then its environment variable, then ``default``

    Raises:
        ConfigError: If none is set or the URL is malformed
    """
    url = value or os.getenv(env_var) or default
    if not url:
        raise ConfigError(f"{flag} is required (or set {env_var})")
    return DatabaseURL.parse(url)


def build_config(args: argparse.Namespace) -> DiffConfig:
    """
    Translate run arguments into a validated DiffConfig

    Raises:
        ConfigError: If an option is invalid
    """
    tables = None
    if args.tables:
        try:
            tables = tuple(validate_identifier(t) for t in _split_list(args.tables, "table"))
        except ValueError as e:
            raise ConfigError(str(e)) from e

    return DiffConfig(
        chunk_size=args.chunk_size,
        concurrency=args.concurrency,
        fail_fast=not args.continue_on_error,
        narrow=not args.no_narrow,
        max_depth=args.max_depth,
        max_divergences=args.max_divergences,
        checksum_mode=args.checksum_mode,
        query_timeout=args.query_timeout,
        table_timeout=args.table_timeout,
        tables=tables,
        retry=RetryPolicy(max_retries=args.retries),
    ).validate()


def _write_report(run: RunReport, output: str, fmt: str) -> None:
    report = generate_report(run)
    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if fmt == "json":
        export_report_json(report, output_path)
    elif fmt == "csv":
        export_report_csv(report, output_path)
    else:
        output_path.write_text(render_report(report, "console") + "\n")

    logger.info(f"Report saved to {output_path} ({fmt})")


def _log_summary(run: RunReport) -> None:
    for message in run.discrepancies:
        logger.warning(message)

    for table in run.table_reports():
        if table.equal:
            continue
        logger.warning(
            f"{table.database}.{table.table}: {table.status.value}"
            + (f" ({table.error})" if table.error else "")
        )
        for text in table.schema_discrepancies:
            logger.info(f"  {text}")
        for divergence in table.divergences:
            where = divergence.key if divergence.key is not None else divergence.key_range
            logger.info(f"  {divergence.kind.value} {where} {divergence.detail}")


def cmd_run(args: argparse.Namespace) -> int:
    """
    Run a comparison and print the verdict

    Returns:
        0 for any comparison outcome, including unreachable servers

    Raises:
        ConfigError: On missing or malformed options (exit code 2)
    """
    url1 = resolve_url(args.url1, "DBDIFF_URL1", "--url1", default=DEFAULT_URL1)
    url2 = resolve_url(args.url2, "DBDIFF_URL2", "--url2")

    if not args.all_databases and not args.databases:
        raise ConfigError("select databases with --all-databases or --databases")
    databases = None if args.all_databases else _split_list(args.databases, "database")

    config = build_config(args)

    publisher = None
    if args.metrics_port:
        publisher = MetricsPublisher(port=args.metrics_port)
        try:
            publisher.start()
        except RuntimeError as e:
            logger.warning(f"Metrics disabled: {e}")

    if args.otlp_endpoint or args.trace_console:
        initialize_tracing(otlp_endpoint=args.otlp_endpoint, console_export=args.trace_console)

    logger.info(
        f"Comparing {url1.display()} with {url2.display()}: "
        f"{'all databases' if databases is None else ', '.join(databases)}"
    )

    try:
        if databases is None:
            run = diff_all_databases(url1, url2, config)
        else:
            run = diff_databases(url1, url2, databases, config)

    except DiffConnectionError as e:
        logger.error(f"Connection failed on side {e.side}: {e}", exc_info=True)
        print(FALSE)
        return 0

    finally:
        shutdown_tracing()
        if publisher is not None:
            publisher.stop()

    _log_summary(run)
    if args.output:
        _write_report(run, args.output, args.format)

    logger.info(f"Comparison finished: {'equal' if run.equal else 'not equal'}")
    print(TRUE if run.equal else FALSE)
    return 0


def cmd_report(args: argparse.Namespace) -> int:
    """
    Render a saved JSON report

    Returns:
        0 on success, 1 if the report cannot be read or written
    """
    logger.info(f"Loading report from {args.input}")

    try:
        report = load_report(args.input)
        text = render_report(report, args.format)

        if args.output:
            Path(args.output).write_text(text if text.endswith("\n") else text + "\n")
            logger.info(f"Report exported to {args.output}")
        else:
            print(text)

    except (OSError, ValueError) as e:
        logger.error(f"Failed to process report: {e}")
        return 1

    return 0
