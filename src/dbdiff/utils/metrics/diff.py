"""
Metric definitions for comparison runs.
"""

from prometheus_client import Counter, Gauge, Histogram

from . import get_or_create_metric

TABLES_COMPARED = get_or_create_metric(
    lambda: Counter(
        "dbdiff_tables_compared_total",
        "Tables compared, by outcome",
        ["status"],  # equal, not_equal, error, cancelled
    ),
    "dbdiff_tables_compared_total",
)

TABLE_SECONDS = get_or_create_metric(
    lambda: Histogram(
        "dbdiff_table_seconds",
        "Time to compare one table",
        buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600],
    ),
    "dbdiff_table_seconds",
)

CHUNKS_COMPARED = get_or_create_metric(
    lambda: Counter(
        "dbdiff_chunks_compared_total",
        "Chunk checksum pairs compared",
        ["result"],  # match, mismatch
    ),
    "dbdiff_chunks_compared_total",
)

CHECKSUM_SECONDS = get_or_create_metric(
    lambda: Histogram(
        "dbdiff_checksum_seconds",
        "Time to compute one chunk checksum",
        ["mode"],  # client, server
        buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    ),
    "dbdiff_checksum_seconds",
)

ROWS_CHECKSUMMED = get_or_create_metric(
    lambda: Counter(
        "dbdiff_rows_checksummed_total",
        "Rows folded into chunk checksums",
    ),
    "dbdiff_rows_checksummed_total",
)

NARROWING_STEPS = get_or_create_metric(
    lambda: Counter(
        "dbdiff_narrowing_steps_total",
        "Range bisections performed while localizing differences",
    ),
    "dbdiff_narrowing_steps_total",
)

READ_RETRIES = get_or_create_metric(
    lambda: Counter(
        "dbdiff_read_retries_total",
        "Retried database reads",
        ["operation"],  # introspect, partition, checksum
    ),
    "dbdiff_read_retries_total",
)

RUNNER_QUEUE_SIZE = get_or_create_metric(
    lambda: Gauge(
        "dbdiff_runner_queue_size",
        "Tables waiting for or under comparison",
    ),
    "dbdiff_runner_queue_size",
)

RUNNER_ACTIVE_WORKERS = get_or_create_metric(
    lambda: Gauge(
        "dbdiff_runner_active_workers",
        "Workers currently comparing a table",
    ),
    "dbdiff_runner_active_workers",
)
