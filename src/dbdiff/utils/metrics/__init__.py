"""
Prometheus metrics for dbdiff

Usage:
    from dbdiff.utils.metrics import MetricsPublisher, CHUNKS_COMPARED

    MetricsPublisher(port=9091).start()
    CHUNKS_COMPARED.labels(result="match").inc()
"""

import logging
from collections.abc import Callable
from typing import TypeVar

from prometheus_client import REGISTRY, CollectorRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_or_create_metric(
    metric_factory: Callable[[], T],
    metric_name: str,
    registry: CollectorRegistry = REGISTRY,
) -> T:
    """
    Create a metric or return the one already registered under that name.

    Module reloads (and test runs importing modules twice) would otherwise
    fail with "Duplicated timeseries in CollectorRegistry".

    Args:
        metric_factory: Callable that creates the metric (e.g., lambda: Counter(...))
        metric_name: Name of the metric for lookup if already registered
        registry: Prometheus registry to use (default: global REGISTRY)

    Returns:
        The metric instance (either newly created or existing)
    """
    try:
        return metric_factory()
    except ValueError:
        existing = registry._names_to_collectors.get(metric_name)
        if existing is not None:
            return existing
        raise


from .diff import (  # noqa: E402
    CHECKSUM_SECONDS,
    CHUNKS_COMPARED,
    NARROWING_STEPS,
    READ_RETRIES,
    ROWS_CHECKSUMMED,
    RUNNER_ACTIVE_WORKERS,
    RUNNER_QUEUE_SIZE,
    TABLE_SECONDS,
    TABLES_COMPARED,
)
from .publisher import MetricsPublisher  # noqa: E402

__all__ = [
    "MetricsPublisher",
    "get_or_create_metric",
    "TABLES_COMPARED",
    "TABLE_SECONDS",
    "CHUNKS_COMPARED",
    "CHECKSUM_SECONDS",
    "ROWS_CHECKSUMMED",
    "NARROWING_STEPS",
    "READ_RETRIES",
    "RUNNER_QUEUE_SIZE",
    "RUNNER_ACTIVE_WORKERS",
]
