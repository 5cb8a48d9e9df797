"""
Unit tests for dbdiff.utils.metrics

Covers idempotent metric registration, the metric definitions used by
the comparison engine and the MetricsPublisher HTTP server.
"""

from unittest.mock import Mock, patch

import pytest
from prometheus_client import REGISTRY, CollectorRegistry, Counter

from dbdiff.utils.metrics import (
    CHECKSUM_SECONDS,
    CHUNKS_COMPARED,
    READ_RETRIES,
    TABLES_COMPARED,
    MetricsPublisher,
    get_or_create_metric,
)


def sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestGetOrCreateMetric:
    """Test get_or_create_metric helper"""

    def test_creates_new_metric(self):
        # Arrange
        registry = CollectorRegistry()

        # Act
        metric = get_or_create_metric(
            lambda: Counter("test_created_total", "help", registry=registry),
            "test_created_total",
            registry,
        )

        # Assert
        assert isinstance(metric, Counter)

    def test_returns_existing_metric_on_duplicate(self):
        registry = CollectorRegistry()

        def factory():
            return Counter("test_dup_total", "help", registry=registry)

        first = get_or_create_metric(factory, "test_dup_total", registry)
        second = get_or_create_metric(factory, "test_dup_total", registry)

        assert second is first

    def test_unrelated_value_error_propagates(self):
        registry = CollectorRegistry()

        def broken():
            raise ValueError("bad metric definition")

        with pytest.raises(ValueError, match="bad metric definition"):
            get_or_create_metric(broken, "never_registered", registry)


class TestDiffMetrics:
    """Metric definitions used by the engine"""

    def test_tables_compared_by_status(self):
        before = sample("dbdiff_tables_compared_total", {"status": "equal"})

        TABLES_COMPARED.labels(status="equal").inc()

        assert sample("dbdiff_tables_compared_total", {"status": "equal"}) == before + 1

    def test_chunks_compared_by_result(self):
        before = sample("dbdiff_chunks_compared_total", {"result": "mismatch"})

        CHUNKS_COMPARED.labels(result="mismatch").inc(2)

        assert sample("dbdiff_chunks_compared_total", {"result": "mismatch"}) == before + 2

    def test_checksum_histogram_by_mode(self):
        before = sample("dbdiff_checksum_seconds_count", {"mode": "client"})

        CHECKSUM_SECONDS.labels(mode="client").observe(0.02)

        assert sample("dbdiff_checksum_seconds_count", {"mode": "client"}) == before + 1

    def test_read_retries_by_operation(self):
        before = sample("dbdiff_read_retries_total", {"operation": "checksum"})

        READ_RETRIES.labels(operation="checksum").inc()

        assert sample("dbdiff_read_retries_total", {"operation": "checksum"}) == before + 1


class TestMetricsPublisher:
    """Test MetricsPublisher class"""

    @pytest.fixture
    def mock_start_http_server(self):
        with patch("dbdiff.utils.metrics.publisher.start_http_server") as mock_start:
            mock_start.return_value = (Mock(), Mock())
            yield mock_start

    def test_init_defaults(self):
        # Arrange & Act
        publisher = MetricsPublisher()

        # Assert
        assert publisher.port == 9091
        assert publisher.registry is REGISTRY
        assert publisher.started is False

    def test_init_with_custom_registry(self):
        custom_registry = CollectorRegistry()

        publisher = MetricsPublisher(port=8080, registry=custom_registry)

        assert publisher.registry is custom_registry

    def test_start(self, mock_start_http_server):
        # Arrange
        publisher = MetricsPublisher(port=9100)

        # Act
        publisher.start()

        # Assert
        mock_start_http_server.assert_called_once_with(9100, addr="0.0.0.0", registry=REGISTRY)
        assert publisher.started is True

    def test_start_twice_is_noop(self, mock_start_http_server):
        publisher = MetricsPublisher(port=9100)

        publisher.start()
        publisher.start()

        mock_start_http_server.assert_called_once()

    def test_port_in_use_raises_runtime_error(self, mock_start_http_server):
        # Arrange
        mock_start_http_server.side_effect = OSError("Address already in use")
        publisher = MetricsPublisher(port=9100)

        # Act & Assert
        with pytest.raises(RuntimeError, match="port 9100 is unavailable"):
            publisher.start()
        assert publisher.started is False

    def test_stop_shuts_server_down(self, mock_start_http_server):
        server, thread = mock_start_http_server.return_value
        publisher = MetricsPublisher(port=9100)
        publisher.start()

        publisher.stop()

        server.shutdown.assert_called_once()
        server.server_close.assert_called_once()
        thread.join.assert_called_once_with(timeout=5)
        assert publisher.started is False

    def test_stop_without_start(self):
        MetricsPublisher().stop()

    def test_context_manager(self, mock_start_http_server):
        server, _ = mock_start_http_server.return_value

        with MetricsPublisher(port=9100) as publisher:
            assert publisher.started

        server.shutdown.assert_called_once()
