"""
Prometheus exporter for the lifetime of one run.

A comparison of large databases can take hours; while it runs, the
exporter lets a scraper follow chunk and table progress on /metrics.
"""

import logging

from prometheus_client import REGISTRY, CollectorRegistry, start_http_server

logger = logging.getLogger(__name__)


class MetricsPublisher:
    """
    Serves the registry over HTTP between start() and stop().

    Usage:
        with MetricsPublisher(port=9091):
            run = diff_databases(url1, url2, ["shop"], config)
    """

    def __init__(self, port: int = 9091, addr: str = "0.0.0.0", registry: CollectorRegistry | None = None):
        self.port = port
        self.addr = addr
        self.registry = registry or REGISTRY
        self._server = None
        self._thread = None

    @property
    def started(self) -> bool:
        return self._server is not None

    def start(self) -> None:
        """
        Start serving

        Raises:
            RuntimeError: If the port cannot be bound
        """
        if self.started:
            logger.warning(f"Metrics server already running on port {self.port}")
            return

        try:
            self._server, self._thread = start_http_server(self.port, addr=self.addr, registry=self.registry)
        except OSError as e:
            raise RuntimeError(f"Metrics server port {self.port} is unavailable: {e}") from e

        logger.info(f"Serving metrics on http://{self.addr}:{self.port}/metrics")

    def stop(self) -> None:
        if not self.started:
            return

        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._server = self._thread = None
        logger.debug(f"Metrics server on port {self.port} stopped")

    def __enter__(self) -> "MetricsPublisher":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
