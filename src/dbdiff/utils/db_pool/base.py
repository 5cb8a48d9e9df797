"""
Base classes for per-database connection pooling.

One pool serves one database on one side of a comparison. Connections are
created lazily up to ``max_size``, health-checked on acquire and recycled
once they exceed ``max_lifetime``.
"""

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from queue import Empty, Queue
from typing import Any

from opentelemetry import trace
from prometheus_client import Counter, Gauge, Histogram

from ..metrics import get_or_create_metric
from ..tracing import trace_operation

logger = logging.getLogger(__name__)


CONNECTION_POOL_SIZE = get_or_create_metric(
    lambda: Gauge(
        "dbdiff_connection_pool_size",
        "Open connections in a pool",
        ["database_type", "pool_name"],
    ),
    "dbdiff_connection_pool_size",
)

CONNECTION_POOL_WAITS = get_or_create_metric(
    lambda: Counter(
        "dbdiff_connection_pool_waits_total",
        "Connection requests that had to wait for a free connection",
        ["database_type", "pool_name"],
    ),
    "dbdiff_connection_pool_waits_total",
)

CONNECTION_POOL_ERRORS = get_or_create_metric(
    lambda: Counter(
        "dbdiff_connection_pool_errors_total",
        "Connection pool errors",
        ["database_type", "pool_name", "error_type"],
    ),
    "dbdiff_connection_pool_errors_total",
)

CONNECTION_ACQUIRE_TIME = get_or_create_metric(
    lambda: Histogram(
        "dbdiff_connection_acquire_seconds",
        "Time to acquire a connection from a pool",
        ["database_type", "pool_name"],
        buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    ),
    "dbdiff_connection_acquire_seconds",
)


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class PooledConnection:
    """Wrapper for a pooled database connection with metadata."""

    connection: Any
    created_at: datetime
    last_used: datetime
    use_count: int = 0

    def mark_used(self) -> None:
        self.last_used = _now()
        self.use_count += 1


class ConnectionPoolError(Exception):
    """Base exception for connection pool errors."""


class PoolExhaustedError(ConnectionPoolError):
    """Raised when no connection becomes free within the acquire timeout."""


class PoolClosedError(ConnectionPoolError):
    """Raised when attempting to use a closed pool."""


class BaseConnectionPool:
    """
    Base class for database connection pools.

    Subclasses implement ``_create_connection``, ``_is_connection_healthy``,
    ``_close_connection`` and ``_get_db_type``.
    """

    def __init__(
        self,
        max_size: int = 4,
        max_lifetime: int = 3600,
        acquire_timeout: float = 30.0,
        query_timeout: float | None = None,
        pool_name: str = "default",
    ):
        """
        Initialize connection pool.

        Args:
            max_size: Maximum number of connections allowed
            max_lifetime: Maximum connection lifetime in seconds
            acquire_timeout: Timeout for acquiring a connection in seconds
            query_timeout: Per-statement timeout applied to new connections
            pool_name: Name of the pool for metrics
        """
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")

        self.max_size = max_size
        self.max_lifetime = timedelta(seconds=max_lifetime)
        self.acquire_timeout = acquire_timeout
        self.query_timeout = query_timeout
        self.pool_name = pool_name

        self._pool: Queue[PooledConnection] = Queue(maxsize=max_size)
        self._all_connections: list[PooledConnection] = []
        self._lock = threading.RLock()
        self._closed = False

        logger.debug(
            f"Initialized {self.__class__.__name__} '{pool_name}' (max={max_size})"
        )

    def _create_connection(self) -> Any:
        """Create a new database connection. Must be implemented by subclasses."""
        raise NotImplementedError

    def _is_connection_healthy(self, conn: Any) -> bool:
        """Check if connection is healthy. Must be implemented by subclasses."""
        raise NotImplementedError

    def _close_connection(self, conn: Any) -> None:
        """Close a database connection. Must be implemented by subclasses."""
        raise NotImplementedError

    def _get_db_type(self) -> str:
        """Get database type for metrics. Must be implemented by subclasses."""
        raise NotImplementedError

    def _check_connection_health(self, pooled_conn: PooledConnection) -> bool:
        if _now() - pooled_conn.created_at > self.max_lifetime:
            logger.debug("Connection exceeded max lifetime, recycling")
            return False

        try:
            return self._is_connection_healthy(pooled_conn.connection)
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            CONNECTION_POOL_ERRORS.labels(
                database_type=self._get_db_type(),
                pool_name=self.pool_name,
                error_type="health_check",
            ).inc()
            return False

    def _recycle_connection(self, pooled_conn: PooledConnection) -> None:
        """Close and remove a connection from the pool."""
        try:
            self._close_connection(pooled_conn.connection)
        except Exception as e:
            logger.warning(f"Error closing connection: {e}")
        finally:
            with self._lock:
                if pooled_conn in self._all_connections:
                    self._all_connections.remove(pooled_conn)
                self._update_metrics()

    def _open_new(self) -> PooledConnection:
        """Open a connection and register it; the caller holds the lock."""
        conn = self._create_connection()
        now = _now()
        pooled_conn = PooledConnection(connection=conn, created_at=now, last_used=now)
        self._all_connections.append(pooled_conn)
        self._update_metrics()
        logger.debug(f"Opened connection {len(self._all_connections)}/{self.max_size} "
                     f"for pool '{self.pool_name}'")
        return pooled_conn

    def _update_metrics(self) -> None:
        CONNECTION_POOL_SIZE.labels(
            database_type=self._get_db_type(), pool_name=self.pool_name
        ).set(len(self._all_connections))

    def _take(self, start_time: float) -> PooledConnection:
        """Get an idle connection, open a new one, or wait for one to be released."""
        while True:
            try:
                return self._pool.get_nowait()
            except Empty:
                pass

            with self._lock:
                if len(self._all_connections) < self.max_size:
                    try:
                        return self._open_new()
                    except Exception:
                        CONNECTION_POOL_ERRORS.labels(
                            database_type=self._get_db_type(),
                            pool_name=self.pool_name,
                            error_type="creation",
                        ).inc()
                        raise

            CONNECTION_POOL_WAITS.labels(
                database_type=self._get_db_type(), pool_name=self.pool_name
            ).inc()

            remaining = self.acquire_timeout - (time.time() - start_time)
            if remaining <= 0:
                raise PoolExhaustedError(
                    f"No connection available within {self.acquire_timeout}s"
                )
            try:
                return self._pool.get(timeout=min(remaining, 0.5))
            except Empty:
                continue

    @contextmanager
    def acquire(self) -> Iterator[Any]:
        """
        Acquire a connection from the pool.

        Yields:
            Database connection

        Raises:
            PoolClosedError: If pool is closed
            PoolExhaustedError: If no connection available within timeout
        """
        if self._closed:
            raise PoolClosedError("Connection pool is closed")

        start_time = time.time()

        with trace_operation(
            "db_pool_acquire",
            kind=trace.SpanKind.CLIENT,
            database_type=self._get_db_type(),
            pool_name=self.pool_name,
        ):
            while True:
                pooled_conn = self._take(start_time)
                if self._check_connection_health(pooled_conn):
                    break
                logger.info("Connection unhealthy, recycling and retrying")
                self._recycle_connection(pooled_conn)
                if time.time() - start_time > self.acquire_timeout:
                    raise PoolExhaustedError(
                        f"No healthy connection available within {self.acquire_timeout}s"
                    )

            pooled_conn.mark_used()
            CONNECTION_ACQUIRE_TIME.labels(
                database_type=self._get_db_type(), pool_name=self.pool_name
            ).observe(time.time() - start_time)

        try:
            yield pooled_conn.connection
        except BaseException:
            # The connection may be mid-statement or in a failed transaction
            self._recycle_connection(pooled_conn)
            raise
        else:
            if self._closed:
                self._recycle_connection(pooled_conn)
            else:
                self._pool.put_nowait(pooled_conn)

    def close(self) -> None:
        """Close all connections and shut the pool down."""
        if self._closed:
            return

        logger.debug(f"Closing connection pool '{self.pool_name}'")
        self._closed = True

        with self._lock:
            for pooled_conn in self._all_connections:
                try:
                    self._close_connection(pooled_conn.connection)
                except Exception as e:
                    logger.warning(f"Error closing connection: {e}")

            self._all_connections.clear()

            while True:
                try:
                    self._pool.get_nowait()
                except Empty:
                    break

            self._update_metrics()

    @property
    def closed(self) -> bool:
        return self._closed

    def get_stats(self) -> dict[str, Any]:
        """Get pool statistics."""
        with self._lock:
            total_size = len(self._all_connections)
            idle_size = self._pool.qsize()

            return {
                "pool_name": self.pool_name,
                "total_connections": total_size,
                "idle_connections": idle_size,
                "active_connections": total_size - idle_size,
                "max_size": self.max_size,
                "closed": self._closed,
            }

    def __enter__(self) -> "BaseConnectionPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
