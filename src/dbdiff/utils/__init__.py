"""
Utility modules for dbdiff

Provides:
- db_pool: Per-database connection pools
- logging: Structured logging setup
- metrics: Prometheus metrics
- retry: Retry policy for transient database failures
- tracing: OpenTelemetry spans
"""

__all__ = ["db_pool", "logging", "metrics", "retry", "tracing"]
