"""
Distributed tracing using OpenTelemetry.

Instruments:
- Table comparisons
- Schema introspection and range partitioning
- Chunk checksum queries
- Connection pool acquisition
"""

from .context import add_span_attributes, add_span_event, trace_operation
from .tracer import get_tracer, initialize_tracing, shutdown_tracing

__all__ = [
    "initialize_tracing",
    "get_tracer",
    "shutdown_tracing",
    "trace_operation",
    "add_span_attributes",
    "add_span_event",
]
