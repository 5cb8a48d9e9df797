"""
Span helpers used across the engine.

trace_operation wraps one unit of work (a table, a chunk checksum, a
connect) in a span; the add_* helpers annotate whatever span is current.
"""

from contextlib import contextmanager

from opentelemetry import trace

from .tracer import get_tracer


def _attribute(value):
    # Span attributes only accept primitives
    if isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


@contextmanager
def trace_operation(operation_name: str, kind: trace.SpanKind = trace.SpanKind.INTERNAL, **attributes):
    """
    Run the body inside a span named ``operation_name``.

    None-valued attributes are skipped. An exception escaping the body is
    recorded on the span, marks it as an error and is re-raised.

    Example:
        >>> with trace_operation("compare_table", database="shop", table="orders") as span:
        ...     report = differ.compare("orders")
        ...     span.set_attribute("status", report.status.value)
    """
    with get_tracer().start_as_current_span(
        operation_name, kind=kind, record_exception=False, set_status_on_exception=False
    ) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, _attribute(value))

        try:
            yield span
        except Exception as e:
            span.set_status(trace.Status(trace.StatusCode.ERROR, f"{type(e).__name__}: {e}"))
            span.record_exception(e)
            raise


def add_span_attributes(**attributes) -> None:
    """Set attributes on the current span, if it is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, _attribute(value))


def add_span_event(name: str, **attributes) -> None:
    """Record a point-in-time event, such as one narrowing split, on the current span."""
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes={k: _attribute(v) for k, v in attributes.items() if v is not None})
