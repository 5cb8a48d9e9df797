"""
OpenTelemetry provider setup.

Tracing is opt-in: until initialize_tracing() installs an SDK provider,
get_tracer() hands out the API's proxy tracer, whose spans are no-ops.
Console spans are written to stderr; stdout only ever holds the verdict.
"""

import logging
import os
import sys

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "dbdiff"

_provider: TracerProvider | None = None


def _exporters(otlp_endpoint: str | None, console_export: bool) -> dict[str, SpanExporter]:
    exporters: dict[str, SpanExporter] = {}
    if otlp_endpoint:
        exporters["otlp"] = OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)
    if console_export:
        exporters["console"] = ConsoleSpanExporter(out=sys.stderr)
    return exporters


def initialize_tracing(
    otlp_endpoint: str | None = None,
    console_export: bool = False,
    sampling_rate: float = 1.0,
    service_name: str = "dbdiff",
) -> TracerProvider | None:
    """
    Install an SDK tracer provider with the requested exporters

    Args:
        otlp_endpoint: OTLP gRPC collector (e.g. "localhost:4317"); falls
            back to OTLP_ENDPOINT
        console_export: Also print spans to stderr; TRACE_CONSOLE=true has
            the same effect
        sampling_rate: Fraction of runs traced, 0.0-1.0
        service_name: ``service.name`` resource attribute

    Returns:
        The installed provider, or None when no exporter is configured
        (spans stay no-ops)
    """
    global _provider

    if _provider is not None:
        logger.warning("Tracing already initialized")
        return _provider

    otlp_endpoint = otlp_endpoint or os.getenv("OTLP_ENDPOINT")
    console_export = console_export or os.getenv("TRACE_CONSOLE", "").lower() == "true"

    exporters = _exporters(otlp_endpoint, console_export)
    if not exporters:
        logger.debug("No trace exporters configured, tracing stays disabled")
        return None

    provider = TracerProvider(
        resource=Resource(attributes={SERVICE_NAME: service_name}),
        sampler=ParentBased(TraceIdRatioBased(sampling_rate)),
    )
    for exporter in exporters.values():
        provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    _provider = provider

    logger.info(f"Tracing to {', '.join(exporters)} (sampling {sampling_rate:.0%})")
    return provider


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(INSTRUMENTATION_NAME)


def shutdown_tracing() -> None:
    """Flush pending spans and release the provider installed by initialize_tracing."""
    global _provider

    if _provider is None:
        return

    try:
        _provider.shutdown()
    finally:
        _provider = None
    logger.debug("Tracing shut down")
