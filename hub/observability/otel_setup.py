"""
MCP Hub OpenTelemetry Setup

- Tracer provider with optional OTLP export
- One span per tool invocation; attributes stay anonymous
  (integration slug, tool name, outcome), never user id or arguments
"""
from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

TRACER_NAME = "mcp_hub"

_tracer: Optional[trace.Tracer] = None


def setup_otel(
    service_name: str = "mcp-hub",
    endpoint: Optional[str] = None,
) -> trace.Tracer:
    """Initialize OpenTelemetry, exporting over OTLP when an endpoint is set.

    The global tracer provider can only be set once per process, so later
    calls return the tracer from the first one.
    """
    global _tracer
    if _tracer is not None:
        return _tracer

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)

    if endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(TRACER_NAME)
    return _tracer


@contextmanager
def tool_call_span(
    integration_slug: str,
    tool_name: str,
    tracer: Optional[trace.Tracer] = None,
) -> Iterator[trace.Span]:
    """Span wrapping one integration call."""
    tracer = tracer or trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(
        "tool.call",
        attributes={
            "integration.slug": integration_slug,
            "tool.name": tool_name,
        },
    ) as span:
        yield span
