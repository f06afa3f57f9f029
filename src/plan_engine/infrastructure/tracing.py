"""OpenTelemetry tracing for pipeline compilation and execution.

Spans are named ``plan.<step>`` and carry ``plan.*`` attributes describing
the pipeline; see :func:`pipeline_attributes`. Until :func:`setup_tracing`
runs, the OpenTelemetry API hands out no-op spans.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Generator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

if TYPE_CHECKING:
    from plan_engine.domain.entities.operators import Pipeline

_tracer: trace.Tracer | None = None


def setup_tracing(
    service_name: str = "plan_engine",
    otlp_endpoint: str | None = None,
    console_export: bool = False,
) -> trace.Tracer:
    """
    Install a tracer provider exporting plan spans.

    Args:
        service_name: Service name recorded on every span
        otlp_endpoint: OTLP collector endpoint (e.g., "http://localhost:4317");
            spans are only exported when set
        console_export: Also print finished spans to stdout

    Returns:
        The tracer used by :func:`trace_span`
    """
    global _tracer

    from plan_engine import __version__

    provider = TracerProvider(
        resource=Resource.create(
            {"service.name": service_name, "service.version": __version__}
        )
    )
    if otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
        )
    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(service_name)
    return _tracer


def get_tracer() -> trace.Tracer:
    """Tracer for plan spans (a no-op tracer until configured)."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer("plan_engine")
    return _tracer


def pipeline_attributes(pipeline: Pipeline, **extra: Any) -> dict[str, Any]:
    """Span attributes describing ``pipeline``.

    ``extra`` keys are added under the ``plan.`` prefix.

    Example:
        >>> pipeline_attributes(p, dialect="reference")
        {'plan.table': 'd', 'plan.nodes': 2, 'plan.materialized': False,
         'plan.dialect': 'reference'}
    """
    attributes: dict[str, Any] = {
        "plan.table": pipeline.source_table.name,
        "plan.nodes": len(pipeline.operators()),
        "plan.materialized": pipeline.is_terminated,
    }
    attributes.update({f"plan.{key}": value for key, value in extra.items()})
    return attributes


@contextmanager
def trace_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[trace.Span, None, None]:
    """
    Context manager for creating a trace span.

    Attribute values of None are skipped; OpenTelemetry rejects them.
    Exceptions leaving the block are recorded on the span and re-raised.

    Args:
        name: Name of the span
        attributes: Optional attributes to add to the span

    Yields:
        The created span
    """
    with get_tracer().start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        yield span
