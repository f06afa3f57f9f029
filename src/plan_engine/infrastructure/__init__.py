"""Infrastructure layer - cross-cutting concerns."""

from plan_engine.infrastructure.config import Config, get_config
from plan_engine.infrastructure.logging import setup_logging, get_logger, plan_log_context
from plan_engine.infrastructure.metrics import setup_metrics, get_metrics, MetricsRegistry
from plan_engine.infrastructure.tracing import (
    setup_tracing,
    get_tracer,
    pipeline_attributes,
    trace_span,
)

__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "get_logger",
    "plan_log_context",
    "setup_metrics",
    "get_metrics",
    "MetricsRegistry",
    "setup_tracing",
    "get_tracer",
    "pipeline_attributes",
    "trace_span",
]
