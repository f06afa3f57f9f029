"""Prometheus metrics for the plan engine."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Histogram,
    Info,
    start_http_server,
    REGISTRY,
    CollectorRegistry,
)


class MetricsRegistry:
    """Registry of all plan engine metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Compiler metrics
        self.compilations_total = Counter(
            "plan_compilations_total",
            "Total number of pipelines compiled to SQL",
            ["dialect", "status"],  # status: success, error
            registry=self._registry,
        )

        self.compile_latency_seconds = Histogram(
            "plan_compile_latency_seconds",
            "Pipeline compilation latency in seconds",
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5),
            registry=self._registry,
        )

        # Interpreter metrics
        self.interpretations_total = Counter(
            "plan_interpretations_total",
            "Total number of pipelines run by the in-memory interpreter",
            ["status"],
            registry=self._registry,
        )

        self.interpret_latency_seconds = Histogram(
            "plan_interpret_latency_seconds",
            "In-memory interpretation latency in seconds",
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0),
            registry=self._registry,
        )

        self.rows_produced_total = Counter(
            "plan_rows_produced_total",
            "Total rows produced by pipeline execution",
            ["backend"],  # memory, remote
            registry=self._registry,
        )

        # Remote execution metrics
        self.statements_sent_total = Counter(
            "plan_statements_sent_total",
            "Total SQL statements handed to the statement sender",
            ["status"],
            registry=self._registry,
        )

        # Errors by taxonomy class
        self.errors_total = Counter(
            "plan_errors_total",
            "Total plan errors raised",
            ["stage", "error"],  # stage: build, compile, eval
            registry=self._registry,
        )

        # Engine info
        self.info = Info(
            "plan_engine",
            "Plan engine information",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        """The collector registry the metrics are registered in."""
        return self._registry


# Global metrics registry
_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8001, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Set up Prometheus metrics server.

    Args:
        port: Port for the metrics HTTP server
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics
    _metrics = MetricsRegistry(registry)

    from plan_engine import __version__
    _metrics.info.info({
        "version": __version__,
    })

    start_http_server(port, registry=registry or REGISTRY)

    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
