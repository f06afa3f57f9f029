"""Plan Engine - unified entry point for running pipelines.

The PlanEngine ties the pure domain services to configuration and
observability: it compiles pipelines for the configured dialect, runs them
in memory, or hands the compiled SQL to a backend, recording logs, metrics
and trace spans for each step. Pipelines themselves never hold a
connection; backends are passed in per call.

Usage:
    from plan_engine.application import PlanEngine

    engine = PlanEngine()
    sql = engine.compile(pipeline)
    local = engine.interpret(pipeline, table)

    with engine.open_backend() as backend:
        backend.load_table("d", table)
        remote = engine.execute_remote(pipeline, backend)
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from typing import Any

from plan_engine.adapters.outbound.duckdb_backend import DuckDBBackend
from plan_engine.domain.entities.operators import Pipeline
from plan_engine.domain.entities.table import InMemoryTable
from plan_engine.domain.errors import CompileError, EvalError, PlanBuildError, PlanError
from plan_engine.domain.services.interpreter import Interpreter
from plan_engine.domain.services.introspector import columns_used, diagram, render
from plan_engine.domain.services.sql_compiler import SQLCompiler
from plan_engine.infrastructure.config import Config, get_config
from plan_engine.infrastructure.logging import get_logger, plan_log_context, setup_logging
from plan_engine.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from plan_engine.infrastructure.tracing import pipeline_attributes, setup_tracing, trace_span
from plan_engine.ports.outbound.statement_sender import StatementSender
from plan_engine.ports.outbound.table_reader import TableReader

logger = get_logger(__name__)


def _stage(error: PlanError) -> str:
    if isinstance(error, PlanBuildError):
        return "build"
    if isinstance(error, CompileError):
        return "compile"
    if isinstance(error, EvalError):
        return "eval"
    return "unknown"


class PlanEngine:
    """Application facade over the compiler, interpreter and backends.

    Errors from the domain are logged and counted, then re-raised
    unchanged; nothing is retried or recovered here.

    Thread Safety:
        Compilation and interpretation are safe to call concurrently.
        Backends passed to execute_remote are used as-is.
    """

    def __init__(
        self,
        config: Config | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Engine configuration; defaults to the environment config.
            metrics: Metrics registry; defaults to the global registry.
        """
        self._config = config or get_config()
        self._metrics = metrics or get_metrics()
        self._compiler = SQLCompiler(self._config.compiler.to_dialect_config())
        self._interpreter = Interpreter(self._config.interpreter.window_row_order)

    @classmethod
    def from_config(
        cls, config: Config | None = None, serve_metrics: bool = False
    ) -> PlanEngine:
        """Configure logging, tracing and metrics, then build an engine.

        Args:
            config: Engine configuration; defaults to the environment config.
            serve_metrics: Start the Prometheus HTTP server on the configured port.

        Returns:
            An engine reporting to the configured observability stack.
        """
        config = config or get_config()
        observability = config.observability
        setup_logging(level=observability.log_level, log_format=observability.log_format)
        setup_tracing(
            service_name=observability.otel_service_name,
            otlp_endpoint=observability.otel_endpoint,
        )
        metrics = setup_metrics(observability.metrics_port) if serve_metrics else None
        return cls(config=config, metrics=metrics)

    @property
    def config(self) -> Config:
        return self._config

    @property
    def compiler(self) -> SQLCompiler:
        return self._compiler

    @property
    def interpreter(self) -> Interpreter:
        return self._interpreter

    def _fail(self, event: str, error: PlanError) -> None:
        self._metrics.errors_total.labels(
            stage=_stage(error), error=type(error).__name__
        ).inc()
        logger.warning(
            event,
            error=type(error).__name__,
            position=error.position,
            message=error.message,
        )

    def compile(self, pipeline: Pipeline) -> str:
        """Compile a pipeline to SQL for the configured dialect.

        Raises:
            CompileError: The pipeline cannot be expressed in the dialect.
        """
        dialect = self._compiler.config.dialect.value
        start = time.perf_counter()
        with plan_log_context(pipeline, dialect=dialect), trace_span(
            "plan.compile", pipeline_attributes(pipeline, dialect=dialect)
        ) as span:
            try:
                sql = self._compiler.compile(pipeline)
            except CompileError as e:
                self._metrics.compilations_total.labels(dialect=dialect, status="error").inc()
                self._fail("pipeline_compile_failed", e)
                raise
            span.set_attribute("plan.sql_length", len(sql))

            self._metrics.compile_latency_seconds.observe(time.perf_counter() - start)
            self._metrics.compilations_total.labels(dialect=dialect, status="success").inc()
            logger.info("pipeline_compiled", sql_length=len(sql))
        return sql

    def interpret(
        self,
        pipeline: Pipeline,
        table: InMemoryTable | Sequence[Mapping[str, Any]],
    ) -> InMemoryTable:
        """Run a pipeline in memory over ``table``.

        Raises:
            EvalError: Evaluation failed; no partial result is returned.
        """
        row_order = self._interpreter.window_row_order.value
        start = time.perf_counter()
        with plan_log_context(pipeline), trace_span(
            "plan.interpret", pipeline_attributes(pipeline, window_row_order=row_order)
        ) as span:
            try:
                result = self._interpreter.run(pipeline, table)
            except EvalError as e:
                self._metrics.interpretations_total.labels(status="error").inc()
                self._fail("pipeline_interpret_failed", e)
                raise
            span.set_attribute("plan.rows", len(result))

            self._metrics.interpret_latency_seconds.observe(time.perf_counter() - start)
            self._metrics.interpretations_total.labels(status="success").inc()
            self._metrics.rows_produced_total.labels(backend="memory").inc(len(result))
            logger.info("pipeline_interpreted", rows=len(result), window_row_order=row_order)
        return result

    def run(self, pipeline: Pipeline, reader: TableReader) -> InMemoryTable:
        """Fetch the pipeline's source table from ``reader`` and interpret."""
        table = reader.read_table(pipeline.source_table)
        return self.interpret(pipeline, table)

    def execute_remote(
        self, pipeline: Pipeline, sender: StatementSender
    ) -> list[dict[str, Any]]:
        """Compile a pipeline and execute it through ``sender``.

        Returns:
            The backend's result rows; empty for a materialized pipeline.

        Raises:
            CompileError: The pipeline cannot be expressed in the dialect.
            Exception: Backend errors propagate unchanged.
        """
        sql = self.compile(pipeline)
        with plan_log_context(pipeline), trace_span(
            "plan.execute_remote", pipeline_attributes(pipeline)
        ) as span:
            try:
                rows = sender.send_statement(sql)
            except Exception:
                self._metrics.statements_sent_total.labels(status="error").inc()
                logger.exception("statement_failed")
                raise

            self._metrics.statements_sent_total.labels(status="success").inc()
            if pipeline.is_terminated:
                # backends may report a row count for CREATE TABLE ... AS
                rows = []
            span.set_attribute("plan.rows", len(rows))
            self._metrics.rows_produced_total.labels(backend="remote").inc(len(rows))
            logger.info("statement_sent", rows=len(rows))
        return rows

    def explain(self, pipeline: Pipeline) -> dict[str, Any]:
        """Introspection summary: plan text, diagram and column lineage."""
        return {
            "plan": render(pipeline),
            "columns": list(pipeline.columns),
            "columns_used": {k: list(v) for k, v in columns_used(pipeline).items()},
            "diagram": diagram(pipeline).model_dump(),
        }

    def open_backend(self) -> DuckDBBackend:
        """Open the reference backend described by the configuration."""
        backend_config = self._config.backend
        return DuckDBBackend(database=backend_config.database, threads=backend_config.threads)
