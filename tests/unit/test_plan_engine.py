"""Unit tests for the PlanEngine facade."""

from __future__ import annotations

from typing import Any

import pytest
import structlog

from plan_engine.adapters.outbound import InMemoryTableProvider
from plan_engine.application import PlanEngine
from plan_engine.domain.entities import InMemoryTable, Pipeline
from plan_engine.domain.errors import DialectMismatch, TypeMismatch
from plan_engine.domain.value_objects import Dialect, WindowRowOrder
from plan_engine.infrastructure.config import (
    CompilerConfig,
    Config,
    InterpreterConfig,
    ObservabilityConfig,
)
from plan_engine.infrastructure.metrics import MetricsRegistry


class RecordingSender:
    """StatementSender double that records statements."""

    def __init__(self, rows: list[dict[str, Any]] | None = None) -> None:
        self.statements: list[str] = []
        self._rows = rows or []

    def send_statement(self, sql: str) -> list[dict[str, Any]]:
        self.statements.append(sql)
        return list(self._rows)


class FailingSender:
    def send_statement(self, sql: str) -> list[dict[str, Any]]:
        raise RuntimeError("connection lost")


def sample(metrics: MetricsRegistry, name: str, **labels: str) -> float:
    value = metrics.registry.get_sample_value(name, labels)
    return value or 0.0


@pytest.fixture
def engine(test_config: Config, metrics_registry: MetricsRegistry) -> PlanEngine:
    """Engine with default config and a private metrics registry."""
    return PlanEngine(config=test_config, metrics=metrics_registry)


@pytest.mark.unit
class TestPlanEngine:
    """Tests for PlanEngine."""

    def test_compile_counts_success(
        self, engine: PlanEngine, ranked_pipeline: Pipeline, metrics_registry: MetricsRegistry
    ) -> None:
        sql = engine.compile(ranked_pipeline)

        assert sql.startswith("SELECT")
        assert sample(
            metrics_registry, "plan_compilations_total", dialect="reference", status="success"
        ) == 1.0

    def test_compile_error_counted_and_reraised(
        self, engine: PlanEngine, demo_pipeline: Pipeline, metrics_registry: MetricsRegistry
    ) -> None:
        p = demo_pipeline.extend("r", "dense_rank()", order_by=["product"])

        with pytest.raises(DialectMismatch):
            engine.compile(p)

        assert sample(
            metrics_registry, "plan_errors_total", stage="compile", error="DialectMismatch"
        ) == 1.0

    def test_interpret(
        self,
        engine: PlanEngine,
        ranked_pipeline: Pipeline,
        demo_table: InMemoryTable,
        metrics_registry: MetricsRegistry,
    ) -> None:
        result = engine.interpret(ranked_pipeline, demo_table)

        assert len(result) == 4
        assert sample(metrics_registry, "plan_rows_produced_total", backend="memory") == 4.0

    def test_interpret_error_counted(
        self,
        engine: PlanEngine,
        demo_pipeline: Pipeline,
        demo_table: InMemoryTable,
        metrics_registry: MetricsRegistry,
    ) -> None:
        p = demo_pipeline.extend("bad", "product * 2")

        with pytest.raises(TypeMismatch):
            engine.interpret(p, demo_table)

        assert sample(metrics_registry, "plan_interpretations_total", status="error") == 1.0
        assert sample(
            metrics_registry, "plan_errors_total", stage="eval", error="TypeMismatch"
        ) == 1.0

    def test_run_reads_from_provider(
        self, engine: PlanEngine, ranked_pipeline: Pipeline, demo_table: InMemoryTable
    ) -> None:
        provider = InMemoryTableProvider({"d": demo_table})

        assert engine.run(ranked_pipeline, provider).same_rows(
            engine.interpret(ranked_pipeline, demo_table)
        )

    def test_window_row_order_from_config(
        self, metrics_registry: MetricsRegistry, demo_table: InMemoryTable
    ) -> None:
        config = Config(interpreter=InterpreterConfig(window_row_order=WindowRowOrder.INPUT))
        engine = PlanEngine(config=config, metrics=metrics_registry)
        p = Pipeline.describe_table("d", demo_table.columns).extend(
            "r", "rank()", order_by=["predicted_offer_affinity"]
        )

        result = engine.interpret(p, demo_table)

        assert result.column("product") == demo_table.column("product")

    def test_execute_remote_sends_compiled_sql(
        self, engine: PlanEngine, ranked_pipeline: Pipeline
    ) -> None:
        sender = RecordingSender(rows=[{"user_name": "Alice"}])

        rows = engine.execute_remote(ranked_pipeline, sender)

        assert rows == [{"user_name": "Alice"}]
        assert sender.statements == [engine.compile(ranked_pipeline)]

    def test_execute_remote_materialize_returns_no_rows(
        self, engine: PlanEngine, ranked_pipeline: Pipeline
    ) -> None:
        sender = RecordingSender(rows=[{"Count": 4}])

        rows = engine.execute_remote(ranked_pipeline.materialize("top"), sender)

        assert rows == []
        assert sender.statements[0].startswith('CREATE TABLE "top" AS')

    def test_execute_remote_backend_error(
        self, engine: PlanEngine, ranked_pipeline: Pipeline, metrics_registry: MetricsRegistry
    ) -> None:
        with pytest.raises(RuntimeError, match="connection lost"):
            engine.execute_remote(ranked_pipeline, FailingSender())

        assert sample(metrics_registry, "plan_statements_sent_total", status="error") == 1.0

    def test_explain(self, engine: PlanEngine, ranked_pipeline: Pipeline) -> None:
        summary = engine.explain(ranked_pipeline)

        assert summary["columns"][-1] == "simple_rank"
        assert summary["columns_used"] == {
            "d": ["user_name", "product", "predicted_offer_affinity"]
        }
        assert summary["plan"].startswith("0: Table(name='d'")
        assert len(summary["diagram"]["nodes"]) == 3


@pytest.mark.unit
class TestFromConfig:
    """Tests for PlanEngine.from_config."""

    @pytest.fixture(autouse=True)
    def reset_structlog(self):
        yield
        structlog.reset_defaults()

    def test_builds_engine_for_config(self, ranked_pipeline: Pipeline) -> None:
        config = Config(
            compiler=CompilerConfig(
                dialect=Dialect.EXTENDED_WINDOW_TIES, identifier_quoting=False
            ),
            observability=ObservabilityConfig(log_level="WARNING", log_format="console"),
        )

        engine = PlanEngine.from_config(config)

        assert engine.config is config
        assert engine.compiler.config.dialect == Dialect.EXTENDED_WINDOW_TIES
        assert '"' not in engine.compile(ranked_pipeline)
