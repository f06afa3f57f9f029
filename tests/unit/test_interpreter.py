"""Unit tests for the in-memory interpreter."""

from __future__ import annotations

import copy

import pytest

from plan_engine.domain.entities import InMemoryTable, Pipeline, col
from plan_engine.domain.errors import MissingColumn, TypeMismatch
from plan_engine.domain.services import Interpreter, interpret
from plan_engine.domain.services.interpreter import (
    FilterOperator,
    ScanOperator,
    SortOperator,
)
from plan_engine.domain.value_objects import WindowRowOrder


def scored(*rows: tuple[str, float | None]) -> InMemoryTable:
    return InMemoryTable.from_records([{"k": k, "score": s} for k, s in rows])


SCORED = Pipeline.describe_table("t", ["k", "score"])


@pytest.mark.unit
class TestRanking:
    """Tests for windowed extends."""

    def test_top_two_per_user(self, ranked_pipeline: Pipeline, demo_table: InMemoryTable) -> None:
        """simple_rank <= 2 keeps each user's two highest affinities."""
        result = interpret(ranked_pipeline, demo_table)

        assert len(result) == 4
        kept = {(r["user_name"], r["product"]) for r in result}
        assert kept == {
            ("Alice", "apple"),
            ("Alice", "banana"),
            ("Bob", "banana"),
            ("Bob", "cherry"),
        }
        assert sorted(result.column("simple_rank")) == [1, 1, 2, 2]

    def test_rank_ties(self) -> None:
        """Ties share a rank; the next rank skips the tie count."""
        table = scored(("a", 0.9), ("b", 0.9), ("c", 0.5))
        p = SCORED.extend("r", "rank()", order_by=["score"], reverse=True)

        result = interpret(p, table)

        assert result.column("r") == [1, 1, 3]

    def test_dense_rank_ties(self) -> None:
        table = scored(("a", 0.9), ("b", 0.9), ("c", 0.5))
        p = SCORED.extend("r", "dense_rank()", order_by=["score"], reverse=True)

        assert interpret(p, table).column("r") == [1, 1, 2]

    def test_row_number_breaks_ties_by_input_order(self) -> None:
        table = scored(("a", 0.9), ("b", 0.9), ("c", 0.5))
        p = SCORED.extend("r", "row_number()", order_by=["score"], reverse=True)

        result = interpret(p, table)

        assert result.column("k") == ["a", "b", "c"]
        assert result.column("r") == [1, 2, 3]

    def test_spec_example_ties(self) -> None:
        """Affinities 0.9, 0.9, 0.5 for one user rank as 1, 1, 2 with dense ties."""
        table = InMemoryTable.from_records(
            [
                {"user_name": "u", "product": "a", "predicted_offer_affinity": 0.9},
                {"user_name": "u", "product": "b", "predicted_offer_affinity": 0.9},
                {"user_name": "u", "product": "c", "predicted_offer_affinity": 0.5},
            ]
        )
        p = Pipeline.describe_table("d", table.columns).extend(
            "r",
            "dense_rank()",
            partition_by=["user_name"],
            order_by=["predicted_offer_affinity"],
            reverse=True,
        )

        assert interpret(p, table).column("r") == [1, 1, 2]

    def test_nulls_rank_last_descending(self) -> None:
        table = scored(("a", None), ("b", 0.1), ("c", 0.7))
        p = SCORED.extend("r", "rank()", order_by=["score"], reverse=True)

        result = interpret(p, table)

        assert result.column("k") == ["c", "b", "a"]
        assert result.column("r") == [1, 2, 3]

    def test_nulls_rank_last_ascending(self) -> None:
        table = scored(("a", None), ("b", 0.1), ("c", 0.7))
        p = SCORED.extend("r", "rank()", order_by=["score"])

        assert interpret(p, table).column("k") == ["b", "c", "a"]

    def test_no_order_makes_all_rows_peers(self) -> None:
        table = scored(("a", 0.1), ("b", 0.2))
        p = SCORED.extend("r", "rank()")

        assert interpret(p, table).column("r") == [1, 1]

    def test_partitions_in_first_seen_order(self) -> None:
        table = InMemoryTable.from_records(
            [
                {"g": "y", "v": 1},
                {"g": "x", "v": 5},
                {"g": "y", "v": 3},
                {"g": "x", "v": 2},
            ]
        )
        p = Pipeline.describe_table("t", ["g", "v"]).extend(
            "r", "rank()", partition_by="g", order_by="v", reverse=True
        )

        result = interpret(p, table)

        assert result.to_records() == [
            {"g": "y", "v": 3, "r": 1},
            {"g": "y", "v": 1, "r": 2},
            {"g": "x", "v": 5, "r": 1},
            {"g": "x", "v": 2, "r": 2},
        ]

    def test_input_row_order(self) -> None:
        """WindowRowOrder.INPUT keeps input order and only adds ranks."""
        table = InMemoryTable.from_records(
            [
                {"g": "y", "v": 1},
                {"g": "x", "v": 5},
                {"g": "y", "v": 3},
                {"g": "x", "v": 2},
            ]
        )
        p = Pipeline.describe_table("t", ["g", "v"]).extend(
            "r", "rank()", partition_by="g", order_by="v", reverse=True
        )

        result = interpret(p, table, window_row_order=WindowRowOrder.INPUT)

        assert result.column("v") == [1, 5, 3, 2]
        assert result.column("r") == [2, 1, 1, 2]

    @pytest.mark.parametrize("row_order", list(WindowRowOrder))
    def test_row_orders_agree_as_multisets(
        self,
        ranked_pipeline: Pipeline,
        demo_table: InMemoryTable,
        row_order: WindowRowOrder,
    ) -> None:
        result = Interpreter(row_order).run(ranked_pipeline, demo_table)
        baseline = interpret(ranked_pipeline, demo_table)

        assert result.same_rows(baseline)

    def test_mixed_kinds_in_order_column(self) -> None:
        table = scored(("a", 0.5), ("b", "high"))  # type: ignore[arg-type]
        p = SCORED.extend("r", "rank()", order_by=["score"])

        with pytest.raises(TypeMismatch) as exc_info:
            interpret(p, table)

        assert exc_info.value.position == 1


@pytest.mark.unit
class TestRowOperators:
    """Tests for filter, order, projection and materialize."""

    def test_extend_computes_per_row(self, demo_pipeline: Pipeline, demo_table: InMemoryTable) -> None:
        p = demo_pipeline.extend("pct", col("predicted_offer_affinity") * 100)

        result = interpret(p, demo_table)

        assert result.columns[-1] == "pct"
        assert result.column("pct")[0] == pytest.approx(90.0)

    def test_overwrite_keeps_column_order(self, demo_pipeline: Pipeline, demo_table: InMemoryTable) -> None:
        p = demo_pipeline.extend("product", "upper(product)")

        result = interpret(p, demo_table)

        assert result.columns == demo_pipeline.columns
        assert list(result.rows[0]) == list(demo_pipeline.columns)
        assert result.column("product")[0] == "APPLE"

    def test_select_rows_drops_null_predicates(self) -> None:
        table = scored(("a", None), ("b", 0.1), ("c", 0.7))

        result = interpret(SCORED.select_rows("score > 0.05"), table)

        assert result.column("k") == ["b", "c"]

    def test_order_by_multi_key_stable(self) -> None:
        table = InMemoryTable.from_records(
            [
                {"g": "b", "v": 1, "i": 0},
                {"g": "a", "v": None, "i": 1},
                {"g": "a", "v": 2, "i": 2},
                {"g": "b", "v": 1, "i": 3},
                {"g": "a", "v": 2, "i": 4},
            ]
        )
        p = Pipeline.describe_table("t", ["g", "v", "i"]).order_by(["g", "v"], reverse=["v"])

        result = interpret(p, table)

        assert result.column("i") == [2, 4, 1, 0, 3]

    def test_select_and_drop_columns(self, demo_pipeline: Pipeline, demo_table: InMemoryTable) -> None:
        p = demo_pipeline.select_columns(["product", "user_name"]).drop_columns("user_name")

        result = interpret(p, demo_table)

        assert result.columns == ("product",)
        assert all(list(r) == ["product"] for r in result)

    def test_materialize_passes_rows_through(
        self, ranked_pipeline: Pipeline, demo_table: InMemoryTable
    ) -> None:
        plain = interpret(ranked_pipeline, demo_table)
        materialized = interpret(ranked_pipeline.materialize("top"), demo_table)

        assert materialized.same_rows(plain, ordered=True)


@pytest.mark.unit
class TestInterpreterContract:
    """Inputs, outputs and failures."""

    def test_input_not_mutated(self, ranked_pipeline: Pipeline, demo_table: InMemoryTable) -> None:
        before = copy.deepcopy(demo_table.to_records())

        interpret(ranked_pipeline.order_by(["product"]), demo_table)

        assert demo_table.to_records() == before
        assert all("simple_rank" not in row for row in demo_table.rows)

    def test_accepts_records(self, ranked_pipeline: Pipeline, demo_table: InMemoryTable) -> None:
        result = interpret(ranked_pipeline, demo_table.to_records())

        assert len(result) == 4

    def test_output_columns_match_pipeline(
        self, ranked_pipeline: Pipeline, demo_table: InMemoryTable
    ) -> None:
        assert interpret(ranked_pipeline, demo_table).columns == ranked_pipeline.columns

    def test_missing_declared_column(self, demo_table: InMemoryTable) -> None:
        p = Pipeline.describe_table("d", ["user_name", "region"])

        with pytest.raises(MissingColumn) as exc_info:
            interpret(p, demo_table)

        assert exc_info.value.position == 0

    def test_extra_source_columns_are_ignored(self, demo_table: InMemoryTable) -> None:
        p = Pipeline.describe_table("d", ["product"])

        assert interpret(p, demo_table).columns == ("product",)

    def test_record_missing_declared_column(self) -> None:
        """A short record is an error, not a row of NULLs."""
        p = Pipeline.describe_table("d", ["x", "y"])

        with pytest.raises(MissingColumn) as exc_info:
            interpret(p, [{"x": 1, "y": 2}, {"x": 3}])

        assert exc_info.value.position == 0

    def test_record_extra_keys_are_ignored(self) -> None:
        p = Pipeline.describe_table("d", ["x"])

        result = interpret(p, [{"x": 1, "y": 2}, {"x": 3, "z": 4}])

        assert result.columns == ("x",)
        assert result.to_records() == [{"x": 1}, {"x": 3}]

    def test_type_mismatch_reports_position(self, demo_pipeline: Pipeline, demo_table: InMemoryTable) -> None:
        p = demo_pipeline.select_rows("predicted_offer_affinity > 0").extend("bad", "product + 1")

        with pytest.raises(TypeMismatch) as exc_info:
            interpret(p, demo_table)

        assert exc_info.value.position == 2


@pytest.mark.unit
class TestOperators:
    """Tests for the Volcano operators directly."""

    def test_scan_filter_sort(self) -> None:
        table = scored(("a", 0.2), ("b", 0.9), ("c", 0.5))
        p = SCORED.select_rows("score > 0.3").order_by("score")
        filter_node, sort_node = p.operators()

        scan = ScanOperator(table, p.source_table)
        sort = SortOperator(FilterOperator(scan, filter_node), sort_node)

        assert [r["k"] for r in sort] == ["c", "b"]

    def test_operator_can_be_reopened(self) -> None:
        table = scored(("a", 0.2), ("b", 0.9))
        op = ScanOperator(table, SCORED.source_table)

        assert list(op) == list(op)
