"""Unit tests for pipeline builder operations."""

from __future__ import annotations

import pytest

from plan_engine.domain.entities import (
    Extend,
    Materialize,
    OrderBy,
    Pipeline,
    SelectRows,
    col,
    rank,
)
from plan_engine.domain.errors import (
    ColumnKindMismatch,
    DuplicateColumn,
    EmptyOrdering,
    EmptySelection,
    ExpressionSyntaxError,
    PipelineTerminated,
    PlanBuildError,
    UnknownColumn,
)
from plan_engine.domain.services import builder
from plan_engine.domain.value_objects import OrderTerm, TableRef, WindowSpec


@pytest.mark.unit
class TestExtend:
    """Tests for extend."""

    def test_rank_adds_column(self, demo_pipeline: Pipeline) -> None:
        """A ranked extend appends the new column after the upstream columns."""
        p = demo_pipeline.extend(
            "simple_rank",
            "rank()",
            partition_by=["user_name"],
            order_by=["predicted_offer_affinity"],
            reverse=True,
        )

        assert p.columns == (
            "user_name",
            "product",
            "predicted_offer_affinity",
            "simple_rank",
        )
        node = p.node
        assert isinstance(node, Extend)
        assert node.position == 1
        assert node.window == WindowSpec(
            ("user_name",), (OrderTerm("predicted_offer_affinity", True),)
        )

    def test_overwrite_keeps_position(self, demo_pipeline: Pipeline) -> None:
        """Overwriting an existing column keeps the schema order."""
        p = demo_pipeline.extend("product", col("product").eq("apple"))

        assert p.columns == demo_pipeline.columns

    def test_unknown_column_in_expression(self, demo_pipeline: Pipeline) -> None:
        with pytest.raises(UnknownColumn) as exc_info:
            demo_pipeline.extend("x", col("price") * 2)

        assert exc_info.value.columns == ("price",)
        assert exc_info.value.position == 1

    def test_unknown_partition_column(self, demo_pipeline: Pipeline) -> None:
        with pytest.raises(UnknownColumn):
            demo_pipeline.extend("r", rank(), partition_by=["region"], order_by=["product"])

    def test_window_on_scalar_expression(self, demo_pipeline: Pipeline) -> None:
        """A window spec on a non-window expression is rejected."""
        with pytest.raises(ColumnKindMismatch):
            demo_pipeline.extend("x", col("predicted_offer_affinity"), partition_by=["user_name"])

    def test_nested_window_function(self, demo_pipeline: Pipeline) -> None:
        with pytest.raises(ColumnKindMismatch):
            demo_pipeline.extend("x", rank() + 1)

    def test_bare_window_function_ranks_whole_table(self, demo_pipeline: Pipeline) -> None:
        """A window function with no partition or order gets an empty window."""
        p = demo_pipeline.extend("r", "row_number()")

        assert p.node.window == WindowSpec()

    def test_explicit_window_and_keywords(self, demo_pipeline: Pipeline) -> None:
        with pytest.raises(ValueError):
            demo_pipeline.extend("r", rank(), partition_by=["user_name"], window=WindowSpec())

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"reverse": True},
            {"reverse": ["user_name"]},
            {"partition_by": ["user_name"], "reverse": True},
        ],
    )
    def test_reverse_without_order_by(self, demo_pipeline: Pipeline, kwargs: dict) -> None:
        """Reversing nothing is an error rather than a silent no-op."""
        with pytest.raises(ValueError, match="reverse"):
            demo_pipeline.extend("r", "rank()", **kwargs)

    def test_invalid_expression_text(self, demo_pipeline: Pipeline) -> None:
        with pytest.raises(ExpressionSyntaxError):
            demo_pipeline.extend("x", "product +")

    def test_error_position_deep_in_chain(self, demo_pipeline: Pipeline) -> None:
        """Errors report the position of the node being added."""
        p = demo_pipeline.select_rows("predicted_offer_affinity > 0.5").extend("a", "1")

        with pytest.raises(UnknownColumn) as exc_info:
            p.extend("b", "missing + 1")

        assert exc_info.value.position == 3
        assert "node 3" in str(exc_info.value)


@pytest.mark.unit
class TestSelectRows:
    """Tests for select_rows."""

    def test_predicate_text(self, ranked_pipeline: Pipeline) -> None:
        node = ranked_pipeline.node

        assert isinstance(node, SelectRows)
        assert str(node.predicate) == "simple_rank <= 2"
        assert ranked_pipeline.columns[-1] == "simple_rank"

    def test_unknown_column(self, demo_pipeline: Pipeline) -> None:
        with pytest.raises(UnknownColumn):
            demo_pipeline.select_rows("simple_rank <= 2")

    def test_window_in_predicate(self, demo_pipeline: Pipeline) -> None:
        with pytest.raises(ColumnKindMismatch):
            demo_pipeline.select_rows(rank() <= 2)


@pytest.mark.unit
class TestOrderBy:
    """Tests for order_by."""

    def test_terms(self, demo_pipeline: Pipeline) -> None:
        p = demo_pipeline.order_by(
            ["user_name", "predicted_offer_affinity"], reverse=["predicted_offer_affinity"]
        )

        node = p.node
        assert isinstance(node, OrderBy)
        assert [str(t) for t in node.terms] == ["user_name ASC", "predicted_offer_affinity DESC"]

    def test_empty_ordering(self, demo_pipeline: Pipeline) -> None:
        with pytest.raises(EmptyOrdering):
            demo_pipeline.order_by([])

    def test_unknown_column(self, demo_pipeline: Pipeline) -> None:
        with pytest.raises(UnknownColumn):
            demo_pipeline.order_by(["price"])


@pytest.mark.unit
class TestColumnSelection:
    """Tests for select_columns and drop_columns."""

    def test_select_columns_reorders(self, demo_pipeline: Pipeline) -> None:
        p = demo_pipeline.select_columns(["product", "user_name"])

        assert p.columns == ("product", "user_name")

    def test_select_no_columns(self, demo_pipeline: Pipeline) -> None:
        with pytest.raises(EmptySelection):
            demo_pipeline.select_columns([])

    def test_select_duplicate(self, demo_pipeline: Pipeline) -> None:
        with pytest.raises(DuplicateColumn):
            demo_pipeline.select_columns(["product", "product"])

    def test_drop_columns(self, demo_pipeline: Pipeline) -> None:
        p = demo_pipeline.drop_columns("product")

        assert p.columns == ("user_name", "predicted_offer_affinity")

    def test_drop_every_column(self, demo_pipeline: Pipeline) -> None:
        with pytest.raises(EmptySelection):
            demo_pipeline.drop_columns(list(demo_pipeline.columns))

    def test_drop_unknown(self, demo_pipeline: Pipeline) -> None:
        with pytest.raises(UnknownColumn):
            demo_pipeline.drop_columns(["price"])


@pytest.mark.unit
class TestMaterialize:
    """Tests for materialize."""

    def test_terminal(self, ranked_pipeline: Pipeline) -> None:
        p = ranked_pipeline.materialize("top_offers", temporary=True)

        assert p.is_terminated
        assert isinstance(p.node, Materialize)
        assert p.node.as_table() == TableRef("top_offers", ranked_pipeline.columns, temporary=True)

    @pytest.mark.parametrize(
        "step",
        [
            lambda p: p.extend("x", "1"),
            lambda p: p.select_rows("simple_rank = 1"),
            lambda p: p.order_by(["product"]),
            lambda p: p.select_columns(["product"]),
            lambda p: p.drop_columns(["product"]),
            lambda p: p.materialize("again"),
        ],
    )
    def test_nothing_after_materialize(self, ranked_pipeline: Pipeline, step) -> None:
        """Every builder call on a materialized pipeline fails."""
        p = ranked_pipeline.materialize("top_offers")

        with pytest.raises(PipelineTerminated):
            step(p)


@pytest.mark.unit
class TestImmutability:
    """Builder operations never modify their input."""

    def test_branching(self, demo_pipeline: Pipeline) -> None:
        base = demo_pipeline.extend("doubled", "predicted_offer_affinity * 2")
        left = base.select_rows("doubled > 1")
        right = base.order_by(["doubled"])

        assert base.columns == left.columns == right.columns
        assert len(base.chain()) == 2
        assert left.node.source is base.node
        assert right.node.source is base.node

    def test_failed_build_leaves_pipeline(self, demo_pipeline: Pipeline) -> None:
        before = demo_pipeline.chain()

        with pytest.raises(PlanBuildError):
            demo_pipeline.extend("x", "missing")

        assert demo_pipeline.chain() == before

    def test_functional_form_accepts_table_ref(self) -> None:
        p = builder.select_rows(TableRef("t", ["a"]), "a > 0")

        assert p.source_table == TableRef("t", ["a"])
        assert p.chain()[0] == TableRef("t", ["a"])
