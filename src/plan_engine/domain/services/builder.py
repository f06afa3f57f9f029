"""Pipeline builder operations.

Each operation takes a pipeline plus operator parameters and returns a new
pipeline wrapping one new operator node. Operations are pure: they only
construct and validate. Validation failures raise a PlanBuildError and no
pipeline is produced.

Expressions may be given as Expression values or as SQL-like text
(``"simple_rank <= 2"``, ``"rank()"``), which is parsed with sqlglot.

Example:
    >>> p = Pipeline.describe_table("d", ["user_name", "product", "affinity"])
    >>> p = extend(p, "simple_rank", rank(), partition_by=["user_name"],
    ...            order_by=["affinity"], reverse=True)
    >>> p = select_rows(p, "simple_rank <= 2")
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from plan_engine.domain.entities.expressions import Expression, WindowFunction
from plan_engine.domain.entities.operators import (
    DropColumns,
    Extend,
    Materialize,
    OrderBy,
    Pipeline,
    SelectColumns,
    SelectRows,
    node_position,
)
from plan_engine.domain.value_objects.schema import TableRef, WindowSpec, order_terms


def _as_pipeline(pipeline: Pipeline | TableRef) -> Pipeline:
    if isinstance(pipeline, TableRef):
        return Pipeline.from_table(pipeline)
    return pipeline


def _names(columns: Sequence[str] | str) -> tuple[str, ...]:
    if isinstance(columns, str):
        return (columns,)
    return tuple(columns)


def _expression(value: Expression | str, position: int) -> Expression:
    """Accept an expression or parse expression text."""
    if isinstance(value, Expression):
        return value
    if isinstance(value, str):
        from plan_engine.adapters.inbound.expression_parser import parse_expression

        return parse_expression(value, position=position)
    raise TypeError(f"expected an Expression or expression text, got {type(value).__name__}")


def extend(
    pipeline: Pipeline | TableRef,
    name: str,
    expression: Expression | str,
    partition_by: Sequence[str] | str = (),
    order_by: Sequence[str] | str = (),
    reverse: Iterable[str] | bool = (),
    window: WindowSpec | None = None,
) -> Pipeline:
    """Add or overwrite column ``name``.

    A window specification applies when ``partition_by`` or ``order_by`` is
    non-empty or ``window`` is passed. A window function with neither ranks
    over the whole table with every row a peer.

    Args:
        pipeline: Upstream pipeline (or table reference).
        name: Column to add; an existing column is overwritten in place.
        expression: Expression or expression text.
        partition_by: Window partition columns.
        order_by: Window order columns.
        reverse: Order columns to sort descending, or True for all.
        window: Explicit window specification.

    Raises:
        UnknownColumn: A referenced column is not produced upstream.
        ColumnKindMismatch: Window specification and expression disagree.
        PipelineTerminated: The pipeline ends in materialize.
        ValueError: Both window and partition_by/order_by are given, or
            reverse is given without order_by.
    """
    pipeline = _as_pipeline(pipeline)
    position = node_position(pipeline.node) + 1
    expr = _expression(expression, position)

    if window is not None and (partition_by or order_by):
        raise ValueError("pass either window or partition_by/order_by, not both")
    if reverse and not order_by:
        raise ValueError("reverse needs order_by columns to apply to")
    if window is None and (partition_by or order_by):
        window = WindowSpec(_names(partition_by), order_terms(_names(order_by), reverse))
    elif window is None and isinstance(expr, WindowFunction):
        window = WindowSpec()

    return Pipeline(Extend(pipeline.node, name, expr, window))


def select_rows(pipeline: Pipeline | TableRef, predicate: Expression | str) -> Pipeline:
    """Keep rows for which ``predicate`` is true.

    Raises:
        UnknownColumn: The predicate references a column not produced upstream.
    """
    pipeline = _as_pipeline(pipeline)
    position = node_position(pipeline.node) + 1
    return Pipeline(SelectRows(pipeline.node, _expression(predicate, position)))


def order_by(
    pipeline: Pipeline | TableRef,
    columns: Sequence[str] | str,
    reverse: Iterable[str] | bool = (),
) -> Pipeline:
    """Order rows by ``columns``; columns named in ``reverse`` sort descending.

    Raises:
        EmptyOrdering: ``columns`` is empty.
        UnknownColumn: An order column is not produced upstream.
    """
    pipeline = _as_pipeline(pipeline)
    return Pipeline(OrderBy(pipeline.node, order_terms(_names(columns), reverse)))


def select_columns(pipeline: Pipeline | TableRef, columns: Sequence[str] | str) -> Pipeline:
    """Keep only ``columns``, in the given order."""
    pipeline = _as_pipeline(pipeline)
    return Pipeline(SelectColumns(pipeline.node, _names(columns)))


def drop_columns(pipeline: Pipeline | TableRef, columns: Sequence[str] | str) -> Pipeline:
    """Remove ``columns``."""
    pipeline = _as_pipeline(pipeline)
    return Pipeline(DropColumns(pipeline.node, _names(columns)))


def materialize(
    pipeline: Pipeline | TableRef, table_name: str, temporary: bool = False
) -> Pipeline:
    """Wrap the pipeline in a terminal node requesting persistence as ``table_name``.

    Nothing is executed; the SQL compiler turns the node into
    ``CREATE TABLE ... AS`` and the interpreter passes rows through.
    """
    pipeline = _as_pipeline(pipeline)
    return Pipeline(Materialize(pipeline.node, table_name, temporary))
