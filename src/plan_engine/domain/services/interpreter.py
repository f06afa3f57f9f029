"""In-memory interpreter using the Volcano iterator model.

Executes a pipeline directly over an in-memory table and produces the same
logical content the compiled SQL would produce against the same data.

The Volcano model:
    - Each operator is an iterator with open(), next(), close() methods
    - Operators pull rows from their children on demand
    - Blocking operators (window ranking, sorting) materialize their input
      in open()

The input table is never mutated: every operator that changes a row
builds a new dict, so independent pipelines may run concurrently over the
same source table.

References:
    - Graefe, "Volcano" (1994)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import Any

from plan_engine.domain.entities.operators import (
    DropColumns,
    Extend,
    Materialize,
    OperatorNode,
    OrderBy,
    Pipeline,
    SelectColumns,
    SelectRows,
)
from plan_engine.domain.entities.expressions import WindowFunction
from plan_engine.domain.entities.table import InMemoryTable
from plan_engine.domain.errors import EvalError, MissingColumn, TypeMismatch
from plan_engine.domain.services.evaluator import ExpressionEvaluator
from plan_engine.domain.value_objects.dialect import WindowFunc, WindowRowOrder
from plan_engine.domain.value_objects.schema import OrderTerm, TableRef, WindowSpec

Row = dict[str, Any]


def sort_rows(
    rows: list[Any],
    terms: Sequence[OrderTerm],
    position: int | None = None,
    row_of: Callable[[Any], Row] = lambda item: item,
) -> None:
    """Stable in-place sort by ``terms``; NULLs sort last in either direction.

    Sorts once per term from least to most significant, relying on the
    stability of ``list.sort`` (which holds for ``reverse=True`` as well).
    ``row_of`` maps a list item to the row holding the sort columns.

    Raises:
        TypeMismatch: A column holds values that cannot be ordered together.
    """
    for term in reversed(terms):
        name = term.column
        try:
            if term.descending:
                rows.sort(key=lambda r: (row_of(r)[name] is not None, row_of(r)[name]), reverse=True)
            else:
                rows.sort(key=lambda r: (row_of(r)[name] is None, row_of(r)[name]))
        except TypeError as e:
            raise TypeMismatch(f"cannot order column {name!r}: {e}", position) from e


class Operator(ABC):
    """Base class for interpreter operators (Volcano model)."""

    @abstractmethod
    def open(self) -> None:
        """Initialize the operator."""
        pass

    @abstractmethod
    def next(self) -> Row | None:
        """Return the next row or None if exhausted."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Clean up resources."""
        pass

    def __iter__(self) -> Iterator[Row]:
        """Allow iteration over operator results."""
        self.open()
        try:
            while True:
                row = self.next()
                if row is None:
                    break
                yield row
        finally:
            self.close()


class _MaterializedOperator(Operator):
    """Operator that computes all output rows in open()."""

    def __init__(self, child: Operator) -> None:
        self._child = child
        self._rows: list[Row] = []
        self._current_idx = 0

    def open(self) -> None:
        self._child.open()
        rows = []
        while True:
            row = self._child.next()
            if row is None:
                break
            rows.append(row)
        self._rows = self._compute(rows)
        self._current_idx = 0

    @abstractmethod
    def _compute(self, rows: list[Row]) -> list[Row]:
        pass

    def next(self) -> Row | None:
        if self._current_idx >= len(self._rows):
            return None
        row = self._rows[self._current_idx]
        self._current_idx += 1
        return row

    def close(self) -> None:
        self._child.close()
        self._rows = []
        self._current_idx = 0


class ScanOperator(Operator):
    """Scan rows of an in-memory table, projected to the declared columns."""

    def __init__(self, table: InMemoryTable, ref: TableRef) -> None:
        self._table = table
        self._ref = ref
        self._current_row = 0

    def open(self) -> None:
        missing = set(self._ref.columns) - set(self._table.columns)
        if missing:
            raise MissingColumn(
                f"table {self._ref.name!r} lacks declared column(s) {sorted(missing)}",
                position=0,
            )
        self._current_row = 0

    def next(self) -> Row | None:
        if self._current_row >= len(self._table.rows):
            return None
        row = self._table.rows[self._current_row]
        self._current_row += 1
        try:
            return {c: row[c] for c in self._ref.columns}
        except KeyError as e:
            raise MissingColumn(
                f"row {self._current_row - 1} of {self._ref.name!r} lacks column {e.args[0]!r}",
                position=0,
            ) from None

    def close(self) -> None:
        self._current_row = 0


class ExtendOperator(Operator):
    """Add or overwrite a column computed row by row."""

    def __init__(self, child: Operator, node: Extend) -> None:
        self._child = child
        self._node = node
        self._evaluator = ExpressionEvaluator(node.position)

    def open(self) -> None:
        self._child.open()

    def next(self) -> Row | None:
        row = self._child.next()
        if row is None:
            return None
        out = dict(row)
        out[self._node.name] = self._evaluator.evaluate(self._node.expression, row)
        return out

    def close(self) -> None:
        self._child.close()


class WindowOperator(_MaterializedOperator):
    """Rank rows within partitions.

    Rows are grouped by partition key (groups kept in first-seen order),
    each group is stably sorted by the window ordering and ranked:

        rank        peers share a rank; the next rank skips the tie count
        dense_rank  peers share a rank; the next rank is one higher
        row_number  position within the group ordering

    Output order follows ``row_order``: PARTITION flattens the sorted
    groups, INPUT keeps the input order.
    """

    def __init__(
        self,
        child: Operator,
        node: Extend,
        row_order: WindowRowOrder = WindowRowOrder.PARTITION,
    ) -> None:
        super().__init__(child)
        if not isinstance(node.expression, WindowFunction) or node.window is None:
            raise EvalError(f"{node} is not a windowed extend", node.position)
        self._node = node
        self._func = node.expression.func
        self._window: WindowSpec = node.window
        self._row_order = row_order

    def _compute(self, rows: list[Row]) -> list[Row]:
        groups: dict[tuple[Any, ...], list[int]] = {}
        for idx, row in enumerate(rows):
            key = tuple(row[c] for c in self._window.partition_by)
            groups.setdefault(key, []).append(idx)

        name = self._node.name
        ranked: list[Row | None] = [None] * len(rows)
        flattened: list[Row] = []
        for members in groups.values():
            group = [(i, rows[i]) for i in members]
            sort_rows(group, self._window.order_by, self._node.position, row_of=lambda m: m[1])
            for (idx, row), value in zip(group, self._ranks([r for _, r in group])):
                out = dict(row)
                out[name] = value
                ranked[idx] = out
                flattened.append(out)

        if self._row_order == WindowRowOrder.INPUT:
            return [r for r in ranked if r is not None]
        return flattened

    def _ranks(self, ordered: list[Row]) -> list[int]:
        terms = self._window.order_by
        ranks: list[int] = []
        previous: tuple[Any, ...] | None = None
        current = 0
        for i, row in enumerate(ordered):
            key = tuple(row[t.column] for t in terms)
            if self._func == WindowFunc.ROW_NUMBER:
                current = i + 1
            elif i == 0 or key != previous:
                current = i + 1 if self._func == WindowFunc.RANK else current + 1
            ranks.append(current)
            previous = key
        return ranks


class FilterOperator(Operator):
    """Filter operator that applies a predicate."""

    def __init__(self, child: Operator, node: SelectRows) -> None:
        self._child = child
        self._predicate = node.predicate
        self._evaluator = ExpressionEvaluator(node.position)

    def open(self) -> None:
        self._child.open()

    def next(self) -> Row | None:
        while True:
            row = self._child.next()
            if row is None:
                return None
            if self._evaluator.predicate(self._predicate, row):
                return row

    def close(self) -> None:
        self._child.close()


class SortOperator(_MaterializedOperator):
    """Sort operator that orders rows (stable, NULLs last)."""

    def __init__(self, child: Operator, node: OrderBy) -> None:
        super().__init__(child)
        self._node = node

    def _compute(self, rows: list[Row]) -> list[Row]:
        sort_rows(rows, self._node.terms, self._node.position)
        return rows


class ProjectOperator(Operator):
    """Project operator that keeps specific columns."""

    def __init__(self, child: Operator, columns: Sequence[str]) -> None:
        self._child = child
        self._columns = tuple(columns)

    def open(self) -> None:
        self._child.open()

    def next(self) -> Row | None:
        row = self._child.next()
        if row is None:
            return None
        return {c: row[c] for c in self._columns}

    def close(self) -> None:
        self._child.close()


class Interpreter:
    """Evaluates pipelines against in-memory tables.

    Example:
        >>> table = InMemoryTable.from_records([{"x": 2}, {"x": 1}])
        >>> p = Pipeline.describe_table("t", ["x"]).order_by(["x"])
        >>> Interpreter().run(p, table).column("x")
        [1, 2]
    """

    def __init__(self, window_row_order: WindowRowOrder = WindowRowOrder.PARTITION) -> None:
        self._window_row_order = window_row_order

    @property
    def window_row_order(self) -> WindowRowOrder:
        return self._window_row_order

    def run(
        self,
        pipeline: Pipeline,
        table: InMemoryTable | Sequence[Mapping[str, Any]],
    ) -> InMemoryTable:
        """Evaluate ``pipeline`` over ``table``.

        Plain records are scanned as given: keys outside the declared
        columns are ignored and a record lacking a declared column raises.

        Args:
            pipeline: The pipeline to evaluate.
            table: Source rows for the pipeline's table reference.

        Returns:
            A new table with the pipeline's output columns.

        Raises:
            TypeMismatch: Operand types are incompatible in some row.
            MissingColumn: The source lacks a declared column.
        """
        if not isinstance(table, InMemoryTable):
            table = InMemoryTable(pipeline.source_table.columns, tuple(table))
        operator = self.build(pipeline, table)
        return InMemoryTable(pipeline.columns, tuple(operator))

    def build(self, pipeline: Pipeline, table: InMemoryTable) -> Operator:
        """Build the operator tree for a pipeline over a table."""
        operator: Operator = ScanOperator(table, pipeline.source_table)
        for node in pipeline.operators():
            operator = self._build_operator(node, operator)
        return operator

    def _build_operator(self, node: OperatorNode, child: Operator) -> Operator:
        if isinstance(node, Extend):
            if node.is_window:
                return WindowOperator(child, node, self._window_row_order)
            return ExtendOperator(child, node)
        elif isinstance(node, SelectRows):
            return FilterOperator(child, node)
        elif isinstance(node, OrderBy):
            return SortOperator(child, node)
        elif isinstance(node, (SelectColumns, DropColumns)):
            return ProjectOperator(child, node.columns)
        elif isinstance(node, Materialize):
            return child
        raise EvalError(f"unsupported plan node: {node.kind}", node.position)


def interpret(
    pipeline: Pipeline,
    table: InMemoryTable | Sequence[Mapping[str, Any]],
    window_row_order: WindowRowOrder = WindowRowOrder.PARTITION,
) -> InMemoryTable:
    """Evaluate ``pipeline`` over ``table`` with a one-off interpreter."""
    return Interpreter(window_row_order).run(pipeline, table)
