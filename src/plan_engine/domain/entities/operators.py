"""Operator nodes and the pipeline value.

Each operator node describes one relational transformation over exactly
one upstream input (another node or a table reference). Nodes validate
their column references against the upstream's output columns when they
are constructed, so an invalid pipeline can never exist.

Node kinds:
    Extend          add or overwrite a computed (optionally windowed) column
    SelectRows      keep rows satisfying a predicate
    OrderBy         order rows by columns
    SelectColumns   keep an ordered subset of columns
    DropColumns     remove columns
    Materialize     terminal: persist the result under a new table name
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import ClassVar, Union

from plan_engine.domain.entities.expressions import Expression, WindowFunction
from plan_engine.domain.errors import (
    ColumnKindMismatch,
    EmptyOrdering,
    EmptySelection,
    PipelineTerminated,
    UnknownColumn,
)
from plan_engine.domain.value_objects.schema import (
    OrderTerm,
    TableRef,
    WindowSpec,
    unique_columns,
)


def node_position(node: PlanNode) -> int:
    """Position of a node in its chain; the table reference is 0."""
    if isinstance(node, TableRef):
        return 0
    return node.position


def _check_columns(needed: Iterable[str], source: PlanNode, position: int) -> None:
    missing = set(needed) - set(source.columns)
    if missing:
        raise UnknownColumn(missing, source.columns, position)


def _format_names(names: Iterable[str]) -> str:
    return f"[{', '.join(names)}]"


@dataclass(frozen=True)
class OperatorNode(ABC):
    """Base class for operator nodes.

    Attributes:
        source: The single upstream input
        columns: Output column names (computed at construction)
        position: Index of this node in the chain (computed at construction)
    """

    kind: ClassVar[str]
    terminal: ClassVar[bool] = False

    source: PlanNode
    columns: tuple[str, ...] = field(init=False, compare=False)
    position: int = field(init=False, compare=False)

    def __post_init__(self) -> None:
        position = node_position(self.source) + 1
        if isinstance(self.source, OperatorNode) and self.source.terminal:
            raise PipelineTerminated(
                f"cannot add {self.kind} after {self.source.kind}", position
            )
        object.__setattr__(self, "position", position)
        self._validate()
        object.__setattr__(self, "columns", self._output_columns())

    @abstractmethod
    def _validate(self) -> None:
        """Check the payload against the upstream columns."""

    def _output_columns(self) -> tuple[str, ...]:
        return self.source.columns

    @abstractmethod
    def columns_read(self) -> frozenset[str]:
        """Upstream columns the node itself reads."""

    @abstractmethod
    def parameters(self) -> str:
        """Canonical rendering of the node's payload."""

    def __str__(self) -> str:
        return f"{self.kind}({self.parameters()})"


@dataclass(frozen=True)
class Extend(OperatorNode):
    """Add (or overwrite) a column computed from an expression.

    When ``window`` is set the expression must be a window function and is
    evaluated over the window's partitions and ordering.
    """

    kind: ClassVar[str] = "Extend"

    name: str
    expression: Expression
    window: WindowSpec | None = None

    def _validate(self) -> None:
        if not self.name:
            raise ValueError("extended column name must be non-empty")
        if self.window is not None and not isinstance(self.expression, WindowFunction):
            raise ColumnKindMismatch(
                f"window specification given for non-window expression {self.expression}",
                self.position,
            )
        if isinstance(self.expression, WindowFunction):
            if self.window is None:
                raise ColumnKindMismatch(
                    f"{self.expression} requires a window specification", self.position
                )
        elif self.expression.contains_window():
            raise ColumnKindMismatch(
                f"window function nested inside {self.expression}", self.position
            )
        _check_columns(self.columns_read(), self.source, self.position)

    def _output_columns(self) -> tuple[str, ...]:
        upstream = self.source.columns
        if self.name in upstream:
            return upstream
        return upstream + (self.name,)

    @property
    def is_window(self) -> bool:
        return self.window is not None

    def columns_read(self) -> frozenset[str]:
        cols = self.expression.columns()
        if self.window is not None:
            cols |= self.window.columns_read()
        return cols

    def parameters(self) -> str:
        text = f"{self.name}={self.expression}"
        if self.window is not None:
            text += f", {self.window}"
        return text


@dataclass(frozen=True)
class SelectRows(OperatorNode):
    """Keep rows for which the predicate is true."""

    kind: ClassVar[str] = "SelectRows"

    predicate: Expression

    def _validate(self) -> None:
        if self.predicate.contains_window():
            raise ColumnKindMismatch(
                "window functions are not allowed in row predicates; "
                "extend a ranked column first",
                self.position,
            )
        _check_columns(self.columns_read(), self.source, self.position)

    def columns_read(self) -> frozenset[str]:
        return self.predicate.columns()

    def parameters(self) -> str:
        return str(self.predicate)


@dataclass(frozen=True)
class OrderBy(OperatorNode):
    """Order rows by one or more columns."""

    kind: ClassVar[str] = "OrderBy"

    terms: tuple[OrderTerm, ...]

    def _validate(self) -> None:
        object.__setattr__(self, "terms", tuple(self.terms))
        if not self.terms:
            raise EmptyOrdering("order_by requires at least one column", self.position)
        _check_columns(self.columns_read(), self.source, self.position)

    def columns_read(self) -> frozenset[str]:
        return frozenset(t.column for t in self.terms)

    def parameters(self) -> str:
        return ", ".join(str(t) for t in self.terms)


@dataclass(frozen=True)
class SelectColumns(OperatorNode):
    """Keep only the named columns, in the given order."""

    kind: ClassVar[str] = "SelectColumns"

    selected: tuple[str, ...]

    def _validate(self) -> None:
        object.__setattr__(self, "selected", unique_columns(self.selected, self.position))
        if not self.selected:
            raise EmptySelection("select_columns requires at least one column", self.position)
        _check_columns(self.selected, self.source, self.position)

    def _output_columns(self) -> tuple[str, ...]:
        return self.selected

    def columns_read(self) -> frozenset[str]:
        return frozenset(self.selected)

    def parameters(self) -> str:
        return _format_names(self.selected)


@dataclass(frozen=True)
class DropColumns(OperatorNode):
    """Remove the named columns."""

    kind: ClassVar[str] = "DropColumns"

    dropped: tuple[str, ...]

    def _validate(self) -> None:
        object.__setattr__(self, "dropped", unique_columns(self.dropped, self.position))
        _check_columns(self.dropped, self.source, self.position)
        if not self._output_columns():
            raise EmptySelection("drop_columns would remove every column", self.position)

    def _output_columns(self) -> tuple[str, ...]:
        return tuple(c for c in self.source.columns if c not in self.dropped)

    def columns_read(self) -> frozenset[str]:
        return frozenset()

    def parameters(self) -> str:
        return _format_names(self.dropped)


@dataclass(frozen=True)
class Materialize(OperatorNode):
    """Terminal marker requesting persistence of the result."""

    kind: ClassVar[str] = "Materialize"
    terminal: ClassVar[bool] = True

    table_name: str
    temporary: bool = False

    def _validate(self) -> None:
        if not self.table_name:
            raise ValueError("materialized table name must be non-empty")

    def columns_read(self) -> frozenset[str]:
        return frozenset()

    def parameters(self) -> str:
        return f"name={self.table_name!r}, temporary={self.temporary}"

    def as_table(self) -> TableRef:
        """Table reference describing the persisted result."""
        return TableRef(self.table_name, self.columns, temporary=self.temporary)


PlanNode = Union[TableRef, OperatorNode]


@dataclass(frozen=True)
class Pipeline:
    """An immutable chain of operator nodes rooted at a table reference.

    Holds no connection, cursor or data; compile it, interpret it or
    introspect it as many times as needed. Every builder method returns a
    new pipeline wrapping this one.

    Example:
        >>> p = (
        ...     Pipeline.describe_table("d", ["user_name", "product", "score"])
        ...     .extend("simple_rank", "rank()", partition_by=["user_name"],
        ...             order_by=["score"], reverse=True)
        ...     .select_rows("simple_rank <= 2")
        ... )
        >>> p.columns
        ('user_name', 'product', 'score', 'simple_rank')
    """

    node: PlanNode

    @classmethod
    def from_table(cls, table: TableRef) -> Pipeline:
        return cls(table)

    @classmethod
    def describe_table(
        cls, name: str, columns: Sequence[str], temporary: bool = False
    ) -> Pipeline:
        """Start a pipeline from a table name and its declared columns."""
        return cls(TableRef(name, tuple(columns), temporary=temporary))

    @property
    def columns(self) -> tuple[str, ...]:
        return self.node.columns

    @property
    def source_table(self) -> TableRef:
        node = self.node
        while isinstance(node, OperatorNode):
            node = node.source
        return node

    @property
    def is_terminated(self) -> bool:
        return isinstance(self.node, OperatorNode) and self.node.terminal

    def chain(self) -> tuple[PlanNode, ...]:
        """All nodes from the table reference to the terminal node."""
        nodes: list[PlanNode] = []
        node: PlanNode = self.node
        while isinstance(node, OperatorNode):
            nodes.append(node)
            node = node.source
        nodes.append(node)
        return tuple(reversed(nodes))

    def operators(self) -> tuple[OperatorNode, ...]:
        return tuple(n for n in self.chain() if isinstance(n, OperatorNode))

    # Builder shortcuts; see plan_engine.domain.services.builder

    def extend(
        self,
        name: str,
        expression: Expression | str,
        partition_by: Sequence[str] | str = (),
        order_by: Sequence[str] | str = (),
        reverse: Iterable[str] | bool = (),
        window: WindowSpec | None = None,
    ) -> Pipeline:
        from plan_engine.domain.services import builder

        return builder.extend(
            self, name, expression,
            partition_by=partition_by, order_by=order_by, reverse=reverse, window=window,
        )

    def select_rows(self, predicate: Expression | str) -> Pipeline:
        from plan_engine.domain.services import builder

        return builder.select_rows(self, predicate)

    def order_by(
        self, columns: Sequence[str] | str, reverse: Iterable[str] | bool = ()
    ) -> Pipeline:
        from plan_engine.domain.services import builder

        return builder.order_by(self, columns, reverse=reverse)

    def select_columns(self, columns: Sequence[str] | str) -> Pipeline:
        from plan_engine.domain.services import builder

        return builder.select_columns(self, columns)

    def drop_columns(self, columns: Sequence[str] | str) -> Pipeline:
        from plan_engine.domain.services import builder

        return builder.drop_columns(self, columns)

    def materialize(self, table_name: str, temporary: bool = False) -> Pipeline:
        from plan_engine.domain.services import builder

        return builder.materialize(self, table_name, temporary=temporary)

    def __str__(self) -> str:
        from plan_engine.domain.services.introspector import render

        return render(self)


__all__ = [
    "DropColumns",
    "Extend",
    "Materialize",
    "OperatorNode",
    "OrderBy",
    "Pipeline",
    "PlanNode",
    "SelectColumns",
    "SelectRows",
    "node_position",
]
