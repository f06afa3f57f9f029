"""Domain entities: expressions, operator nodes, pipelines and tables."""

from plan_engine.domain.entities.expressions import (
    Arithmetic,
    ArithmeticOp,
    ColumnRef,
    Comparison,
    ComparisonOp,
    Expression,
    FunctionCall,
    IsNull,
    Literal,
    Logical,
    LogicalOp,
    WindowFunction,
    as_expression,
    col,
    dense_rank,
    fn,
    lit,
    rank,
    row_number,
)
from plan_engine.domain.entities.operators import (
    DropColumns,
    Extend,
    Materialize,
    OperatorNode,
    OrderBy,
    Pipeline,
    PlanNode,
    SelectColumns,
    SelectRows,
    node_position,
)
from plan_engine.domain.entities.table import InMemoryTable

__all__ = [
    # Expressions
    "Expression",
    "ColumnRef",
    "Literal",
    "WindowFunction",
    "Comparison",
    "ComparisonOp",
    "Arithmetic",
    "ArithmeticOp",
    "Logical",
    "LogicalOp",
    "IsNull",
    "FunctionCall",
    "as_expression",
    "col",
    "lit",
    "rank",
    "dense_rank",
    "row_number",
    "fn",
    # Operator nodes
    "OperatorNode",
    "Extend",
    "SelectRows",
    "OrderBy",
    "SelectColumns",
    "DropColumns",
    "Materialize",
    "Pipeline",
    "PlanNode",
    "node_position",
    # Tables
    "InMemoryTable",
]
