"""Domain services for pipelines.

Services are pure functions and small stateless classes over the
immutable pipeline values: building, compiling to SQL, interpreting in
memory and introspecting.
"""

from plan_engine.domain.services.builder import (
    drop_columns,
    extend,
    materialize,
    order_by,
    select_columns,
    select_rows,
)
from plan_engine.domain.services.evaluator import ExpressionEvaluator
from plan_engine.domain.services.interpreter import Interpreter, Operator, interpret
from plan_engine.domain.services.introspector import (
    DiagramEdge,
    DiagramNode,
    PlanDiagram,
    columns_used,
    diagram,
    output_columns,
    render,
)
from plan_engine.domain.services.sql_compiler import SQLCompiler, compile_pipeline

__all__ = [
    # Builder
    "extend",
    "select_rows",
    "order_by",
    "select_columns",
    "drop_columns",
    "materialize",
    # Compiler
    "SQLCompiler",
    "compile_pipeline",
    # Interpreter
    "ExpressionEvaluator",
    "Interpreter",
    "Operator",
    "interpret",
    # Introspector
    "output_columns",
    "columns_used",
    "render",
    "diagram",
    "PlanDiagram",
    "DiagramNode",
    "DiagramEdge",
]
