"""Inbound adapters for the plan engine.

Inbound adapters convert caller-supplied text into domain values.

Exports:
    Expression Parser:
        - ExpressionParser: sqlglot-based parser for expression text
        - parse_expression: parse with the default parser
"""

from plan_engine.adapters.inbound.expression_parser import (
    ExpressionParser,
    parse_expression,
)

__all__ = [
    "ExpressionParser",
    "parse_expression",
]
