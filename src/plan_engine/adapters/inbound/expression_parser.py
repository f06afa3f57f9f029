"""Expression parser using sqlglot.

Converts SQL expression text such as ``"simple_rank <= 2"`` or ``"rank()"``
into the engine's expression variants, so pipelines can be written with
short textual predicates instead of nested constructor calls.

Supported syntax:
    - column references (bare or double-quoted identifiers)
    - numeric, string, boolean and NULL literals
    - comparisons: =, <>, !=, <, <=, >, >=
    - arithmetic: +, -, *, /, unary minus
    - AND, OR, NOT, IS [NOT] NULL, parentheses
    - rank(), dense_rank(), row_number()
    - abs, round, lower, upper, coalesce, sqrt, exp, ln

Window clauses (``OVER (...)``) are not accepted in text; pass the window
via the builder's ``partition_by`` / ``order_by`` arguments.

References:
    - sqlglot documentation: https://sqlglot.com/
"""

from __future__ import annotations

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

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
)
from plan_engine.domain.errors import ExpressionSyntaxError
from plan_engine.domain.value_objects.dialect import ScalarFunction, WindowFunc

_COMPARISONS: dict[type[exp.Expression], ComparisonOp] = {
    exp.EQ: ComparisonOp.EQ,
    exp.NEQ: ComparisonOp.NE,
    exp.LT: ComparisonOp.LT,
    exp.LTE: ComparisonOp.LE,
    exp.GT: ComparisonOp.GT,
    exp.GTE: ComparisonOp.GE,
}

_ARITHMETIC: dict[type[exp.Expression], ArithmeticOp] = {
    exp.Add: ArithmeticOp.ADD,
    exp.Sub: ArithmeticOp.SUB,
    exp.Mul: ArithmeticOp.MUL,
    exp.Div: ArithmeticOp.DIV,
}

_WINDOW_FUNCTIONS = {f.value.upper(): f for f in WindowFunc}
_SCALAR_FUNCTIONS = {f.value.upper(): f for f in ScalarFunction}


class ExpressionParser:
    """Expression parser using sqlglot.

    Example:
        >>> parser = ExpressionParser()
        >>> print(parser.parse("simple_rank <= 2"))
        simple_rank <= 2
    """

    def __init__(self, dialect: str = "duckdb") -> None:
        """Initialize the parser.

        Args:
            dialect: SQL dialect used to tokenize the text (default: duckdb).
        """
        self._dialect = dialect

    def parse(self, text: str, position: int | None = None) -> Expression:
        """Parse expression text.

        Args:
            text: The expression text.
            position: Chain position reported in errors.

        Returns:
            The parsed expression.

        Raises:
            ExpressionSyntaxError: If the text is invalid or unsupported.
        """
        if not text or not text.strip():
            raise ExpressionSyntaxError("empty expression", position)
        try:
            tree = sqlglot.parse_one(text, dialect=self._dialect)
        except SqlglotError as e:
            raise ExpressionSyntaxError(f"failed to parse {text!r}: {e}", position) from e
        if tree is None:
            raise ExpressionSyntaxError(f"failed to parse {text!r}", position)
        return self._convert(tree, text, position)

    def _convert(self, node: exp.Expression, text: str, position: int | None) -> Expression:
        """Convert a sqlglot expression to our internal representation."""
        if isinstance(node, exp.Paren):
            return self._convert(node.this, text, position)
        if isinstance(node, exp.Column):
            if node.table:
                raise ExpressionSyntaxError(
                    f"qualified column {node.sql()!r} not supported in {text!r}", position
                )
            return ColumnRef(node.name)
        if isinstance(node, exp.Literal):
            try:
                return Literal(self._literal_value(node))
            except ValueError as e:
                raise ExpressionSyntaxError(f"{e} in {text!r}", position) from e
        if isinstance(node, exp.Boolean):
            return Literal(bool(node.this))
        if isinstance(node, exp.Null):
            return Literal(None)
        if isinstance(node, exp.Neg):
            operand = self._convert(node.this, text, position)
            if isinstance(operand, Literal) and isinstance(operand.value, (int, float)) \
                    and not isinstance(operand.value, bool):
                return Literal(-operand.value)
            return Arithmetic(ArithmeticOp.SUB, Literal(0), operand)
        if type(node) in _COMPARISONS:
            return Comparison(
                _COMPARISONS[type(node)],
                self._convert(node.left, text, position),
                self._convert(node.right, text, position),
            )
        if type(node) in _ARITHMETIC:
            return Arithmetic(
                _ARITHMETIC[type(node)],
                self._convert(node.left, text, position),
                self._convert(node.right, text, position),
            )
        if isinstance(node, (exp.And, exp.Or)):
            op = LogicalOp.AND if isinstance(node, exp.And) else LogicalOp.OR
            return Logical(
                op,
                (
                    self._convert(node.left, text, position),
                    self._convert(node.right, text, position),
                ),
            )
        if isinstance(node, exp.Not):
            if isinstance(node.this, exp.Is):
                is_null = self._convert(node.this, text, position)
                if isinstance(is_null, IsNull):
                    return IsNull(is_null.operand, negated=not is_null.negated)
            return Logical(LogicalOp.NOT, (self._convert(node.this, text, position),))
        if isinstance(node, exp.Is):
            if not isinstance(node.expression, exp.Null):
                raise ExpressionSyntaxError(
                    f"only IS [NOT] NULL is supported in {text!r}", position
                )
            return IsNull(self._convert(node.this, text, position))
        if isinstance(node, exp.Window):
            raise ExpressionSyntaxError(
                f"OVER clauses are not supported in expression text {text!r}; "
                "pass partition_by/order_by to extend()",
                position,
            )
        if isinstance(node, exp.Func):
            return self._convert_function(node, text, position)
        raise ExpressionSyntaxError(
            f"unsupported expression {type(node).__name__} in {text!r}", position
        )

    def _convert_function(
        self, node: exp.Func, text: str, position: int | None
    ) -> Expression:
        """Convert a function call to a window function or scalar call."""
        if isinstance(node, exp.Anonymous):
            name = str(node.this).upper()
            raw_args = list(node.expressions)
        else:
            name = node.sql_name().upper()
            raw_args = self._function_args(node)

        if name in _WINDOW_FUNCTIONS:
            if raw_args:
                raise ExpressionSyntaxError(f"{name.lower()}() takes no arguments", position)
            return WindowFunction(_WINDOW_FUNCTIONS[name])
        if name in _SCALAR_FUNCTIONS:
            args = tuple(self._convert(a, text, position) for a in raw_args)
            try:
                return FunctionCall(_SCALAR_FUNCTIONS[name], args)
            except ValueError as e:
                raise ExpressionSyntaxError(str(e), position) from e
        raise ExpressionSyntaxError(f"unknown function {name.lower()}() in {text!r}", position)

    @staticmethod
    def _function_args(node: exp.Func) -> list[exp.Expression]:
        """Positional arguments of a typed sqlglot function, in declaration order."""
        args: list[exp.Expression] = []
        for key in node.arg_types:
            value = node.args.get(key)
            if value is None:
                continue
            if isinstance(value, list):
                args.extend(v for v in value if isinstance(v, exp.Expression))
            elif isinstance(value, exp.Expression):
                args.append(value)
        return args

    @staticmethod
    def _literal_value(node: exp.Literal) -> int | float | str:
        if node.is_string:
            return node.this
        try:
            return int(node.this)
        except ValueError:
            return float(node.this)


_default_parser = ExpressionParser()


def parse_expression(text: str, position: int | None = None) -> Expression:
    """Parse expression text with the default (duckdb) parser."""
    return _default_parser.parse(text, position)
