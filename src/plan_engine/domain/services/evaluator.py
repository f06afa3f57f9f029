"""Row-level expression evaluation with SQL semantics.

Evaluation follows the reference backend rather than Python:
    - NULL (None) propagates through arithmetic, comparisons and functions
    - AND / OR / NOT use three-valued logic
    - ``/`` is true division and division by zero yields NULL
    - ROUND rounds the binary double half away from zero, so
      round(0.285, 2) is 0.28 as in the backend
    - overflow (exp(1000), for instance) raises EvalError
    - values of different kinds (number, string, boolean) never compare
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

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
from plan_engine.domain.errors import EvalError, MissingColumn, TypeMismatch
from plan_engine.domain.value_objects.dialect import ScalarFunction


def value_kind(value: Any) -> str:
    """SQL kind of a Python value: null, boolean, number or string."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


class ExpressionEvaluator:
    """Evaluates expressions against single rows.

    Args:
        position: Chain position of the node being evaluated, reported in errors.
    """

    def __init__(self, position: int | None = None) -> None:
        self._position = position

    def evaluate(self, expr: Expression, row: Mapping[str, Any]) -> Any:
        """Evaluate an expression against a row.

        Raises:
            TypeMismatch: Operand types are incompatible.
            MissingColumn: The row lacks a referenced column.
            EvalError: Any other evaluation failure (e.g. ln of a negative).
        """
        if isinstance(expr, ColumnRef):
            try:
                return row[expr.name]
            except KeyError:
                raise MissingColumn(f"row has no column {expr.name!r}", self._position) from None
        if isinstance(expr, Literal):
            return expr.value
        if isinstance(expr, Comparison):
            return self._compare(
                expr.op, self.evaluate(expr.left, row), self.evaluate(expr.right, row)
            )
        if isinstance(expr, Arithmetic):
            left, right = self.evaluate(expr.left, row), self.evaluate(expr.right, row)
            try:
                return self._arithmetic(expr.op, left, right)
            except OverflowError as e:
                raise EvalError(f"{expr} is out of range: {e}", self._position) from e
        if isinstance(expr, Logical):
            return self._logical(expr, row)
        if isinstance(expr, IsNull):
            is_null = self.evaluate(expr.operand, row) is None
            return not is_null if expr.negated else is_null
        if isinstance(expr, FunctionCall):
            args = [self.evaluate(a, row) for a in expr.args]
            try:
                return self._call(expr.function, args)
            except OverflowError as e:
                raise EvalError(f"{expr} is out of range: {e}", self._position) from e
        if isinstance(expr, WindowFunction):
            raise EvalError(f"{expr} is only valid as a windowed extend", self._position)
        raise EvalError(f"unsupported expression {type(expr).__name__}", self._position)

    def predicate(self, expr: Expression, row: Mapping[str, Any]) -> bool:
        """Evaluate a predicate; only an exact True keeps the row."""
        value = self.evaluate(expr, row)
        if value is not None and not isinstance(value, bool):
            raise TypeMismatch(
                f"predicate {expr} produced {value_kind(value)} {value!r}, expected boolean",
                self._position,
            )
        return value is True

    def _mismatch(self, what: str, *values: Any) -> TypeMismatch:
        kinds = ", ".join(f"{value_kind(v)} {v!r}" for v in values)
        return TypeMismatch(f"{what} not defined for {kinds}", self._position)

    def _compare(self, op: ComparisonOp, left: Any, right: Any) -> bool | None:
        """Compare two values with the given operator."""
        if left is None or right is None:
            return None
        if value_kind(left) != value_kind(right):
            raise self._mismatch(f"comparison {op.value}", left, right)
        if op == ComparisonOp.EQ:
            return left == right
        elif op == ComparisonOp.NE:
            return left != right
        elif op == ComparisonOp.LT:
            return left < right
        elif op == ComparisonOp.LE:
            return left <= right
        elif op == ComparisonOp.GT:
            return left > right
        elif op == ComparisonOp.GE:
            return left >= right
        raise EvalError(f"unknown comparison {op}", self._position)

    def _arithmetic(self, op: ArithmeticOp, left: Any, right: Any) -> Any:
        if left is None or right is None:
            return None
        if value_kind(left) != "number" or value_kind(right) != "number":
            raise self._mismatch(f"operator {op.value}", left, right)
        if op == ArithmeticOp.ADD:
            return left + right
        elif op == ArithmeticOp.SUB:
            return left - right
        elif op == ArithmeticOp.MUL:
            return left * right
        elif op == ArithmeticOp.DIV:
            if right == 0:
                return None
            return left / right
        raise EvalError(f"unknown operator {op}", self._position)

    def _logical(self, expr: Logical, row: Mapping[str, Any]) -> bool | None:
        values = [self.evaluate(o, row) for o in expr.operands]
        for v in values:
            if v is not None and not isinstance(v, bool):
                raise self._mismatch(expr.op.value, v)
        if expr.op == LogicalOp.NOT:
            return None if values[0] is None else not values[0]
        if expr.op == LogicalOp.AND:
            if any(v is False for v in values):
                return False
            return None if any(v is None for v in values) else True
        if any(v is True for v in values):
            return True
        return None if any(v is None for v in values) else False

    def _call(self, function: ScalarFunction, args: list[Any]) -> Any:
        if function == ScalarFunction.COALESCE:
            return next((a for a in args if a is not None), None)
        if any(a is None for a in args):
            return None

        if function in (ScalarFunction.LOWER, ScalarFunction.UPPER):
            if value_kind(args[0]) != "string":
                raise self._mismatch(f"{function.value}()", args[0])
            return args[0].lower() if function == ScalarFunction.LOWER else args[0].upper()

        for a in args:
            if value_kind(a) != "number":
                raise self._mismatch(f"{function.value}()", *args)
        x = args[0]
        if function == ScalarFunction.ABS:
            return abs(x)
        if function == ScalarFunction.ROUND:
            return self._round(x, args[1] if len(args) > 1 else 0)
        if function == ScalarFunction.SQRT:
            if x < 0:
                raise EvalError(f"sqrt() of negative value {x!r}", self._position)
            return math.sqrt(x)
        if function == ScalarFunction.EXP:
            return math.exp(x)
        if function == ScalarFunction.LN:
            if x <= 0:
                raise EvalError(f"ln() of non-positive value {x!r}", self._position)
            return math.log(x)
        raise EvalError(f"unsupported function {function.value}()", self._position)

    def _round(self, x: int | float, digits: int | float) -> int | float:
        if not isinstance(digits, int):
            raise self._mismatch("round() precision", digits)
        if isinstance(x, int):
            return _round_int(x, digits)
        return _round_float(x, digits)


def _half_away_from_zero(value: float) -> float:
    """Nearest integral double, ties away from zero (C ``round``)."""
    if not math.isfinite(value):
        return value
    magnitude = abs(value)
    whole = math.floor(magnitude)
    if magnitude - whole >= 0.5:
        whole += 1
    return math.copysign(float(whole), value)


def _round_float(x: float, digits: int) -> float:
    # scale in binary doubles like the backend; round(0.285, 2) is 0.28
    if digits >= 0:
        modifier = 10.0 ** digits
        rounded = _half_away_from_zero(x * modifier) / modifier
        return rounded if math.isfinite(rounded) else x
    modifier = 10.0 ** -digits
    rounded = _half_away_from_zero(x / modifier) * modifier
    return rounded if math.isfinite(rounded) else 0.0


def _round_int(x: int, digits: int) -> int:
    if digits >= 0:
        return x
    modifier = 10 ** -digits
    whole, remainder = divmod(abs(x), modifier)
    if 2 * remainder >= modifier:
        whole += 1
    return whole * modifier if x >= 0 else -whole * modifier
