"""Expression variants used by operator nodes.

Expressions form a small closed set of tagged variants so the SQL
compiler and the in-memory interpreter can both match on them
exhaustively:

    ColumnRef       reference to an upstream column
    Literal         constant (None, bool, int, float or str)
    WindowFunction  rank(), dense_rank(), row_number()
    Comparison      =, !=, <, <=, >, >=
    Arithmetic      +, -, *, /
    Logical         AND, OR, NOT
    IsNull          IS NULL / IS NOT NULL
    FunctionCall    scalar function from ScalarFunction

Python operators build expressions:

    >>> expr = (col("score") * 2 >= 1) & col("active")
    >>> str(expr)
    '((score * 2) >= 1) AND active'

``==`` keeps its structural meaning; use :meth:`Expression.eq` and
:meth:`Expression.ne` for SQL equality.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from plan_engine.domain.value_objects.dialect import ScalarFunction, WindowFunc

LiteralValue = Optional[Union[bool, int, float, str]]


class ComparisonOp(Enum):
    """Comparison operators for predicates."""

    EQ = "="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="


class ArithmeticOp(Enum):
    """Binary arithmetic operators."""

    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"


class LogicalOp(Enum):
    """Logical operators for combining predicates."""

    AND = "AND"
    OR = "OR"
    NOT = "NOT"


# Expected argument counts per scalar function: (min, max); None means unbounded
FUNCTION_ARITY: dict[ScalarFunction, tuple[int, int | None]] = {
    ScalarFunction.ABS: (1, 1),
    ScalarFunction.ROUND: (1, 2),
    ScalarFunction.LOWER: (1, 1),
    ScalarFunction.UPPER: (1, 1),
    ScalarFunction.COALESCE: (1, None),
    ScalarFunction.SQRT: (1, 1),
    ScalarFunction.EXP: (1, 1),
    ScalarFunction.LN: (1, 1),
}


@dataclass(frozen=True)
class Expression(ABC):
    """Base class for expressions."""

    @abstractmethod
    def columns(self) -> frozenset[str]:
        """Names of all columns the expression reads."""

    @abstractmethod
    def children(self) -> tuple[Expression, ...]:
        """Direct sub-expressions."""

    @abstractmethod
    def __str__(self) -> str:
        pass

    def contains_window(self) -> bool:
        """Whether a window function appears anywhere in the expression."""
        return isinstance(self, WindowFunction) or any(
            c.contains_window() for c in self.children()
        )

    # SQL equality; ``==`` stays structural so plans can be compared

    def eq(self, other: Any) -> Comparison:
        return Comparison(ComparisonOp.EQ, self, as_expression(other))

    def ne(self, other: Any) -> Comparison:
        return Comparison(ComparisonOp.NE, self, as_expression(other))

    def is_null(self) -> IsNull:
        return IsNull(self)

    def is_not_null(self) -> IsNull:
        return IsNull(self, negated=True)

    def __lt__(self, other: Any) -> Comparison:
        return Comparison(ComparisonOp.LT, self, as_expression(other))

    def __le__(self, other: Any) -> Comparison:
        return Comparison(ComparisonOp.LE, self, as_expression(other))

    def __gt__(self, other: Any) -> Comparison:
        return Comparison(ComparisonOp.GT, self, as_expression(other))

    def __ge__(self, other: Any) -> Comparison:
        return Comparison(ComparisonOp.GE, self, as_expression(other))

    def __add__(self, other: Any) -> Arithmetic:
        return Arithmetic(ArithmeticOp.ADD, self, as_expression(other))

    def __radd__(self, other: Any) -> Arithmetic:
        return Arithmetic(ArithmeticOp.ADD, as_expression(other), self)

    def __sub__(self, other: Any) -> Arithmetic:
        return Arithmetic(ArithmeticOp.SUB, self, as_expression(other))

    def __rsub__(self, other: Any) -> Arithmetic:
        return Arithmetic(ArithmeticOp.SUB, as_expression(other), self)

    def __mul__(self, other: Any) -> Arithmetic:
        return Arithmetic(ArithmeticOp.MUL, self, as_expression(other))

    def __rmul__(self, other: Any) -> Arithmetic:
        return Arithmetic(ArithmeticOp.MUL, as_expression(other), self)

    def __truediv__(self, other: Any) -> Arithmetic:
        return Arithmetic(ArithmeticOp.DIV, self, as_expression(other))

    def __rtruediv__(self, other: Any) -> Arithmetic:
        return Arithmetic(ArithmeticOp.DIV, as_expression(other), self)

    def __and__(self, other: Any) -> Logical:
        return Logical(LogicalOp.AND, (self, as_expression(other)))

    def __or__(self, other: Any) -> Logical:
        return Logical(LogicalOp.OR, (self, as_expression(other)))

    def __invert__(self) -> Logical:
        return Logical(LogicalOp.NOT, (self,))


def _operand(expr: Expression) -> str:
    """Render a sub-expression, parenthesizing compound ones."""
    if isinstance(expr, (Comparison, Arithmetic, Logical, IsNull)):
        return f"({expr})"
    return str(expr)


@dataclass(frozen=True, eq=True)
class ColumnRef(Expression):
    """Column reference expression."""

    name: str

    def columns(self) -> frozenset[str]:
        return frozenset({self.name})

    def children(self) -> tuple[Expression, ...]:
        return ()

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, eq=True)
class Literal(Expression):
    """Literal value expression."""

    value: LiteralValue

    def __post_init__(self) -> None:
        if self.value is not None and not isinstance(self.value, (bool, int, float, str)):
            raise TypeError(
                f"unsupported literal type {type(self.value).__name__}: {self.value!r}"
            )
        if isinstance(self.value, float) and not math.isfinite(self.value):
            raise ValueError(f"literal must be a finite number, got {self.value!r}")

    def columns(self) -> frozenset[str]:
        return frozenset()

    def children(self) -> tuple[Expression, ...]:
        return ()

    def __str__(self) -> str:
        if self.value is None:
            return "NULL"
        if isinstance(self.value, bool):
            return "TRUE" if self.value else "FALSE"
        if isinstance(self.value, str):
            escaped = self.value.replace("'", "''")
            return f"'{escaped}'"
        return repr(self.value)


@dataclass(frozen=True, eq=True)
class WindowFunction(Expression):
    """Ranking window function; evaluated over the node's window spec."""

    func: WindowFunc

    def columns(self) -> frozenset[str]:
        return frozenset()

    def children(self) -> tuple[Expression, ...]:
        return ()

    def __str__(self) -> str:
        return f"{self.func.value}()"


@dataclass(frozen=True, eq=True)
class Comparison(Expression):
    """Comparison expression (e.g., col <= 2)."""

    op: ComparisonOp
    left: Expression
    right: Expression

    def columns(self) -> frozenset[str]:
        return self.left.columns() | self.right.columns()

    def children(self) -> tuple[Expression, ...]:
        return (self.left, self.right)

    def __str__(self) -> str:
        return f"{_operand(self.left)} {self.op.value} {_operand(self.right)}"


@dataclass(frozen=True, eq=True)
class Arithmetic(Expression):
    """Binary arithmetic expression."""

    op: ArithmeticOp
    left: Expression
    right: Expression

    def columns(self) -> frozenset[str]:
        return self.left.columns() | self.right.columns()

    def children(self) -> tuple[Expression, ...]:
        return (self.left, self.right)

    def __str__(self) -> str:
        return f"{_operand(self.left)} {self.op.value} {_operand(self.right)}"


@dataclass(frozen=True, eq=True)
class Logical(Expression):
    """Logical expression combining other expressions."""

    op: LogicalOp
    operands: tuple[Expression, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "operands", tuple(self.operands))
        if self.op == LogicalOp.NOT and len(self.operands) != 1:
            raise ValueError("NOT takes exactly one operand")
        if self.op != LogicalOp.NOT and len(self.operands) < 2:
            raise ValueError(f"{self.op.value} takes at least two operands")

    def columns(self) -> frozenset[str]:
        return frozenset().union(*(o.columns() for o in self.operands))

    def children(self) -> tuple[Expression, ...]:
        return self.operands

    def __str__(self) -> str:
        if self.op == LogicalOp.NOT:
            return f"NOT {_operand(self.operands[0])}"
        return f" {self.op.value} ".join(_operand(o) for o in self.operands)


@dataclass(frozen=True, eq=True)
class IsNull(Expression):
    """Null test."""

    operand: Expression
    negated: bool = False

    def columns(self) -> frozenset[str]:
        return self.operand.columns()

    def children(self) -> tuple[Expression, ...]:
        return (self.operand,)

    def __str__(self) -> str:
        test = "IS NOT NULL" if self.negated else "IS NULL"
        return f"{_operand(self.operand)} {test}"


@dataclass(frozen=True, eq=True)
class FunctionCall(Expression):
    """Scalar function call."""

    function: ScalarFunction
    args: tuple[Expression, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))
        low, high = FUNCTION_ARITY[self.function]
        if len(self.args) < low or (high is not None and len(self.args) > high):
            expected = str(low) if low == high else f"{low}..{high or 'n'}"
            raise ValueError(
                f"{self.function.value}() takes {expected} argument(s), got {len(self.args)}"
            )

    def columns(self) -> frozenset[str]:
        return frozenset().union(*(a.columns() for a in self.args))

    def children(self) -> tuple[Expression, ...]:
        return self.args

    def __str__(self) -> str:
        return f"{self.function.value}({', '.join(str(a) for a in self.args)})"


def as_expression(value: Any) -> Expression:
    """Wrap plain Python values as literals; expressions pass through."""
    if isinstance(value, Expression):
        return value
    return Literal(value)


def col(name: str) -> ColumnRef:
    """Reference a column by name."""
    return ColumnRef(name)


def lit(value: LiteralValue) -> Literal:
    """Build a literal."""
    return Literal(value)


def rank() -> WindowFunction:
    """SQL RANK(): ties share a rank and the next rank skips the tie count."""
    return WindowFunction(WindowFunc.RANK)


def dense_rank() -> WindowFunction:
    """SQL DENSE_RANK(): ties share a rank and the next rank is one higher."""
    return WindowFunction(WindowFunc.DENSE_RANK)


def row_number() -> WindowFunction:
    """SQL ROW_NUMBER(): 1-based position within the window ordering."""
    return WindowFunction(WindowFunc.ROW_NUMBER)


def fn(function: ScalarFunction | str, *args: Any) -> FunctionCall:
    """Call a scalar function, e.g. ``fn("abs", col("x"))``."""
    if isinstance(function, str):
        function = ScalarFunction(function.lower())
    return FunctionCall(function, tuple(as_expression(a) for a in args))
