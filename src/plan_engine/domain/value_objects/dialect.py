"""Dialect options for SQL emission and interpreter row-order policy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class WindowFunc(Enum):
    """Window (ranking) functions."""

    RANK = "rank"
    DENSE_RANK = "dense_rank"
    ROW_NUMBER = "row_number"


class ScalarFunction(Enum):
    """Scalar functions expressions may call."""

    ABS = "abs"
    ROUND = "round"
    LOWER = "lower"
    UPPER = "upper"
    COALESCE = "coalesce"
    SQRT = "sqrt"
    EXP = "exp"
    LN = "ln"


class Dialect(Enum):
    """SQL dialects the compiler can target.

    Both dialects are generated as DuckDB-flavoured SQL; they differ in the
    set of tie policies and scalar functions they are allowed to express.
    """

    REFERENCE = "reference"
    EXTENDED_WINDOW_TIES = "extended-window-ties"

    @property
    def sqlglot_dialect(self) -> str:
        return "duckdb"

    @property
    def window_functions(self) -> frozenset[WindowFunc]:
        if self is Dialect.EXTENDED_WINDOW_TIES:
            return frozenset(WindowFunc)
        return frozenset({WindowFunc.RANK, WindowFunc.ROW_NUMBER})

    @property
    def scalar_functions(self) -> frozenset[ScalarFunction]:
        base = {
            ScalarFunction.ABS,
            ScalarFunction.ROUND,
            ScalarFunction.LOWER,
            ScalarFunction.UPPER,
            ScalarFunction.COALESCE,
        }
        if self is Dialect.EXTENDED_WINDOW_TIES:
            base |= {ScalarFunction.SQRT, ScalarFunction.EXP, ScalarFunction.LN}
        return frozenset(base)


@dataclass(frozen=True, slots=True)
class DialectConfig:
    """Options recognized by the SQL compiler.

    Affects only the emitted text, never plan semantics.

    Attributes:
        dialect: Target dialect
        identifier_quoting: Quote every table, column and alias identifier
        pretty: Emit indented multi-line SQL instead of a single line
    """

    dialect: Dialect = Dialect.REFERENCE
    identifier_quoting: bool = True
    pretty: bool = False


class WindowRowOrder(Enum):
    """Row order produced by the interpreter after a windowed extend.

    SQL makes no row-order promise without an explicit ORDER BY, so this is
    a policy choice rather than a semantic one.

    PARTITION: rows grouped by partition in first-seen order, each group in
        window order.
    INPUT: rows keep their input order; only the ranks are added.
    """

    PARTITION = "partition"
    INPUT = "input"
