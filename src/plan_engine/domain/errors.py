"""Error taxonomy for plan construction, compilation and evaluation.

Every error records the position of the offending node in the pipeline
chain (0 is the table reference, 1 the first operator, and so on) so a
failure can be traced back to the builder call that introduced it.

Hierarchy:
    PlanError
    ├── PlanBuildError      raised while constructing a pipeline
    ├── CompileError        raised by the SQL compiler
    └── EvalError           raised by the in-memory interpreter
"""

from __future__ import annotations

from collections.abc import Iterable


class PlanError(Exception):
    """Base class for all plan engine errors."""

    def __init__(self, message: str, position: int | None = None) -> None:
        self.message = message
        self.position = position
        super().__init__(self._format())

    def _format(self) -> str:
        if self.position is None:
            return self.message
        return f"node {self.position}: {self.message}"


# Build-time errors


class PlanBuildError(PlanError):
    """Pipeline construction failed; no pipeline was produced."""

    pass


class UnknownColumn(PlanBuildError):
    """A node references columns its upstream does not produce."""

    def __init__(
        self,
        columns: Iterable[str],
        available: Iterable[str],
        position: int | None = None,
    ) -> None:
        self.columns = tuple(sorted(columns))
        self.available = tuple(available)
        super().__init__(
            f"unknown column(s) {list(self.columns)}; available: {list(self.available)}",
            position,
        )


class ColumnKindMismatch(PlanBuildError):
    """A window specification and the expression it decorates disagree."""

    pass


class EmptyOrdering(PlanBuildError):
    """An ordering was requested over no columns."""

    pass


class DuplicateColumn(PlanBuildError):
    """A column name appears more than once where names must be unique."""

    pass


class EmptySelection(PlanBuildError):
    """A column selection would leave the pipeline with no columns."""

    pass


class PipelineTerminated(PlanBuildError):
    """An operator was added after a terminal materialize node."""

    pass


class ExpressionSyntaxError(PlanBuildError):
    """Expression text could not be parsed into a supported expression."""

    pass


# Compile-time errors


class CompileError(PlanError):
    """The pipeline cannot be lowered to SQL for the requested dialect.

    The pipeline itself remains valid and may still be interpreted.
    """

    pass


class UnsupportedExpression(CompileError):
    """The expression uses a function the target dialect cannot express."""

    pass


class DialectMismatch(CompileError):
    """A feature is not expressible identically in the target dialect."""

    pass


class OrderingNotOutermost(CompileError):
    """An order-by node is followed by another non-terminal node."""

    pass


# Evaluation errors


class EvalError(PlanError):
    """In-memory evaluation aborted; no partial result is returned."""

    pass


class TypeMismatch(EvalError):
    """Operand types are incompatible for the operation."""

    pass


class MissingColumn(EvalError):
    """A source row lacks a column the plan declares."""

    pass
