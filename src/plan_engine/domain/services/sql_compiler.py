"""SQL compiler: lowers a pipeline into one nested SQL statement.

Every operator node becomes its own ``SELECT ... FROM (<inner>) AS alias_N``
level, N being the node's position in the chain. Nesting is required
because a column computed at one level (a window rank, for instance)
cannot be filtered in that same level's WHERE clause: an extend followed
by a select_rows becomes an outer WHERE over an inner ``... OVER (...)``.

    Table        SELECT <cols> FROM <table>
    Extend       SELECT <cols>, <expr> [OVER (...)] AS <name> FROM (...) AS alias_N
    SelectRows   SELECT <cols> FROM (...) AS alias_N WHERE <predicate>
    OrderBy      SELECT <cols> FROM (...) AS alias_N ORDER BY <terms>
    Select/Drop  SELECT <subset> FROM (...) AS alias_N
    Materialize  CREATE [TEMPORARY] TABLE <name> AS <query>

The statement is assembled as a sqlglot expression tree and generated
for the configured dialect, so the output text is deterministic for a
given pipeline and configuration. NULLs sort last in every ordering to
match the in-memory interpreter.
"""

from __future__ import annotations

from sqlglot import exp

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
from plan_engine.domain.errors import (
    DialectMismatch,
    OrderingNotOutermost,
    UnsupportedExpression,
)
from plan_engine.domain.value_objects.dialect import DialectConfig
from plan_engine.domain.value_objects.schema import OrderTerm, WindowSpec

_COMPARISONS: dict[ComparisonOp, type[exp.Binary]] = {
    ComparisonOp.EQ: exp.EQ,
    ComparisonOp.NE: exp.NEQ,
    ComparisonOp.LT: exp.LT,
    ComparisonOp.LE: exp.LTE,
    ComparisonOp.GT: exp.GT,
    ComparisonOp.GE: exp.GTE,
}

_ARITHMETIC: dict[ArithmeticOp, type[exp.Binary]] = {
    ArithmeticOp.ADD: exp.Add,
    ArithmeticOp.SUB: exp.Sub,
    ArithmeticOp.MUL: exp.Mul,
    ArithmeticOp.DIV: exp.Div,
}


def _identifier(name: str) -> exp.Identifier:
    return exp.to_identifier(name)


def _column(name: str) -> exp.Column:
    return exp.Column(this=_identifier(name))


def _wrap(node: exp.Expression) -> exp.Expression:
    """Parenthesize compound operands so precedence never depends on the dialect."""
    if isinstance(node, (exp.Binary, exp.Not)):
        return exp.Paren(this=node)
    return node


class SQLCompiler:
    """Compiles pipelines to SQL text for one dialect configuration.

    Example:
        >>> compiler = SQLCompiler(DialectConfig(identifier_quoting=False))
        >>> print(compiler.compile(Pipeline.describe_table("d", ["x"])))
        SELECT x FROM d
    """

    def __init__(self, config: DialectConfig | None = None) -> None:
        """Initialize the compiler.

        Args:
            config: Dialect options; defaults to the reference dialect with
                identifier quoting on.
        """
        self._config = config or DialectConfig()

    @property
    def config(self) -> DialectConfig:
        return self._config

    def compile(self, pipeline: Pipeline) -> str:
        """Compile a pipeline to a single SQL statement.

        Raises:
            OrderingNotOutermost: An OrderBy is followed by another non-terminal node.
            UnsupportedExpression: A function the dialect cannot express is used.
            DialectMismatch: A tie policy the dialect cannot express is used.
        """
        tree = self.to_expression(pipeline)
        return tree.sql(
            dialect=self._config.dialect.sqlglot_dialect,
            identify=self._config.identifier_quoting,
            pretty=self._config.pretty,
        )

    def to_expression(self, pipeline: Pipeline) -> exp.Expression:
        """Build the sqlglot expression tree for a pipeline."""
        table = pipeline.source_table
        operators = list(pipeline.operators())
        self._check_ordering(operators)

        query: exp.Expression = exp.select(*(_column(c) for c in table.columns)).from_(
            exp.Table(this=_identifier(table.name)), copy=False
        )
        for node in operators:
            query = self._lower(node, query)
        return query

    @staticmethod
    def _check_ordering(operators: list[OperatorNode]) -> None:
        for i, node in enumerate(operators):
            if not isinstance(node, OrderBy):
                continue
            following = [n for n in operators[i + 1:] if not isinstance(n, Materialize)]
            if following:
                raise OrderingNotOutermost(
                    f"{node} is followed by {following[0]}; ordering does not survive "
                    "further nesting, move order_by to the end of the pipeline",
                    node.position,
                )

    def _lower(self, node: OperatorNode, inner: exp.Expression) -> exp.Expression:
        """Wrap ``inner`` in the SQL for one operator node."""
        if isinstance(node, Materialize):
            return self._materialize(node, inner)

        subquery = exp.Subquery(
            this=inner,
            alias=exp.TableAlias(this=_identifier(f"alias_{node.position}")),
        )

        if isinstance(node, Extend):
            value = self._extend_value(node)
            items = [
                exp.alias_(value, node.name) if c == node.name else _column(c)
                for c in node.columns
            ]
            return exp.select(*items).from_(subquery, copy=False)
        if isinstance(node, SelectRows):
            select = exp.select(*(_column(c) for c in node.columns)).from_(subquery, copy=False)
            return select.where(self.expression(node.predicate, node.position), copy=False)
        if isinstance(node, OrderBy):
            select = exp.select(*(_column(c) for c in node.columns)).from_(subquery, copy=False)
            return select.order_by(*(self._ordered(t) for t in node.terms), copy=False)
        if isinstance(node, (SelectColumns, DropColumns)):
            return exp.select(*(_column(c) for c in node.columns)).from_(subquery, copy=False)
        raise UnsupportedExpression(f"no SQL lowering for {node.kind}", node.position)

    def _materialize(self, node: Materialize, query: exp.Expression) -> exp.Expression:
        properties = None
        if node.temporary:
            properties = exp.Properties(expressions=[exp.TemporaryProperty()])
        return exp.Create(
            this=exp.Table(this=_identifier(node.table_name)),
            kind="TABLE",
            expression=query,
            properties=properties,
        )

    def _extend_value(self, node: Extend) -> exp.Expression:
        if node.window is not None:
            return self._window(node.expression, node.window, node.position)
        return self.expression(node.expression, node.position)

    def _window(self, func: Expression, window: WindowSpec, position: int) -> exp.Expression:
        dialect = self._config.dialect
        if not isinstance(func, WindowFunction) or func.func not in dialect.window_functions:
            raise DialectMismatch(
                f"{func} tie policy is not expressible in the {dialect.value} dialect",
                position,
            )
        order = None
        if window.order_by:
            order = exp.Order(expressions=[self._ordered(t) for t in window.order_by])
        return exp.Window(
            this=exp.Anonymous(this=func.func.value.upper(), expressions=[]),
            partition_by=[_column(c) for c in window.partition_by] or None,
            order=order,
        )

    @staticmethod
    def _ordered(term: OrderTerm) -> exp.Ordered:
        return exp.Ordered(this=_column(term.column), desc=term.descending, nulls_first=False)

    def expression(self, expr: Expression, position: int | None = None) -> exp.Expression:
        """Lower a scalar expression to sqlglot.

        Raises:
            UnsupportedExpression: A function the dialect cannot express is used,
                or a window function appears outside an extend.
        """
        if isinstance(expr, ColumnRef):
            return _column(expr.name)
        if isinstance(expr, Literal):
            value = expr.value
            if value is None:
                return exp.Null()
            if isinstance(value, bool):
                return exp.Boolean(this=value)
            if isinstance(value, float):
                # a bare 0.1 is DECIMAL in the backend; compare as doubles like the interpreter
                return exp.cast(exp.Literal.number(value), exp.DataType.Type.DOUBLE)
            if isinstance(value, int):
                return exp.Literal.number(value)
            return exp.Literal.string(value)
        if isinstance(expr, Comparison):
            return _COMPARISONS[expr.op](
                this=_wrap(self.expression(expr.left, position)),
                expression=_wrap(self.expression(expr.right, position)),
            )
        if isinstance(expr, Arithmetic):
            right = _wrap(self.expression(expr.right, position))
            if expr.op == ArithmeticOp.DIV:
                # division by zero yields NULL
                right = exp.Nullif(this=right, expression=exp.Literal.number(0))
            return _ARITHMETIC[expr.op](
                this=_wrap(self.expression(expr.left, position)),
                expression=right,
            )
        if isinstance(expr, Logical):
            operands = [_wrap(self.expression(o, position)) for o in expr.operands]
            if expr.op == LogicalOp.NOT:
                return exp.Not(this=operands[0])
            connector = exp.And if expr.op == LogicalOp.AND else exp.Or
            result = operands[0]
            for operand in operands[1:]:
                result = connector(this=result, expression=operand)
            return result
        if isinstance(expr, IsNull):
            test = exp.Is(this=_wrap(self.expression(expr.operand, position)), expression=exp.Null())
            return exp.Not(this=test) if expr.negated else test
        if isinstance(expr, FunctionCall):
            dialect = self._config.dialect
            if expr.function not in dialect.scalar_functions:
                raise UnsupportedExpression(
                    f"{expr.function.value}() is not available in the {dialect.value} dialect",
                    position,
                )
            return exp.Anonymous(
                this=expr.function.value.upper(),
                expressions=[self.expression(a, position) for a in expr.args],
            )
        if isinstance(expr, WindowFunction):
            raise UnsupportedExpression(
                f"{expr} is only valid as a windowed extend", position
            )
        raise UnsupportedExpression(f"unsupported expression {type(expr).__name__}", position)


def compile_pipeline(pipeline: Pipeline, config: DialectConfig | None = None) -> str:
    """Compile ``pipeline`` to SQL text for ``config``."""
    return SQLCompiler(config).compile(pipeline)
