"""Value objects: table references, ordering metadata and dialect options."""

from plan_engine.domain.value_objects.dialect import (
    Dialect,
    DialectConfig,
    ScalarFunction,
    WindowFunc,
    WindowRowOrder,
)
from plan_engine.domain.value_objects.schema import (
    OrderTerm,
    TableRef,
    WindowSpec,
    order_terms,
    unique_columns,
)

__all__ = [
    "Dialect",
    "DialectConfig",
    "ScalarFunction",
    "WindowFunc",
    "WindowRowOrder",
    "OrderTerm",
    "TableRef",
    "WindowSpec",
    "order_terms",
    "unique_columns",
]
