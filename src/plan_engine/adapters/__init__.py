"""Adapters layer - concrete implementations of port interfaces.

Adapters provide the actual implementations:
- Inbound adapters: Turn expression text into domain expressions
- Outbound adapters: Execute compiled SQL and serve source tables
"""

from plan_engine.adapters.inbound import ExpressionParser, parse_expression
from plan_engine.adapters.outbound import DuckDBBackend, InMemoryTableProvider

__all__ = [
    # Inbound adapters
    "ExpressionParser",
    "parse_expression",
    # Outbound adapters
    "DuckDBBackend",
    "InMemoryTableProvider",
]
