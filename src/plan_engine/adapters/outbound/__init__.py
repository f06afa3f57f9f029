"""Outbound adapters - implementations of outbound ports.

Exports:
    - DuckDBBackend: StatementSender and TableReader on a DuckDB connection
    - InMemoryTableProvider: TableReader over registered in-memory tables
"""

from plan_engine.adapters.outbound.duckdb_backend import DuckDBBackend, column_type
from plan_engine.adapters.outbound.memory_provider import InMemoryTableProvider

__all__ = [
    "DuckDBBackend",
    "InMemoryTableProvider",
    "column_type",
]
