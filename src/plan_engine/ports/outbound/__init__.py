"""Outbound ports - interfaces for external dependencies.

Outbound ports define contracts for the systems a pipeline is executed
against: a SQL backend that runs compiled statements and a source of
in-memory tables for the interpreter.
"""

from plan_engine.ports.outbound.statement_sender import StatementSender
from plan_engine.ports.outbound.table_reader import TableReader

__all__ = [
    "StatementSender",
    "TableReader",
]
