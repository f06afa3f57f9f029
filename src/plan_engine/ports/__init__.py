"""Ports - interfaces between the plan engine and the outside world.

Outbound ports define the contracts the application uses to reach a SQL
backend and to fetch source data, so the domain never holds a connection.
"""

from plan_engine.ports.outbound import StatementSender, TableReader

__all__ = [
    "StatementSender",
    "TableReader",
]
