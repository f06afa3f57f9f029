"""Statement Sender port for executing compiled SQL.

This outbound port is the only place compiled SQL leaves the engine.
Pipelines never hold a connection: the sender is passed in at execution
time, so one pipeline can be run against any number of backends.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Protocol


class StatementSender(Protocol):
    """Protocol for executing SQL statements on a backend.

    Thread Safety:
        Implementations decide; a sender wrapping a single connection is
        typically not safe for concurrent use.
    """

    @abstractmethod
    def send_statement(self, sql: str) -> list[dict[str, Any]]:
        """Execute one SQL statement.

        Args:
            sql: Statement text as produced by the SQL compiler.

        Returns:
            Result rows as dicts keyed by column name, in backend order.
            Statements that return no rows (CREATE TABLE ... AS) return
            an empty list.

        Raises:
            Exception: Backend-specific errors propagate unchanged.
        """
        ...
