"""Table Reader port for loading source data into memory."""

from __future__ import annotations

from abc import abstractmethod
from typing import Protocol

from plan_engine.domain.entities.table import InMemoryTable
from plan_engine.domain.value_objects.schema import TableRef


class TableReader(Protocol):
    """Protocol for fetching the rows behind a table reference."""

    @abstractmethod
    def read_table(self, table: TableRef) -> InMemoryTable:
        """Read the declared columns of a table.

        Args:
            table: Reference naming the table and its declared columns.

        Returns:
            An in-memory snapshot with ``table.columns`` as its columns.

        Raises:
            KeyError: If the table does not exist.
            MissingColumn: If the table lacks a declared column.
        """
        ...
