"""In-memory TableReader over a dict of named tables."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from plan_engine.domain.entities.table import InMemoryTable
from plan_engine.domain.errors import MissingColumn
from plan_engine.domain.value_objects.schema import TableRef


class InMemoryTableProvider:
    """Serves registered in-memory tables by name.

    Example:
        >>> provider = InMemoryTableProvider()
        >>> ref = provider.register("d", [{"x": 1}, {"x": 2}])
        >>> len(provider.read_table(ref))
        2
    """

    def __init__(self, tables: Mapping[str, InMemoryTable] | None = None) -> None:
        self._tables: dict[str, InMemoryTable] = dict(tables or {})

    def register(
        self,
        name: str,
        table: InMemoryTable | Sequence[Mapping[str, Any]],
        temporary: bool = False,
    ) -> TableRef:
        """Register (or replace) a table and return its reference."""
        if not isinstance(table, InMemoryTable):
            table = InMemoryTable.from_records(table)
        self._tables[name] = table
        return table.describe(name, temporary=temporary)

    def unregister(self, name: str) -> None:
        """Remove a table.

        Raises:
            KeyError: If no table is registered under ``name``.
        """
        del self._tables[name]

    def table_names(self) -> list[str]:
        return sorted(self._tables)

    def read_table(self, table: TableRef) -> InMemoryTable:
        """Return the registered table projected to the declared columns.

        Raises:
            KeyError: If the table is not registered.
            MissingColumn: The registered table lacks a declared column.
        """
        try:
            stored = self._tables[table.name]
        except KeyError:
            raise KeyError(f"Table '{table.name}' is not registered") from None
        missing = [c for c in table.columns if c not in stored.columns]
        if missing:
            raise MissingColumn(
                f"table {table.name!r} lacks declared column(s) {missing}", position=0
            )
        if stored.columns == table.columns:
            return stored
        rows = tuple({c: row.get(c) for c in table.columns} for row in stored.rows)
        return InMemoryTable(table.columns, rows)

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def __len__(self) -> int:
        return len(self._tables)
