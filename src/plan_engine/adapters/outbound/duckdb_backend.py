"""DuckDB backend implementing the StatementSender and TableReader ports.

DuckDB is the reference backend: compiled pipelines are generated for its
dialect and the cross-backend tests check that the in-memory interpreter
agrees with it.

Usage:
    with DuckDBBackend() as backend:
        backend.load_table("d", table)
        rows = backend.send_statement(compile_pipeline(pipeline))
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import duckdb
from sqlglot import exp

from plan_engine.domain.entities.table import InMemoryTable
from plan_engine.domain.errors import MissingColumn
from plan_engine.domain.value_objects.schema import TableRef

_DIALECT = "duckdb"


def _quote(name: str) -> str:
    return exp.to_identifier(name, quoted=True).sql(dialect=_DIALECT)


def column_type(values: Sequence[Any]) -> str:
    """DuckDB type for a column of Python values.

    All-NULL columns become VARCHAR. Mixing ints and floats widens to
    DOUBLE; any other mix of kinds is rejected.

    Raises:
        ValueError: If the column mixes incompatible value kinds.
    """
    kinds = {type(v) for v in values if v is not None}
    if not kinds:
        return "VARCHAR"
    if kinds == {bool}:
        return "BOOLEAN"
    if kinds == {int}:
        return "BIGINT"
    if kinds <= {int, float}:
        return "DOUBLE"
    if kinds == {str}:
        return "VARCHAR"
    names = sorted(k.__name__ for k in kinds)
    raise ValueError(f"cannot store mixed value types {names} in one column")


class DuckDBBackend:
    """SQL backend on a DuckDB connection.

    Implements both outbound ports: ``send_statement`` runs compiled SQL and
    ``read_table`` snapshots a table for the in-memory interpreter.

    Thread Safety:
        Not thread-safe; the underlying connection is shared.
    """

    def __init__(self, database: str = ":memory:", threads: int = 1) -> None:
        """Open a connection.

        Args:
            database: Database file path, or ":memory:" (default).
            threads: Worker threads DuckDB may use.
        """
        self._database = database
        self._con = duckdb.connect(database=database)
        self._con.execute(f"PRAGMA threads={int(threads)};")
        self._closed = False

    @property
    def database(self) -> str:
        return self._database

    @property
    def is_closed(self) -> bool:
        return self._closed

    def send_statement(self, sql: str) -> list[dict[str, Any]]:
        """Execute one statement and return its rows as dicts."""
        cur = self._con.execute(sql)
        if cur.description is None:
            return []
        cols = [d[0] for d in cur.description]
        return [dict(zip(cols, row)) for row in cur.fetchall()]

    def load_table(
        self,
        name: str,
        table: InMemoryTable,
        temporary: bool = False,
    ) -> TableRef:
        """Create (or replace) table ``name`` holding the rows of ``table``.

        Args:
            name: Table name.
            table: Rows to store; column types are inferred from the values.
            temporary: Create a temporary table.

        Returns:
            A table reference declaring the stored columns.
        """
        definitions = ", ".join(
            f"{_quote(c)} {column_type(table.column(c))}" for c in table.columns
        )
        kind = "TEMPORARY TABLE" if temporary else "TABLE"
        self._con.execute(f"CREATE OR REPLACE {kind} {_quote(name)} ({definitions})")
        if table.rows:
            placeholders = ", ".join("?" for _ in table.columns)
            self._con.executemany(
                f"INSERT INTO {_quote(name)} VALUES ({placeholders})",
                [[row.get(c) for c in table.columns] for row in table.rows],
            )
        return table.describe(name, temporary=temporary)

    def table_columns(self, name: str) -> tuple[str, ...]:
        """Column names of an existing table, in table order."""
        cur = self._con.execute(f"SELECT * FROM {_quote(name)} LIMIT 0")
        return tuple(d[0] for d in cur.description)

    def read_table(self, table: TableRef) -> InMemoryTable:
        """Read the declared columns of ``table`` into memory.

        Raises:
            MissingColumn: The stored table lacks a declared column.
            duckdb.CatalogException: The table does not exist.
        """
        stored = self.table_columns(table.name)
        missing = [c for c in table.columns if c not in stored]
        if missing:
            raise MissingColumn(
                f"table {table.name!r} lacks declared column(s) {missing}", position=0
            )
        select = ", ".join(_quote(c) for c in table.columns)
        rows = self.send_statement(f"SELECT {select} FROM {_quote(table.name)}")
        return InMemoryTable(table.columns, tuple(rows))

    def close(self) -> None:
        """Close the connection; further calls fail."""
        if not self._closed:
            self._con.close()
            self._closed = True

    def __enter__(self) -> DuckDBBackend:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"DuckDBBackend(database={self._database!r})"
