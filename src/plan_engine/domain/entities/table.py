"""In-memory tabular data.

An in-memory table is an ordered collection of rows, each a mapping from
column name to value, plus the ordered column names. Tables are treated
as immutable snapshots: the interpreter never mutates a table or its row
dicts, it builds new ones.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from plan_engine.domain.value_objects.schema import TableRef, unique_columns


def _normalize(value: Any, digits: int) -> Any:
    if isinstance(value, float):
        return round(value, digits)
    return value


@dataclass(frozen=True)
class InMemoryTable:
    """An ordered, immutable snapshot of rows.

    Attributes:
        columns: Column names, in order
        rows: Row mappings keyed by column name
    """

    columns: tuple[str, ...]
    rows: tuple[Mapping[str, Any], ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "columns", unique_columns(self.columns))
        object.__setattr__(self, "rows", tuple(self.rows))

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        columns: Sequence[str] | None = None,
    ) -> InMemoryTable:
        """Build a table from row mappings.

        Args:
            records: Row mappings. Missing keys become None.
            columns: Column order; defaults to the first record's key order.

        Raises:
            ValueError: If no columns can be determined or a record carries
                keys outside ``columns``.
        """
        records = list(records)
        if columns is None:
            if not records:
                raise ValueError("columns are required for an empty table")
            columns = list(records[0].keys())
        names = tuple(columns)
        known = set(names)
        rows = []
        for i, record in enumerate(records):
            extra = set(record) - known
            if extra:
                raise ValueError(f"record {i} has undeclared columns {sorted(extra)}")
            rows.append({c: record.get(c) for c in names})
        return cls(names, tuple(rows))

    @classmethod
    def from_columns(cls, data: Mapping[str, Sequence[Any]]) -> InMemoryTable:
        """Build a table from a mapping of column name to equal-length values."""
        names = tuple(data)
        lengths = {len(v) for v in data.values()}
        if len(lengths) > 1:
            raise ValueError(f"columns have differing lengths: {sorted(lengths)}")
        n = lengths.pop() if lengths else 0
        rows = tuple({c: data[c][i] for c in names} for i in range(n))
        return cls(names, rows)

    def describe(self, name: str, temporary: bool = False) -> TableRef:
        """Table reference declaring this table's columns under ``name``."""
        return TableRef(name, self.columns, temporary=temporary)

    def column(self, name: str) -> list[Any]:
        """All values of one column, in row order."""
        if name not in self.columns:
            raise KeyError(f"Column '{name}' not found")
        return [row.get(name) for row in self.rows]

    def to_records(self) -> list[dict[str, Any]]:
        """Copies of the rows as plain dicts."""
        return [{c: row.get(c) for c in self.columns} for row in self.rows]

    def same_rows(
        self,
        other: InMemoryTable,
        ordered: bool = False,
        float_digits: int = 9,
    ) -> bool:
        """Compare logical content with another table.

        Column order is ignored but column names must match. Rows are
        compared as a multiset unless ``ordered`` is set. Floats are
        rounded to ``float_digits`` before comparison.
        """
        if set(self.columns) != set(other.columns):
            return False
        if len(self.rows) != len(other.rows):
            return False
        names = sorted(self.columns)

        def keyed(table: InMemoryTable) -> list[tuple[Any, ...]]:
            return [
                tuple(_normalize(row.get(c), float_digits) for c in names)
                for row in table.rows
            ]

        if ordered:
            return keyed(self) == keyed(other)
        return Counter(keyed(self)) == Counter(keyed(other))

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Mapping[str, Any]]:
        return iter(self.rows)

    def __repr__(self) -> str:
        return f"InMemoryTable(columns={list(self.columns)}, rows={len(self.rows)})"
