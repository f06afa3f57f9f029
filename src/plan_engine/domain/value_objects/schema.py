"""Table references and ordering metadata.

These value objects form the schema registry of the engine: a table
reference names a source table and declares its columns, and every
operator node validates its column references against the columns its
upstream produces.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from plan_engine.domain.errors import DuplicateColumn


def unique_columns(columns: Iterable[str], position: int | None = None) -> tuple[str, ...]:
    """Return ``columns`` as a tuple, rejecting empty or repeated names."""
    result = tuple(columns)
    seen: set[str] = set()
    for name in result:
        if not isinstance(name, str) or not name:
            raise ValueError(f"column names must be non-empty strings, got {name!r}")
        if name in seen:
            raise DuplicateColumn(f"column {name!r} declared more than once", position)
        seen.add(name)
    return result


@dataclass(frozen=True, slots=True)
class TableRef:
    """Reference to a source table.

    Holds only the name and declared columns, never a connection or data.

    Attributes:
        name: Table name as known to the backend
        columns: Declared column names, in order
        temporary: Whether the table is a temporary/staged table

    Example:
        >>> d = TableRef("d", ["user_name", "product"])
        >>> d.columns
        ('user_name', 'product')
    """

    name: str
    columns: tuple[str, ...]
    temporary: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("table name must be non-empty")
        object.__setattr__(self, "columns", unique_columns(self.columns, position=0))
        if not self.columns:
            raise ValueError(f"table {self.name!r} must declare at least one column")

    def has_column(self, name: str) -> bool:
        return name in self.columns

    def __str__(self) -> str:
        return f"Table(name={self.name!r}, temporary={self.temporary})"


@dataclass(frozen=True, slots=True)
class OrderTerm:
    """One column of an ordering, ascending unless ``descending`` is set."""

    column: str
    descending: bool = False

    @property
    def direction(self) -> str:
        return "DESC" if self.descending else "ASC"

    def __str__(self) -> str:
        return f"{self.column} {self.direction}"


def order_terms(
    columns: Sequence[str] | str,
    reverse: Iterable[str] | bool = (),
) -> tuple[OrderTerm, ...]:
    """Build order terms from column names.

    Args:
        columns: Columns to order by, most significant first.
        reverse: Columns to order descending, or True to reverse all of them.

    Returns:
        One OrderTerm per column.
    """
    if isinstance(columns, str):
        columns = [columns]
    if reverse is True:
        descending = set(columns)
    elif reverse is False:
        descending = set()
    else:
        descending = {reverse} if isinstance(reverse, str) else set(reverse)
        stray = descending - set(columns)
        if stray:
            raise ValueError(f"reverse names columns not in the ordering: {sorted(stray)}")
    return tuple(OrderTerm(c, c in descending) for c in columns)


@dataclass(frozen=True, slots=True)
class WindowSpec:
    """Partition and order metadata for a ranking computation.

    Within each partition (rows sharing the partition key values) rows are
    ordered by ``order_by`` and the window function numbers them from 1.

    Attributes:
        partition_by: Columns defining the groups; empty means one group
        order_by: Within-group ordering
    """

    partition_by: tuple[str, ...] = field(default_factory=tuple)
    order_by: tuple[OrderTerm, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        partition = self.partition_by
        if isinstance(partition, str):
            partition = (partition,)
        object.__setattr__(self, "partition_by", tuple(partition))
        object.__setattr__(self, "order_by", tuple(self.order_by))

    def columns_read(self) -> frozenset[str]:
        """All column names the window reads."""
        return frozenset(self.partition_by) | {t.column for t in self.order_by}

    def __str__(self) -> str:
        partition = ", ".join(self.partition_by)
        order = ", ".join(str(t) for t in self.order_by)
        return f"partition_by=[{partition}], order_by=[{order}]"
