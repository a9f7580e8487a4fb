"""
In-memory boolean relations between two entity kinds.

A `RelationStore` holds the current state of one relation (role -> permission,
user -> role, route -> permission, ...) together with the `Baseline` it was
loaded from or last committed as. The row and column key spaces are fixed when
the store is built; reads outside them return False, writes outside them raise.
"""
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from access_matrix.engine.errors import UnknownEntityError


Matrix = Dict[str, Dict[str, bool]]
Listener = Callable[[bool], None]


class Baseline:
    """
    Immutable snapshot of a relation.

    Only the edges (cells that are True) are kept; every other cell of the key
    space is False.
    """
    __slots__ = ("rows", "columns", "_edges")

    def __init__(self, rows: Iterable[str], columns: Iterable[str], edges: Mapping[str, Iterable[str]]):
        self.rows: Tuple[str, ...] = tuple(dict.fromkeys(rows))
        self.columns: Tuple[str, ...] = tuple(dict.fromkeys(columns))
        known = frozenset(self.columns)
        self._edges = MappingProxyType({
            row: frozenset(edges.get(row, ())) & known for row in self.rows
        })

    @classmethod
    def from_matrix(cls, rows: Iterable[str], columns: Iterable[str], matrix: Mapping[str, Mapping[str, bool]]) -> "Baseline":
        return cls(
            rows,
            columns,
            {row: [column for column, value in cells.items() if value] for row, cells in matrix.items()},
        )

    def has_edge(self, row: str, column: str) -> bool:
        return column in self._edges.get(row, ())

    def edges_of(self, row: str) -> frozenset[str]:
        return self._edges.get(row, frozenset())

    def to_matrix(self) -> Matrix:
        """A fresh, fully populated matrix; callers may mutate it."""
        return {
            row: {column: column in self._edges[row] for column in self.columns}
            for row in self.rows
        }

    def without_row(self, row: str) -> "Baseline":
        return Baseline((r for r in self.rows if r != row), self.columns, self._edges)

    def without_column(self, column: str) -> "Baseline":
        return Baseline(self.rows, (c for c in self.columns if c != column), self._edges)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Baseline):
            return NotImplemented
        return (self.rows, self.columns, dict(self._edges)) == (other.rows, other.columns, dict(other._edges))

    def __repr__(self) -> str:
        return f"<Baseline(rows={len(self.rows)}, columns={len(self.columns)})>"


class RelationStore:
    """
    Current state of one relation plus its last-committed baseline.

    Every mutation except `replace` raises the `has_changes` flag, even when the
    new value equals the baseline. Listeners registered with `subscribe` are
    called with the new flag value every time it flips.

    Usage:
        store = RelationStore.from_edges(role_ids, permission_ids, {role.id: role.permission_ids for role in roles})
        store.toggle(role_id, permission_id)
        payload = {"matrix": store.snapshot()}
    """

    def __init__(self, rows: Iterable[str], columns: Iterable[str], baseline: Optional[Baseline] = None):
        rows = tuple(dict.fromkeys(rows))
        columns = tuple(dict.fromkeys(columns))
        if baseline is None:
            baseline = Baseline(rows, columns, {})
        elif baseline.rows != rows or baseline.columns != columns:
            baseline = Baseline(rows, columns, {row: baseline.edges_of(row) for row in rows})

        self._baseline = baseline
        self._state: Matrix = baseline.to_matrix()
        self._has_changes = False
        self._listeners: List[Listener] = []
        self.version = 0

    @classmethod
    def from_edges(cls, rows: Iterable[str], columns: Iterable[str], edges: Mapping[str, Iterable[str]]) -> "RelationStore":
        rows = tuple(rows)
        columns = tuple(columns)
        return cls(rows, columns, Baseline(rows, columns, edges))

    # ------------------------------------------------------------------
    # Key space and observation
    # ------------------------------------------------------------------

    @property
    def rows(self) -> Tuple[str, ...]:
        return self._baseline.rows

    @property
    def columns(self) -> Tuple[str, ...]:
        return self._baseline.columns

    @property
    def baseline(self) -> Baseline:
        return self._baseline

    @property
    def has_changes(self) -> bool:
        return self._has_changes

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a `has_changes` listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _set_has_changes(self, value: bool) -> None:
        if self._has_changes == value:
            return
        self._has_changes = value
        for listener in list(self._listeners):
            listener(value)

    def _touch(self) -> None:
        self.version += 1
        self._set_has_changes(True)

    def _check_row(self, row: str) -> None:
        if row not in self._state:
            raise UnknownEntityError("row", row)

    def _check_column(self, column: str) -> None:
        if column not in self._baseline.columns:
            raise UnknownEntityError("column", column)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, row: str, column: str) -> bool:
        return self._state.get(row, {}).get(column, False)

    def edges_of(self, row: str) -> frozenset[str]:
        """Columns currently assigned to `row`."""
        return frozenset(column for column, value in self._state.get(row, {}).items() if value)

    def rows_with(self, column: str) -> frozenset[str]:
        """Rows that currently have `column`."""
        return frozenset(row for row, cells in self._state.items() if cells.get(column, False))

    def snapshot(self) -> Matrix:
        """Deep copy of the current state as plain dicts."""
        return {row: dict(cells) for row, cells in self._state.items()}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set(self, row: str, column: str, value: bool) -> None:
        self._check_row(row)
        self._check_column(column)
        self._state[row][column] = bool(value)
        self._touch()

    def toggle(self, row: str, column: str) -> bool:
        """Flip one cell and return its new value."""
        value = not self.get(row, column)
        self.set(row, column, value)
        return value

    def set_all(self, rows: Iterable[str], column: str, value: bool) -> None:
        """Set `column` for every row in `rows`. Nothing is written if any key is unknown."""
        rows = list(rows)
        self._check_column(column)
        for row in rows:
            self._check_row(row)
        for row in rows:
            self._state[row][column] = bool(value)
        self._touch()

    def set_many(self, row: str, columns: Iterable[str], value: bool) -> None:
        """Set several columns of one row. Nothing is written if any key is unknown."""
        columns = list(columns)
        self._check_row(row)
        for column in columns:
            self._check_column(column)
        for column in columns:
            self._state[row][column] = bool(value)
        self._touch()

    def set_all_for_row(self, row: str, value: bool) -> None:
        self.set_many(row, self.columns, value)

    def set_all_for_column(self, column: str, value: bool) -> None:
        self.set_all(self.rows, column, value)

    def replace(self, new_state: Mapping[str, Mapping[str, bool]]) -> None:
        """
        Replace the whole state and clear `has_changes`.

        The key space is kept: rows and columns missing from `new_state` become
        False and unknown ones are ignored.
        """
        self._state = {
            row: {column: bool(new_state.get(row, {}).get(column, False)) for column in self.columns}
            for row in self.rows
        }
        self.version += 1
        self._set_has_changes(False)

    def adopt(self, committed: Mapping[str, Mapping[str, bool]]) -> Baseline:
        """Make `committed` the new baseline. The current state is not touched."""
        self._baseline = Baseline.from_matrix(self.rows, self.columns, committed)
        return self._baseline

    def remove_row(self, row: str) -> None:
        """Drop a deleted entity from state and baseline without raising `has_changes`."""
        if row not in self._state:
            return
        del self._state[row]
        self._baseline = self._baseline.without_row(row)
        self.version += 1

    def remove_column(self, column: str) -> None:
        """Drop a deleted entity from state and baseline without raising `has_changes`."""
        if column not in self._baseline.columns:
            return
        for cells in self._state.values():
            cells.pop(column, None)
        self._baseline = self._baseline.without_column(column)
        self.version += 1

    def __repr__(self) -> str:
        return f"<RelationStore(rows={len(self.rows)}, columns={len(self.columns)}, has_changes={self._has_changes})>"
