"""
Tri-state (checked / unchecked / indeterminate) aggregates over groups of cells.
"""
import enum
from dataclasses import dataclass
from typing import Dict, Iterable, Literal, Tuple, Union

from access_matrix.engine.grouping import Group
from access_matrix.engine.relation import RelationStore


class TriState(enum.Enum):
    UNCHECKED = "unchecked"
    CHECKED = "checked"
    INDETERMINATE = "indeterminate"


@dataclass(frozen=True)
class GroupStatus:
    """Checkbox state of a group header."""
    checked: bool
    indeterminate: bool

    @classmethod
    def from_count(cls, count: int, size: int) -> "GroupStatus":
        if size == 0:
            return cls(False, False)
        return cls(checked=count == size, indeterminate=0 < count < size)

    @property
    def state(self) -> TriState:
        if self.checked:
            return TriState.CHECKED
        if self.indeterminate:
            return TriState.INDETERMINATE
        return TriState.UNCHECKED


def tri_state(count: int, size: int) -> TriState:
    return GroupStatus.from_count(count, size).state


def _ids(members: Union[Group, Iterable[str]]) -> Tuple[str, ...]:
    if isinstance(members, Group):
        return members.ids
    return tuple(dict.fromkeys(members))


def column_group_status(store: RelationStore, row: str, columns: Union[Group, Iterable[str]]) -> GroupStatus:
    """A group of columns against one row, e.g. a permission category for a role."""
    columns = _ids(columns)
    return GroupStatus.from_count(sum(1 for column in columns if store.get(row, column)), len(columns))


def row_group_status(store: RelationStore, rows: Union[Group, Iterable[str]], column: str) -> GroupStatus:
    """A group of rows against one column, e.g. a department for a role."""
    rows = _ids(rows)
    return GroupStatus.from_count(sum(1 for row in rows if store.get(row, column)), len(rows))


class TriStateAggregator:
    """
    Group statuses of one store along one axis, cached until the store changes.

    With axis "columns" a group holds column ids and the counterpart is a row;
    with axis "rows" a group holds row ids and the counterpart is a column.
    """

    def __init__(self, store: RelationStore, axis: Literal["columns", "rows"]):
        if axis not in ("columns", "rows"):
            raise ValueError(f"axis must be 'columns' or 'rows', not {axis!r}")
        self.store = store
        self.axis = axis
        self._version = store.version
        self._cache: Dict[Tuple[Tuple[str, ...], str], GroupStatus] = {}

    def status(self, group: Union[Group, Iterable[str]], counterpart: str) -> GroupStatus:
        if self._version != self.store.version:
            self._cache.clear()
            self._version = self.store.version

        ids = _ids(group)
        key = (ids, counterpart)
        if key not in self._cache:
            if self.axis == "columns":
                self._cache[key] = column_group_status(self.store, counterpart, ids)
            else:
                self._cache[key] = row_group_status(self.store, ids, counterpart)
        return self._cache[key]

    def select_all_status(self, counterpart: str) -> GroupStatus:
        """Status over the whole, unfiltered axis."""
        universe = self.store.columns if self.axis == "columns" else self.store.rows
        return self.status(universe, counterpart)


def assignment_count(store: RelationStore) -> int:
    """Number of cells currently True."""
    return sum(len(store.edges_of(row)) for row in store.rows)


def rows_with_assignments(store: RelationStore) -> int:
    """Number of rows with at least one True cell."""
    return sum(1 for row in store.rows if store.edges_of(row))
