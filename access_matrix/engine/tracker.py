"""
Dirty tracking, save payloads and reset for a relation store.
"""
from typing import List, Mapping, NamedTuple

from access_matrix.engine.relation import Matrix, RelationStore
from access_matrix.utils import get_logger


log = get_logger(__name__)


class CellChange(NamedTuple):
    row: str
    column: str
    value: bool


class ChangeTracker:
    def __init__(self, store: RelationStore, name: str = "relation"):
        self.store = store
        self.name = name

    def is_dirty(self) -> bool:
        return self.store.has_changes

    def diff(self) -> Matrix:
        """The payload of a save: the entire current relation."""
        return self.store.snapshot()

    def reset(self) -> None:
        """Rebuild every cell from the baseline and clear the dirty flag."""
        pending = len(self.pending_changes())
        self.store.replace(self.store.baseline.to_matrix())
        log.info("Reset %s, discarded %d pending changes", self.name, pending)

    def commit(self, sent: Mapping[str, Mapping[str, bool]]) -> None:
        """
        Adopt a successfully saved payload as the new baseline.

        The dirty flag is cleared only when nothing changed while the save was
        in flight.
        """
        baseline = self.store.adopt(sent)
        if self.store.snapshot() == baseline.to_matrix():
            self.store.replace(baseline.to_matrix())
        else:
            log.info("%s changed during save, keeping it dirty", self.name)

    def pending_changes(self) -> List[CellChange]:
        """Cells whose current value differs from the baseline."""
        baseline = self.store.baseline
        return [
            CellChange(row, column, value)
            for row, cells in self.store.snapshot().items()
            for column, value in cells.items()
            if value != baseline.has_edge(row, column)
        ]
