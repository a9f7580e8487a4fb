"""
Route access state: route -> permission, route -> role and the per-route
protected flag, each held in its own relation store.
"""
from typing import Dict, Iterable, List, Mapping, NamedTuple

from access_matrix.engine.entities import Route
from access_matrix.engine.relation import Matrix, RelationStore
from access_matrix.engine.tracker import CellChange, ChangeTracker


PROTECTED = "is_protected"


class RouteSnapshot(NamedTuple):
    permissions: Matrix
    roles: Matrix
    protection: Matrix


def assignments_from(snapshot: RouteSnapshot) -> List[Dict]:
    """Row-keyed save payload: the full target assignment of every route."""
    return [
        {
            "route_id": route_id,
            "permission_ids": [pid for pid, value in cells.items() if value],
            "role_ids": [rid for rid, value in snapshot.roles.get(route_id, {}).items() if value],
            "is_protected": snapshot.protection.get(route_id, {}).get(PROTECTED, False),
        }
        for route_id, cells in snapshot.permissions.items()
    ]


class RouteAssignmentStore:
    def __init__(self, routes: Iterable[Route], permission_ids: Iterable[str], role_ids: Iterable[str]):
        routes = list(routes)
        route_ids = [route.id for route in routes]
        self.permissions = RelationStore.from_edges(
            route_ids, permission_ids, {route.id: route.permission_ids for route in routes}
        )
        self.roles = RelationStore.from_edges(
            route_ids, role_ids, {route.id: route.role_ids for route in routes}
        )
        self.protection = RelationStore.from_edges(
            route_ids, [PROTECTED], {route.id: [PROTECTED] for route in routes if route.is_protected}
        )
        self._declared = {route.id: route.is_protected for route in routes}
        self._trackers = (
            ChangeTracker(self.permissions, "route permissions"),
            ChangeTracker(self.roles, "route roles"),
            ChangeTracker(self.protection, "route protection"),
        )

    @property
    def route_ids(self):
        return self.permissions.rows

    @property
    def version(self) -> int:
        return self.permissions.version + self.roles.version + self.protection.version

    def declared_protected(self, route_id: str) -> bool:
        """The protected flag the server reported at load time."""
        return self._declared.get(route_id, False)

    def effective_protected(self, route_id: str) -> bool:
        """
        The pending local value if the flag was edited, otherwise the declared one.

        The protection store starts from the declared flags, so its current cell
        is exactly that.
        """
        return self.protection.get(route_id, PROTECTED)

    def set_protected(self, route_id: str, value: bool) -> None:
        self.protection.set(route_id, PROTECTED, value)

    def toggle_protected(self, route_id: str) -> bool:
        return self.protection.toggle(route_id, PROTECTED)

    # ------------------------------------------------------------------
    # Change tracking across the three stores
    # ------------------------------------------------------------------

    def is_dirty(self) -> bool:
        return any(tracker.is_dirty() for tracker in self._trackers)

    def diff(self) -> RouteSnapshot:
        return RouteSnapshot(*(tracker.diff() for tracker in self._trackers))

    def assignments(self) -> List[Dict]:
        return assignments_from(self.diff())

    def reset(self) -> None:
        for tracker in self._trackers:
            tracker.reset()

    def commit(self, sent: RouteSnapshot) -> None:
        for tracker, matrix in zip(self._trackers, sent):
            tracker.commit(matrix)

    def pending_changes(self) -> Mapping[str, List[CellChange]]:
        return {tracker.name: tracker.pending_changes() for tracker in self._trackers}

    def remove_permission(self, permission_id: str) -> None:
        self.permissions.remove_column(permission_id)

    def remove_role(self, role_id: str) -> None:
        self.roles.remove_column(role_id)
