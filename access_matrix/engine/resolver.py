"""
Common and partial assignments across a selection of routes, used to prefill
the bulk-assign form.
"""
from typing import Collection, FrozenSet, Iterable, List

from access_matrix.engine.aggregate import GroupStatus, row_group_status
from access_matrix.engine.entities import BulkAssignment
from access_matrix.engine.relation import RelationStore
from access_matrix.engine.route_store import RouteAssignmentStore


def common_columns(store: RelationStore, rows: Collection[str]) -> FrozenSet[str]:
    """Columns assigned to every row. Empty for an empty selection."""
    rows = list(dict.fromkeys(rows))
    if not rows:
        return frozenset()
    common = set(store.edges_of(rows[0]))
    for row in rows[1:]:
        common &= store.edges_of(row)
    return frozenset(common)


def partial_columns(store: RelationStore, rows: Collection[str]) -> FrozenSet[str]:
    """Columns assigned to some but not all rows."""
    union = set()
    for row in rows:
        union |= store.edges_of(row)
    return frozenset(union - common_columns(store, rows))


def _ordered(store: RelationStore, ids: Iterable[str]) -> List[str]:
    ids = set(ids)
    return [column for column in store.columns if column in ids]


class CommonSubsetResolver:
    def __init__(self, routes: RouteAssignmentStore):
        self.routes = routes

    def common_permissions(self, route_ids: Collection[str]) -> FrozenSet[str]:
        return common_columns(self.routes.permissions, route_ids)

    def partial_permissions(self, route_ids: Collection[str]) -> FrozenSet[str]:
        return partial_columns(self.routes.permissions, route_ids)

    def common_roles(self, route_ids: Collection[str]) -> FrozenSet[str]:
        return common_columns(self.routes.roles, route_ids)

    def partial_roles(self, route_ids: Collection[str]) -> FrozenSet[str]:
        return partial_columns(self.routes.roles, route_ids)

    def all_protected(self, route_ids: Collection[str]) -> bool:
        """True when every selected route is effectively protected; False for an empty selection."""
        route_ids = list(route_ids)
        return bool(route_ids) and all(self.routes.effective_protected(route_id) for route_id in route_ids)

    def permission_status(self, route_ids: Collection[str], permission_id: str) -> GroupStatus:
        return row_group_status(self.routes.permissions, route_ids, permission_id)

    def role_status(self, route_ids: Collection[str], role_id: str) -> GroupStatus:
        return row_group_status(self.routes.roles, route_ids, role_id)

    def prefill(self, route_ids: Collection[str]) -> BulkAssignment:
        """The bulk form for a selection: what every selected route already shares."""
        route_ids = list(dict.fromkeys(route_ids))
        return BulkAssignment(
            route_ids=route_ids,
            permission_ids=_ordered(self.routes.permissions, self.common_permissions(route_ids)),
            role_ids=_ordered(self.routes.roles, self.common_roles(route_ids)),
            is_protected=self.all_protected(route_ids),
        )
