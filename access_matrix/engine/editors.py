"""
Matrix editors: one per admin grid.

An editor owns the relation store(s) of its grid, the grouping and expansion
state used to draw it, and the save/reset lifecycle. Saves send the full
relation through a `CommitGateway`; on success the sent state becomes the new
baseline, on failure nothing local changes.
"""
from typing import Any, Collection, Dict, Iterable, List, Optional, Sequence, Set

from access_matrix.engine.aggregate import (
    GroupStatus,
    TriStateAggregator,
    assignment_count,
    column_group_status,
    rows_with_assignments,
)
from access_matrix.engine.entities import (
    BulkAssignment,
    BulkUserRoles,
    Permission,
    RolePermissionData,
    RouteData,
    User,
    UserRoleData,
)
from access_matrix.engine.errors import LockedPermissionError, SaveInProgressError, UnknownEntityError
from access_matrix.engine.gateway import CommitGateway, CommitResult
from access_matrix.engine.grouping import (
    ExpansionState,
    Group,
    categories_of,
    departments_of,
    filter_groups,
    route_groups_of,
)
from access_matrix.engine.memo import Memo
from access_matrix.engine.relation import RelationStore
from access_matrix.engine.resolver import CommonSubsetResolver
from access_matrix.engine.route_store import PROTECTED, RouteAssignmentStore, RouteSnapshot, assignments_from
from access_matrix.engine.tracker import CellChange, ChangeTracker
from access_matrix.utils import get_logger


log = get_logger(__name__)


def reapply(store: RelationStore, changes: Iterable[CellChange]) -> None:
    """Replay pending edits onto a rebuilt store, dropping cells that no longer exist."""
    rows, columns = set(store.rows), set(store.columns)
    for change in changes:
        if change.row in rows and change.column in columns:
            store.set(change.row, change.column, change.value)


class MatrixEditor:
    """
    Save/reset lifecycle shared by every editor.

    Subclasses set `self.tracker` (anything with is_dirty/diff/reset/commit)
    and implement `_commit`. Public operations that rebuild the store refuse
    to run during a save, and a save commits into the tracker it was sent
    from even if the store was rebuilt meanwhile.
    """
    name = "matrix"

    def __init__(self, gateway: CommitGateway):
        self.gateway = gateway
        self.saving = False
        # bumped whenever the groups are rebuilt; keys the visible-groups memo
        self.generation = 0

    def is_dirty(self) -> bool:
        return self.tracker.is_dirty()

    @property
    def can_save(self) -> bool:
        return not self.saving and self.is_dirty()

    def reset(self) -> None:
        self.tracker.reset()

    def _ensure_idle(self, action: str) -> None:
        if self.saving:
            raise SaveInProgressError(f"cannot {action} while {self.name} is being saved")

    async def reload(self) -> None:
        """Rebuild from the server, dropping pending edits."""
        self._ensure_idle("reload")
        await self._reload()

    async def _reload(self) -> None:
        raise NotImplementedError

    async def _commit(self, sent) -> CommitResult:
        raise NotImplementedError

    async def save(self) -> CommitResult:
        """
        Send the current relation. Raises SaveInProgressError while a previous
        save of this editor has not finished.
        """
        if self.saving:
            raise SaveInProgressError(f"{self.name} is already being saved")

        self.saving = True
        tracker = self.tracker
        sent = tracker.diff()
        try:
            result = await self._commit(sent)
        finally:
            self.saving = False

        if result.ok:
            tracker.commit(sent)
            log.info("Saved %s: %s", self.name, result.message)
        else:
            log.warning("Saving %s failed (%s): %s %s", self.name, result.status_code, result.message, result.errors)
        return result


# ============================================================================
# Role -> Permission
# ============================================================================

class RolePermissionEditor(MatrixEditor):
    """Roles as rows, permissions as columns, columns grouped by category."""
    name = "role permissions"

    def __init__(self, gateway: CommitGateway, data: RolePermissionData):
        super().__init__(gateway)
        self.expansion = ExpansionState.collapsed()
        self._visible = Memo(lambda generation, query: filter_groups(self.categories, query))
        self._build(data)

    @classmethod
    async def load(cls, gateway: CommitGateway) -> "RolePermissionEditor":
        return cls(gateway, await gateway.load_role_permission_page())

    def _build(self, data: RolePermissionData) -> None:
        self.permissions = list(data.permissions)
        self.roles = list(data.roles)
        self.store = RelationStore.from_edges(
            [role.id for role in self.roles],
            [permission.id for permission in self.permissions],
            {role.id: role.permission_ids for role in self.roles},
        )
        self.tracker = ChangeTracker(self.store, self.name)
        self.aggregator = TriStateAggregator(self.store, "columns")
        self.categories = categories_of(self.permissions)
        self.generation += 1

    async def _reload(self) -> None:
        self._build(await self.gateway.load_role_permission_page())

    async def refresh(self) -> None:
        """
        Reload entities from the server, keeping pending edits for cells that
        still exist.
        """
        self._ensure_idle("refresh")
        await self._refresh()

    async def _refresh(self) -> None:
        pending = self.tracker.pending_changes()
        self._build(await self.gateway.load_role_permission_page())
        reapply(self.store, pending)

    def visible_categories(self, query: Optional[str] = None) -> List[Group]:
        return self._visible(self.generation, (query or "").strip())

    def has(self, role_id: str, permission_id: str) -> bool:
        return self.store.get(role_id, permission_id)

    def toggle(self, role_id: str, permission_id: str) -> bool:
        return self.store.toggle(role_id, permission_id)

    def set_category(self, role_id: str, category: str, value: bool) -> None:
        self.store.set_many(role_id, self._category(category).ids, value)

    def set_role_all(self, role_id: str, value: bool) -> None:
        self.store.set_all_for_row(role_id, value)

    def set_permission_for_all_roles(self, permission_id: str, value: bool) -> None:
        self.store.set_all_for_column(permission_id, value)

    def category_status(self, role_id: str, category: str) -> GroupStatus:
        return self.aggregator.status(self._category(category), role_id)

    def role_status(self, role_id: str) -> GroupStatus:
        return self.aggregator.select_all_status(role_id)

    def _category(self, name: str) -> Group:
        for group in self.categories:
            if group.name == name:
                return group
        raise UnknownEntityError("category", name)

    async def _commit(self, sent) -> CommitResult:
        return await self.gateway.save_role_permission_matrix(sent)

    async def bulk_update(self, role_ids: Sequence[str], permission_ids: Sequence[str]) -> CommitResult:
        """Give every listed role exactly `permission_ids` on the server, then reload."""
        self._ensure_idle("bulk assign permissions")
        result = await self.gateway.bulk_assign_role_permissions(list(role_ids), list(permission_ids))
        if result.ok:
            await self._reload()
        return result

    # Entity CRUD: creates refetch the entity lists, deletes drop the row/column

    async def create_permission(self, name: str, description: Optional[str] = None) -> CommitResult:
        self._ensure_idle("create a permission")
        result = await self.gateway.create_permission(name, description)
        if result.ok:
            await self._refresh()
        return result

    async def create_role(self, name: str, description: Optional[str] = None) -> CommitResult:
        self._ensure_idle("create a role")
        result = await self.gateway.create_role(name, description)
        if result.ok:
            await self._refresh()
        return result

    async def delete_permission(self, permission_id: str) -> CommitResult:
        self._ensure_idle("delete a permission")
        result = await self.gateway.delete_permission(permission_id)
        if result.ok:
            self.store.remove_column(permission_id)
            self.permissions = [p for p in self.permissions if p.id != permission_id]
            self.categories = categories_of(self.permissions)
            self.generation += 1
        return result

    async def delete_role(self, role_id: str) -> CommitResult:
        self._ensure_idle("delete a role")
        result = await self.gateway.delete_role(role_id)
        if result.ok:
            self.store.remove_row(role_id)
            self.roles = [role for role in self.roles if role.id != role_id]
        return result


# ============================================================================
# User -> Role
# ============================================================================

class UserRoleEditor(MatrixEditor):
    """Users as rows grouped by department, roles as columns."""
    name = "user roles"

    def __init__(self, gateway: CommitGateway, data: UserRoleData):
        super().__init__(gateway)
        self.expansion = ExpansionState.expanded()
        self._visible = Memo(lambda generation, query: filter_groups(self.department_groups, query))
        self._build(data)

    @classmethod
    async def load(cls, gateway: CommitGateway) -> "UserRoleEditor":
        return cls(gateway, await gateway.load_user_role_page())

    def _build(self, data: UserRoleData) -> None:
        self.users = list(data.users)
        self.roles = list(data.roles)
        self.departments = list(data.departments)
        self.store = RelationStore.from_edges(
            [user.id for user in self.users],
            [role.id for role in self.roles],
            {user.id: user.role_ids for user in self.users},
        )
        self.tracker = ChangeTracker(self.store, self.name)
        self.aggregator = TriStateAggregator(self.store, "rows")
        self.department_groups = departments_of(self.users)
        self.generation += 1

    async def _reload(self) -> None:
        self._build(await self.gateway.load_user_role_page())

    def visible_departments(self, query: Optional[str] = None) -> List[Group]:
        return self._visible(self.generation, (query or "").strip())

    def has(self, user_id: str, role_id: str) -> bool:
        return self.store.get(user_id, role_id)

    def toggle(self, user_id: str, role_id: str) -> bool:
        return self.store.toggle(user_id, role_id)

    def set_department(self, department: str, role_id: str, value: bool) -> None:
        self.store.set_all(self._department(department).ids, role_id, value)

    def set_role_for_all_users(self, role_id: str, value: bool) -> None:
        self.store.set_all_for_column(role_id, value)

    def department_status(self, department: str, role_id: str) -> GroupStatus:
        return self.aggregator.status(self._department(department), role_id)

    def role_status(self, role_id: str) -> GroupStatus:
        return self.aggregator.select_all_status(role_id)

    def stats(self) -> Dict[str, int]:
        return {
            "total_users": len(self.store.rows),
            "total_roles": len(self.store.columns),
            "total_assignments": assignment_count(self.store),
            "users_with_roles": rows_with_assignments(self.store),
        }

    def _department(self, name: str) -> Group:
        for group in self.department_groups:
            if group.name == name:
                return group
        raise UnknownEntityError("department", name)

    async def _commit(self, sent) -> CommitResult:
        return await self.gateway.save_user_role_matrix(sent)

    async def bulk_update(self, user_ids: Sequence[str], role_ids: Sequence[str], action: str = "assign") -> CommitResult:
        """Assign or remove roles for many users on the server, then reload."""
        self._ensure_idle("bulk assign roles")
        result = await self.gateway.bulk_assign_user_roles(
            BulkUserRoles(user_ids=list(user_ids), role_ids=list(role_ids), action=action)
        )
        if result.ok:
            await self._reload()
        return result

    async def create_user(self, name: str, email: str, department_id: Optional[str] = None) -> CommitResult:
        self._ensure_idle("create a user")
        result = await self.gateway.create_user(name, email, department_id)
        if result.ok:
            pending = self.tracker.pending_changes()
            await self._reload()
            reapply(self.store, pending)
        return result


# ============================================================================
# Route -> Permission / Role / protected
# ============================================================================

class RouteAccessEditor(MatrixEditor):
    """
    Routes grouped by their declared group, with permission and role columns
    and a protected flag per route.

    Bulk assignment and route sync change the server in ways the editor does
    not predict, so both reload afterwards.
    """
    name = "route access"

    def __init__(self, gateway: CommitGateway, data: RouteData):
        super().__init__(gateway)
        self.expansion = ExpansionState.expanded()
        self._visible = Memo(lambda generation, query: filter_groups(self.route_groups, query))
        self._build(data)

    @classmethod
    async def load(cls, gateway: CommitGateway) -> "RouteAccessEditor":
        return cls(gateway, await gateway.load_route_page())

    def _build(self, data: RouteData) -> None:
        self.routes = list(data.routes)
        self.permissions = list(data.permissions)
        self.roles = list(data.roles)
        self.server_stats = dict(data.stats)
        self.store = RouteAssignmentStore(
            self.routes,
            [permission.id for permission in self.permissions],
            [role.id for role in self.roles],
        )
        self.tracker = self.store
        self.resolver = CommonSubsetResolver(self.store)
        self.route_groups = route_groups_of(self.routes)
        self.permission_aggregator = TriStateAggregator(self.store.permissions, "rows")
        self.role_aggregator = TriStateAggregator(self.store.roles, "rows")
        self.protection_aggregator = TriStateAggregator(self.store.protection, "rows")
        self.selection: Set[str] = set()
        self.generation += 1

    async def _reload(self) -> None:
        self._build(await self.gateway.load_route_page())

    def visible_groups(self, query: Optional[str] = None) -> List[Group]:
        return self._visible(self.generation, (query or "").strip())

    def toggle_permission(self, route_id: str, permission_id: str) -> bool:
        return self.store.permissions.toggle(route_id, permission_id)

    def toggle_role(self, route_id: str, role_id: str) -> bool:
        return self.store.roles.toggle(route_id, role_id)

    def set_protected(self, route_id: str, value: bool) -> None:
        self.store.set_protected(route_id, value)

    def is_protected(self, route_id: str) -> bool:
        return self.store.effective_protected(route_id)

    def group_permission_status(self, group: str, permission_id: str) -> GroupStatus:
        return self.permission_aggregator.status(self._group(group), permission_id)

    def group_role_status(self, group: str, role_id: str) -> GroupStatus:
        return self.role_aggregator.status(self._group(group), role_id)

    def group_protected_status(self, group: str) -> GroupStatus:
        return self.protection_aggregator.status(self._group(group), PROTECTED)

    def _group(self, name: str) -> Group:
        for group in self.route_groups:
            if group.name == name:
                return group
        raise UnknownEntityError("route group", name)

    # Selection and bulk assignment

    def select(self, route_ids: Iterable[str]) -> None:
        for route_id in route_ids:
            if route_id not in self.store.route_ids:
                raise UnknownEntityError("route", route_id)
            self.selection.add(route_id)

    def deselect(self, route_ids: Iterable[str]) -> None:
        self.selection.difference_update(route_ids)

    def select_group(self, group: str) -> None:
        self.select(self._group(group).ids)

    def clear_selection(self) -> None:
        self.selection.clear()

    def prefill(self, route_ids: Optional[Collection[str]] = None) -> BulkAssignment:
        """Bulk form for `route_ids`, or for the current selection."""
        return self.resolver.prefill(self._selected(route_ids))

    def _selected(self, route_ids: Optional[Collection[str]]) -> List[str]:
        if route_ids is not None:
            return list(route_ids)
        return [route_id for route_id in self.store.route_ids if route_id in self.selection]

    async def apply_bulk(self, bulk: BulkAssignment) -> CommitResult:
        self._ensure_idle("apply a bulk assignment")
        result = await self.gateway.bulk_assign_routes(bulk)
        if result.ok:
            await self._reload()
        return result

    async def sync_routes(self) -> CommitResult:
        self._ensure_idle("sync routes")
        result = await self.gateway.sync_routes()
        if result.ok:
            await self._reload()
        return result

    def stats(self) -> Dict[str, int]:
        route_ids = self.store.route_ids
        return {
            "total_routes": len(route_ids),
            "protected_routes": sum(1 for route_id in route_ids if self.is_protected(route_id)),
            "routes_with_permissions": rows_with_assignments(self.store.permissions),
            "total_groups": len(self.route_groups),
        }

    async def _commit(self, sent: RouteSnapshot) -> CommitResult:
        return await self.gateway.save_route_permissions(assignments_from(sent))


# ============================================================================
# User -> direct Permission
# ============================================================================

class DirectPermissionEditor(MatrixEditor):
    """
    Direct permissions of a single user.

    Permissions the user already has through a role are shown as granted and
    locked; they can only be changed through the role.
    """
    name = "direct permissions"

    def __init__(self, gateway: CommitGateway, user: User, permissions: Iterable[Permission],
                 inherited: Collection[str] = ()):
        super().__init__(gateway)
        self.user = user
        self.permissions = list(permissions)
        self.inherited = frozenset(inherited)
        self.store = RelationStore.from_edges(
            [user.id],
            [permission.id for permission in self.permissions],
            {user.id: user.direct_permission_ids},
        )
        self.tracker = ChangeTracker(self.store, self.name)
        self.categories = categories_of(self.permissions)
        self.expansion = ExpansionState.collapsed()

    @classmethod
    async def load(cls, gateway: CommitGateway, user_id: str) -> "DirectPermissionEditor":
        page = await gateway.load_user_role_page()
        user = next((user for user in page.users if user.id == user_id), None)
        if user is None:
            raise UnknownEntityError("user", user_id)
        roles = {role.id: role for role in page.roles}
        inherited = set()
        for role_id in user.role_ids:
            if role_id in roles:
                inherited |= roles[role_id].permission_ids
        return cls(gateway, user, await gateway.load_permissions(), inherited)

    def is_locked(self, permission_id: str) -> bool:
        return permission_id in self.inherited

    def is_direct(self, permission_id: str) -> bool:
        return self.store.get(self.user.id, permission_id)

    def is_granted(self, permission_id: str) -> bool:
        return self.is_locked(permission_id) or self.is_direct(permission_id)

    def toggle(self, permission_id: str) -> bool:
        if self.is_locked(permission_id):
            raise LockedPermissionError(permission_id)
        return self.store.toggle(self.user.id, permission_id)

    def set_category(self, category: str, value: bool) -> None:
        """Set every unlocked permission of a category."""
        for group in self.categories:
            if group.name == category:
                self.store.set_many(self.user.id, [pid for pid in group.ids if not self.is_locked(pid)], value)
                return
        raise UnknownEntityError("category", category)

    def category_status(self, category: str) -> GroupStatus:
        """Status of a category counting inherited permissions as granted."""
        for group in self.categories:
            if group.name == category:
                granted = [pid for pid in group.ids if self.is_granted(pid)]
                return GroupStatus.from_count(len(granted), group.size)
        raise UnknownEntityError("category", category)

    def direct_status(self, category: str) -> GroupStatus:
        for group in self.categories:
            if group.name == category:
                return column_group_status(self.store, self.user.id, group)
        raise UnknownEntityError("category", category)

    def direct_permission_ids(self) -> List[str]:
        return [pid for pid in self.store.columns if self.store.get(self.user.id, pid)]

    async def _commit(self, sent: Dict[str, Dict[str, Any]]) -> CommitResult:
        granted = [pid for pid, value in sent.get(self.user.id, {}).items() if value]
        return await self.gateway.save_user_permissions(self.user.id, granted)
