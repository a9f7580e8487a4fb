"""
Route access control API routes.

Routes of this application are discovered into the `routes` table and can be
protected by permissions and roles, one route at a time or in bulk.
"""
from typing import Iterable, List, Optional
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from access_matrix.core import config
from access_matrix.core.database.engine import get_db
from access_matrix.core.limiter import limiter
from access_matrix.features.permissions.dependencies import (
    get_or_404,
    ensure_ids_exist,
    sync_association,
    request_context,
    create_audit_log,
)
from access_matrix.features.permissions.models import Permission, Role
from access_matrix.features.permissions.schemas import PermissionResponse, RoleResponse
from access_matrix.features.route_access.discovery import sync_routes
from access_matrix.features.route_access.models import (
    RouteRecord,
    route_permission_assignments,
    route_role_assignments,
)
from access_matrix.features.route_access.schemas import (
    BulkRouteAssignment,
    RouteAssignmentsUpdate,
    RoutePage,
    RouteResponse,
    RouteSaveResponse,
    RouteStats,
    RouteSyncResponse,
    RouteUpdate,
)
from access_matrix.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


def route_stats(records: Iterable[RouteRecord]) -> RouteStats:
    records = list(records)
    active = [record for record in records if record.is_active]
    return RouteStats(
        total_routes=len(records),
        active_routes=len(active),
        protected_routes=sum(1 for record in active if record.is_protected),
        routes_with_permissions=sum(1 for record in active if record.permissions),
        total_groups=len({record.group_name for record in active}),
    )


async def _assign(
    db: AsyncSession,
    route: RouteRecord,
    permission_ids: List[str],
    role_ids: List[str],
    is_protected: bool,
) -> None:
    await sync_association(db, route_permission_assignments, "route_id", route.id, "permission_id", permission_ids)
    await sync_association(db, route_role_assignments, "route_id", route.id, "role_id", role_ids)
    route.is_protected = is_protected


async def _routes_by_id(db: AsyncSession, route_ids: Iterable[str]) -> dict[str, RouteRecord]:
    route_ids = await ensure_ids_exist(db, RouteRecord, route_ids, "route_ids", status_code=status.HTTP_404_NOT_FOUND)
    result = await db.execute(select(RouteRecord).where(RouteRecord.id.in_(route_ids)))
    return {record.id: record for record in result.scalars().all()}


@router.get("/routes", response_model=RoutePage)
async def get_route_page(
    search: Optional[str] = None,
    group: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Active routes grouped for the editor, with every permission, role and route
    statistics.

    `search` matches route name, URI or group; `group` keeps one group. The
    statistics always cover every route.
    """
    records = list((await db.execute(select(RouteRecord))).scalars().all())

    stmt = select(RouteRecord).where(RouteRecord.is_active.is_(True))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(
            RouteRecord.route_name.ilike(pattern),
            RouteRecord.route_uri.ilike(pattern),
            RouteRecord.group_name.ilike(pattern),
        ))
    if group:
        stmt = stmt.where(RouteRecord.group_name == group)
    active = sorted(
        (await db.execute(stmt)).scalars().all(),
        key=lambda record: (record.group_name.lower(), record.route_name.lower()),
    )
    permissions = await db.execute(select(Permission).order_by(Permission.name))
    roles = await db.execute(select(Role).order_by(Role.name))

    return RoutePage(
        routes=[RouteResponse.model_validate(record) for record in active],
        permissions=[PermissionResponse.model_validate(item) for item in permissions.scalars().all()],
        roles=[RoleResponse.model_validate(item) for item in roles.scalars().all()],
        stats=route_stats(records),
    )


@router.post("/route-permissions", response_model=RouteSaveResponse)
async def update_route_permissions(
    payload: RouteAssignmentsUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Replace permissions, roles and the protected flag of every listed route.

    All routes are written in one transaction.
    """
    routes = await _routes_by_id(db, [item.route_id for item in payload.assignments])
    await ensure_ids_exist(
        db, Permission, {pid for item in payload.assignments for pid in item.permission_ids}, "permission_ids"
    )
    await ensure_ids_exist(db, Role, {rid for item in payload.assignments for rid in item.role_ids}, "role_ids")

    for item in payload.assignments:
        await _assign(
            db,
            routes[item.route_id],
            list(dict.fromkeys(item.permission_ids)),
            list(dict.fromkeys(item.role_ids)),
            item.is_protected,
        )

    await create_audit_log(
        db,
        action="save_matrix",
        resource_type="route_permissions",
        details={"routes": len(routes)},
        **request_context(request)
    )
    await db.commit()

    log.info("Route assignments saved for %d routes", len(routes))
    return RouteSaveResponse(message="Route permissions updated successfully", routes=len(routes))


@router.post("/route-permissions/bulk", response_model=RouteSaveResponse)
async def bulk_assign_routes(
    payload: BulkRouteAssignment,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Overwrite permissions, roles and protection of many routes with one target assignment."""
    routes = await _routes_by_id(db, payload.route_ids)
    permission_ids = await ensure_ids_exist(db, Permission, payload.permission_ids, "permission_ids")
    role_ids = await ensure_ids_exist(db, Role, payload.role_ids, "role_ids")

    for route in routes.values():
        await _assign(db, route, permission_ids, role_ids, payload.is_protected)

    await create_audit_log(
        db,
        action="bulk_assign",
        resource_type="route_permissions",
        details={
            "route_ids": list(routes),
            "permission_ids": permission_ids,
            "role_ids": role_ids,
            "is_protected": payload.is_protected,
        },
        **request_context(request)
    )
    await db.commit()

    return RouteSaveResponse(message=f"Access updated for {len(routes)} routes", routes=len(routes))


@router.post("/routes/sync", response_model=RouteSyncResponse)
@limiter.limit(config.ROUTE_SYNC_RATE_LIMIT)
async def sync_application_routes(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Discover the routes of this application and update the route table."""
    stats = await sync_routes(db, request.app, config.ROUTE_SYNC_EXCLUDE)
    await create_audit_log(
        db,
        action="sync",
        resource_type="route",
        details=stats,
        **request_context(request)
    )
    await db.commit()

    return RouteSyncResponse(message="Routes synchronized successfully", **stats)


@router.put("/routes/{route_id}", response_model=RouteResponse)
async def update_route(
    route_id: str,
    route_update: RouteUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Edit a route's description or protected flag."""
    record = await get_or_404(db, RouteRecord, route_id, "Route")

    update_data = route_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        if key == "is_protected" and value is None:
            continue
        setattr(record, key, value)

    await create_audit_log(
        db,
        action="update",
        resource_type="route",
        resource_id=route_id,
        details=update_data,
        **request_context(request)
    )
    await db.commit()
    await db.refresh(record)
    return record
