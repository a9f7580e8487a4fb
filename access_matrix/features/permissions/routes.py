"""
Permission management API routes.

Provides endpoints for managing permissions and roles, the role-permission
matrix, and the audit trail.
"""
import math
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from access_matrix.core.database.engine import get_db
from access_matrix.features.permissions.models import (
    Permission,
    Role,
    AuditLog,
    role_permissions,
)
from access_matrix.features.permissions.schemas import (
    PermissionCreate,
    PermissionUpdate,
    PermissionResponse,
    RoleCreate,
    RoleUpdate,
    RoleResponse,
    RoleWithPermissions,
    MatrixUpdate,
    MatrixUpdateResponse,
    BulkRolePermissionUpdate,
    RolePermissionPage,
    AuditLogResponse,
    AuditLogListResponse,
)
from access_matrix.features.permissions.dependencies import (
    get_or_404,
    ensure_ids_exist,
    granted_ids,
    sync_association,
    request_context,
    create_audit_log,
)
from access_matrix.utils import get_logger


log = get_logger(__name__)
router = APIRouter()
matrix_router = APIRouter()


def _name_conflict(kind: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"name": f"{kind} with this name already exists"}
    )


# ============================================================================
# Permission Routes
# ============================================================================

@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission: PermissionCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Create a new permission."""
    try:
        db_permission = Permission(**permission.model_dump())
        db.add(db_permission)
        await db.flush()
        await create_audit_log(
            db,
            action="create",
            resource_type="permission",
            resource_id=db_permission.id,
            details=permission.model_dump(),
            **request_context(request)
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise _name_conflict("Permission")

    await db.refresh(db_permission)
    return db_permission


@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    skip: int = 0,
    limit: int = 1000,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """List permissions ordered by name, optionally filtered by a name/description search."""
    stmt = select(Permission)

    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Permission.name.ilike(pattern), Permission.description.ilike(pattern)))

    stmt = stmt.order_by(Permission.name).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/permissions/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Get a specific permission by ID."""
    return await get_or_404(db, Permission, permission_id, "Permission")


@router.put("/permissions/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: str,
    permission_update: PermissionUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Update a permission's name or description."""
    db_permission = await get_or_404(db, Permission, permission_id, "Permission")

    update_data = permission_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        if key == "name" and value is None:
            continue
        setattr(db_permission, key, value)

    try:
        await db.flush()
        await create_audit_log(
            db,
            action="update",
            resource_type="permission",
            resource_id=permission_id,
            details=update_data,
            **request_context(request)
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise _name_conflict("Permission")

    await db.refresh(db_permission)
    return db_permission


@router.delete("/permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permission_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Delete a permission together with every role, user and route assignment of it."""
    db_permission = await get_or_404(db, Permission, permission_id, "Permission")

    permission_name = db_permission.name
    await db.delete(db_permission)
    await create_audit_log(
        db,
        action="delete",
        resource_type="permission",
        resource_id=permission_id,
        details={"name": permission_name},
        **request_context(request)
    )
    await db.commit()

    return None


# ============================================================================
# Role Routes
# ============================================================================

@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Create a new role."""
    try:
        db_role = Role(**role.model_dump())
        db.add(db_role)
        await db.flush()
        await create_audit_log(
            db,
            action="create",
            resource_type="role",
            resource_id=db_role.id,
            details=role.model_dump(),
            **request_context(request)
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise _name_conflict("Role")

    await db.refresh(db_role)
    return db_role


@router.get("/roles", response_model=List[RoleWithPermissions])
async def list_roles(
    skip: int = 0,
    limit: int = 1000,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """List roles ordered by name, with the ids of their permissions."""
    stmt = select(Role)

    if search:
        stmt = stmt.where(Role.name.ilike(f"%{search}%"))

    stmt = stmt.order_by(Role.name).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/roles/{role_id}", response_model=RoleWithPermissions)
async def get_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Get a specific role with its permissions."""
    return await get_or_404(db, Role, role_id, "Role")


@router.put("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    role_update: RoleUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Update a role's name or description."""
    db_role = await get_or_404(db, Role, role_id, "Role")

    update_data = role_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        if key == "name" and value is None:
            continue
        setattr(db_role, key, value)

    try:
        await db.flush()
        await create_audit_log(
            db,
            action="update",
            resource_type="role",
            resource_id=role_id,
            details=update_data,
            **request_context(request)
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise _name_conflict("Role")

    await db.refresh(db_role)
    return db_role


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Delete a role, removing it from every user and route."""
    db_role = await get_or_404(db, Role, role_id, "Role")

    role_name = db_role.name
    await db.delete(db_role)
    await create_audit_log(
        db,
        action="delete",
        resource_type="role",
        resource_id=role_id,
        details={"name": role_name},
        **request_context(request)
    )
    await db.commit()

    return None


# ============================================================================
# Role-Permission Matrix Routes
# ============================================================================

@matrix_router.get("/role-permissions", response_model=RolePermissionPage)
async def get_role_permission_matrix(
    db: AsyncSession = Depends(get_db),
):
    """Permissions and roles (with granted permission ids) for the matrix editor."""
    permissions = await db.execute(select(Permission).order_by(Permission.name))
    roles = await db.execute(select(Role).order_by(Role.name))
    return RolePermissionPage(
        permissions=[PermissionResponse.model_validate(item) for item in permissions.scalars().all()],
        roles=[RoleWithPermissions.model_validate(item) for item in roles.scalars().all()],
    )


@matrix_router.post("/role-permissions", response_model=MatrixUpdateResponse)
async def update_role_permission_matrix(
    payload: MatrixUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Replace the permissions of every role in the matrix.

    Each row is synced to exactly the permissions marked true. The whole matrix
    is written in one transaction; an unknown role or permission fails it.
    """
    matrix = payload.matrix
    await ensure_ids_exist(db, Role, matrix.keys(), "matrix", status_code=status.HTTP_404_NOT_FOUND)
    await ensure_ids_exist(
        db, Permission, {column for row in matrix.values() for column in row}, "matrix"
    )

    assignments = 0
    for role_id, row in matrix.items():
        permission_ids = granted_ids(row)
        assignments += len(permission_ids)
        await sync_association(db, role_permissions, "role_id", role_id, "permission_id", permission_ids)

    await create_audit_log(
        db,
        action="save_matrix",
        resource_type="role_permissions",
        details={"roles": len(matrix), "assignments": assignments},
        **request_context(request)
    )
    await db.commit()

    log.info("Role-permission matrix saved: %d roles, %d assignments", len(matrix), assignments)
    return MatrixUpdateResponse(
        message="Role permissions updated successfully",
        rows=len(matrix),
        assignments=assignments,
    )


@matrix_router.post("/role-permissions/bulk", response_model=MatrixUpdateResponse)
async def bulk_assign_role_permissions(
    payload: BulkRolePermissionUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Sync the same permission set onto every listed role."""
    role_ids = await ensure_ids_exist(db, Role, payload.role_ids, "role_ids")
    permission_ids = await ensure_ids_exist(db, Permission, payload.permission_ids, "permission_ids")

    for role_id in role_ids:
        await sync_association(db, role_permissions, "role_id", role_id, "permission_id", permission_ids)

    await create_audit_log(
        db,
        action="bulk_assign",
        resource_type="role_permissions",
        details={"role_ids": role_ids, "permission_ids": permission_ids},
        **request_context(request)
    )
    await db.commit()

    log.info("Permissions bulk assigned to %d roles", len(role_ids))
    return MatrixUpdateResponse(
        message=f"Permissions assigned to {len(role_ids)} roles",
        rows=len(role_ids),
        assignments=len(role_ids) * len(permission_ids),
    )


# ============================================================================
# Audit Log Routes
# ============================================================================

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    page: int = 1,
    page_size: int = 50,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """List audit logs, newest first."""
    page = max(page, 1)
    page_size = min(max(page_size, 1), 500)

    stmt = select(AuditLog)
    count_stmt = select(func.count()).select_from(AuditLog)
    if action:
        stmt = stmt.where(AuditLog.action == action)
        count_stmt = count_stmt.where(AuditLog.action == action)
    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)
        count_stmt = count_stmt.where(AuditLog.resource_type == resource_type)

    total = (await db.execute(count_stmt)).scalar_one()

    skip = (page - 1) * page_size
    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(skip).limit(page_size)
    result = await db.execute(stmt)

    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(item) for item in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total else 0,
    )
