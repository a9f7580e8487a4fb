"""
User feature routes: users, departments, the user-role matrix and direct permissions.
"""
import csv
from io import StringIO
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response
from sqlalchemy import select, delete, insert, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from access_matrix.core.database.engine import get_db
from access_matrix.features.permissions.dependencies import (
    get_or_404,
    ensure_ids_exist,
    granted_ids,
    sync_association,
    request_context,
    create_audit_log,
)
from access_matrix.features.permissions.models import Permission, Role
from access_matrix.features.permissions.schemas import (
    MatrixUpdate,
    MatrixUpdateResponse,
    RoleWithPermissions,
)
from access_matrix.features.users.models import User, Department, user_roles, user_permissions
from access_matrix.features.users.schemas import (
    BulkUserRoleUpdate,
    DepartmentCreate,
    DepartmentResponse,
    MessageResponse,
    UserCreate,
    UserPermissionsUpdate,
    UserResponse,
    UserRolePage,
)
from access_matrix.utils import get_logger


log = get_logger(__name__)
router = APIRouter()
matrix_router = APIRouter()


# ============================================================================
# Users and Departments
# ============================================================================

@router.get("/users", response_model=list[UserResponse])
async def list_users(
    db: Annotated[AsyncSession, Depends(get_db)],
    search: Optional[str] = None,
    skip: int = 0,
    limit: int = 1000
):
    """List active users ordered by name, optionally filtered by name or email."""
    stmt = select(User).where(User.is_active == True)  # noqa: E712
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    result = await db.execute(stmt.order_by(User.name).offset(skip).limit(limit))
    return result.scalars().all()


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a user, optionally placing them in a department."""
    if user_data.department_id is not None:
        await get_or_404(db, Department, user_data.department_id, "Department")

    user = User(**user_data.model_dump())
    try:
        db.add(user)
        await db.flush()
        await create_audit_log(
            db,
            action="create",
            resource_type="user",
            resource_id=user.id,
            details={"email": user_data.email},
            **request_context(request)
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"email": "A user with this email already exists"}
        )

    await db.refresh(user)
    return user


@router.get("/departments", response_model=list[DepartmentResponse])
async def list_departments(
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List active departments ordered by name."""
    result = await db.execute(
        select(Department).where(Department.is_active == True).order_by(Department.name)  # noqa: E712
    )
    return result.scalars().all()


@router.post("/departments", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
async def create_department(
    department: DepartmentCreate,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a department."""
    db_department = Department(name=department.name.strip())
    try:
        db.add(db_department)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"name": "Department with this name already exists"}
        )
    await db.refresh(db_department)
    return db_department


# ============================================================================
# User-Role Matrix
# ============================================================================

async def _active_users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).where(User.is_active == True).order_by(User.name))  # noqa: E712
    return list(result.scalars().all())


@matrix_router.get("/user-roles", response_model=UserRolePage)
async def get_user_role_matrix(
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Users (with department and assignments), roles and departments for the matrix editor."""
    users = await _active_users(db)
    roles = await db.execute(select(Role).order_by(Role.name))
    departments = await db.execute(
        select(Department).where(Department.is_active == True).order_by(Department.name)  # noqa: E712
    )
    return UserRolePage(
        users=[UserResponse.model_validate(user) for user in users],
        roles=[RoleWithPermissions.model_validate(role) for role in roles.scalars().all()],
        departments=[DepartmentResponse.model_validate(item) for item in departments.scalars().all()],
    )


@matrix_router.post("/user-roles", response_model=MatrixUpdateResponse)
async def update_user_role_matrix(
    payload: MatrixUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Replace the roles of every user in the matrix.

    Each row is synced to exactly the roles marked true, in one transaction.
    """
    matrix = payload.matrix
    await ensure_ids_exist(db, User, matrix.keys(), "matrix", status_code=status.HTTP_404_NOT_FOUND)
    await ensure_ids_exist(db, Role, {column for row in matrix.values() for column in row}, "matrix")

    assignments = 0
    for user_id, row in matrix.items():
        role_ids = granted_ids(row)
        assignments += len(role_ids)
        await sync_association(db, user_roles, "user_id", user_id, "role_id", role_ids)

    await create_audit_log(
        db,
        action="save_matrix",
        resource_type="user_roles",
        details={"users": len(matrix), "assignments": assignments},
        **request_context(request)
    )
    await db.commit()

    log.info("User-role matrix saved: %d users, %d assignments", len(matrix), assignments)
    return MatrixUpdateResponse(
        message="User roles updated successfully",
        rows=len(matrix),
        assignments=assignments,
    )


@matrix_router.post("/user-roles/bulk", response_model=MessageResponse)
async def bulk_update_user_roles(
    payload: BulkUserRoleUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Assign roles to many users without removing their other roles, or remove
    the listed roles from them.
    """
    user_ids = await ensure_ids_exist(db, User, payload.user_ids, "user_ids")
    role_ids = await ensure_ids_exist(db, Role, payload.role_ids, "role_ids")

    if payload.action == "assign":
        existing = await db.execute(
            select(user_roles.c.user_id, user_roles.c.role_id).where(
                and_(user_roles.c.user_id.in_(user_ids), user_roles.c.role_id.in_(role_ids))
            )
        )
        present = {(row.user_id, row.role_id) for row in existing}
        missing = [
            {"user_id": user_id, "role_id": role_id}
            for user_id in user_ids
            for role_id in role_ids
            if (user_id, role_id) not in present
        ]
        if missing:
            await db.execute(insert(user_roles), missing)
        verb = "assigned to"
    else:
        await db.execute(
            delete(user_roles).where(
                and_(user_roles.c.user_id.in_(user_ids), user_roles.c.role_id.in_(role_ids))
            )
        )
        verb = "removed from"

    await create_audit_log(
        db,
        action=f"bulk_{payload.action}",
        resource_type="user_roles",
        details={"user_ids": user_ids, "role_ids": role_ids},
        **request_context(request)
    )
    await db.commit()

    return MessageResponse(message=f"Roles {verb} {len(user_ids)} users successfully")


@matrix_router.get("/user-roles/export")
async def export_user_role_matrix(
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Export the user-role matrix as CSV, one row per user and one column per role."""
    users = await _active_users(db)
    users.sort(key=lambda user: ((user.department or "").lower(), user.name.lower()))
    roles = list((await db.execute(select(Role).order_by(Role.name))).scalars().all())

    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["User", "Email", "Department", *[role.name for role in roles]])
    for user in users:
        held = set(user.role_ids)
        writer.writerow([
            user.name,
            user.email,
            user.department or "",
            *["Yes" if role.id in held else "No" for role in roles],
        ])

    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="user-role-matrix.csv"'},
    )


@matrix_router.post("/user-permissions", response_model=MessageResponse)
async def update_user_permissions(
    payload: UserPermissionsUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Replace the direct permissions of one user. Role-derived permissions are unaffected."""
    await get_or_404(db, User, payload.user_id, "User")
    permission_ids = await ensure_ids_exist(db, Permission, payload.permission_ids, "permission_ids")

    await sync_association(db, user_permissions, "user_id", payload.user_id, "permission_id", permission_ids)
    await create_audit_log(
        db,
        action="sync_permissions",
        resource_type="user",
        resource_id=payload.user_id,
        details={"permission_ids": permission_ids},
        **request_context(request)
    )
    await db.commit()

    return MessageResponse(message="User permissions updated successfully")
