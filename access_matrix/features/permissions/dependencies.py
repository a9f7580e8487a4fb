"""
Shared helpers for policy routes.

Implements:
- Lookup-or-404 and id validation helpers
- Relation synchronisation (replace one row of an association table)
- Audit logging helpers
"""
from typing import Dict, Any, Optional, Iterable, Sequence
from fastapi import HTTPException, status, Request
from sqlalchemy import select, delete, insert, Table
from sqlalchemy.ext.asyncio import AsyncSession

from access_matrix.features.permissions.models import AuditLog
from access_matrix.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Lookups
# ============================================================================

async def get_or_404(db: AsyncSession, model, entity_id: str, label: str):
    """
    Load a model instance by primary key or raise 404.

    Args:
        db: Database session
        model: SQLAlchemy model class
        entity_id: Primary key
        label: Human name used in the error message ("Role", "Permission", ...)
    """
    result = await db.execute(select(model).where(model.id == entity_id))
    instance = result.scalars().first()
    if instance is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")
    return instance


async def ensure_ids_exist(
    db: AsyncSession,
    model,
    ids: Iterable[str],
    field: str,
    status_code: int = status.HTTP_422_UNPROCESSABLE_ENTITY,
) -> list[str]:
    """
    Check that every id refers to an existing row of `model`.

    Returns the de-duplicated ids in their original order.

    Raises:
        HTTPException: with a field-level error map listing the unknown ids
    """
    wanted = list(dict.fromkeys(ids))
    if not wanted:
        return wanted
    result = await db.execute(select(model.id).where(model.id.in_(wanted)))
    found = set(result.scalars().all())
    missing = [entity_id for entity_id in wanted if entity_id not in found]
    if missing:
        raise HTTPException(
            status_code=status_code,
            detail={field: f"Unknown ids: {', '.join(missing)}"},
        )
    return wanted


# ============================================================================
# Relation Synchronisation
# ============================================================================

def granted_ids(row: Dict[str, bool]) -> list[str]:
    """Column ids whose value is exactly True."""
    return [column_id for column_id, assigned in row.items() if assigned is True]


async def sync_association(
    db: AsyncSession,
    table: Table,
    owner_column: str,
    owner_id: str,
    target_column: str,
    target_ids: Sequence[str],
) -> None:
    """
    Replace every association of one owner with `target_ids`.

    Does not commit; callers run several syncs in one transaction.
    """
    await db.execute(delete(table).where(table.c[owner_column] == owner_id))
    if target_ids:
        await db.execute(
            insert(table),
            [{owner_column: owner_id, target_column: target_id} for target_id in target_ids],
        )


# ============================================================================
# Audit Logging
# ============================================================================

def request_context(request: Request) -> Dict[str, Optional[str]]:
    """Client address and user agent of the request, for audit entries."""
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


async def create_audit_log(
    db: AsyncSession,
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None
) -> AuditLog:
    """
    Add an audit log entry to the current transaction.

    The entry is flushed but not committed, so it is written together with the
    change it describes, or not at all.

    Args:
        db: Database session
        action: Action performed (e.g., "create", "update", "delete", "save_matrix")
        resource_type: Type of resource (e.g., "role", "permission", "route")
        resource_id: ID of the resource
        details: Additional details
        ip_address: Client IP address
        user_agent: Client user agent
    """
    audit_log = AuditLog(
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent
    )

    db.add(audit_log)
    await db.flush()

    log.info(f"Audit: action={action} resource={resource_type}:{resource_id}")

    return audit_log
