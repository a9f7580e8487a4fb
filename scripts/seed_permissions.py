"""
Seed script to populate default permissions, roles and departments.

Run this script after database initialization to create:
- Default permissions, named `Category-Action`
- Default roles with their permission assignments
- Default departments

Usage:
    python -m scripts.seed_permissions
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from access_matrix.core.database.engine import get_db, init_db
from access_matrix.features.permissions.models import Permission, Role
from access_matrix.features.users.models import Department
from access_matrix.utils import get_logger


log = get_logger(__name__)


DEFAULT_PERMISSIONS = [
    # Users
    ("User-View", "View user information"),
    ("User-Create", "Create new users"),
    ("User-Edit", "Update user information"),
    ("User-Delete", "Delete users"),

    # Roles and permissions
    ("Role-View", "View roles"),
    ("Role-Manage", "Create, edit and delete roles"),
    ("Permission-View", "View permissions"),
    ("Permission-Manage", "Create, edit and delete permissions"),
    ("Permission-Assign", "Assign permissions to roles and users"),

    # Routes
    ("Route-View", "View route access"),
    ("Route-Manage", "Protect routes and sync route discovery"),

    # Billing
    ("Invoice-View", "View invoices"),
    ("Invoice-Create", "Create invoices"),
    ("Invoice-Export", "Export invoices"),
    ("Payment-Process", "Process payments"),

    # Reports
    ("Report-View", "View reports"),
    ("Report-Export", "Export reports"),

    # Audit
    ("Audit-View", "View audit logs"),
]


DEFAULT_ROLES = {
    "Administrator": {
        "description": "Full access to every permission",
        "permissions": "ALL"  # Special case - gets all permissions
    },
    "Access Manager": {
        "description": "Manages roles, permissions and route access",
        "permissions": [
            "User-View", "User-Create", "User-Edit",
            "Role-View", "Role-Manage",
            "Permission-View", "Permission-Manage", "Permission-Assign",
            "Route-View", "Route-Manage",
            "Audit-View",
        ]
    },
    "Billing Clerk": {
        "description": "Day-to-day billing work",
        "permissions": [
            "Invoice-View", "Invoice-Create", "Invoice-Export",
            "Payment-Process",
            "Report-View",
        ]
    },
    "Auditor": {
        "description": "Read-only access to most resources",
        "permissions": [
            "User-View", "Role-View", "Permission-View", "Route-View",
            "Invoice-View", "Report-View", "Audit-View",
        ]
    },
    "Viewer": {
        "description": "Read-only access to users and reports",
        "permissions": ["User-View", "Report-View"]
    },
}


DEFAULT_DEPARTMENTS = ["Engineering", "Finance", "Operations", "Support"]


async def seed_permissions(db: AsyncSession) -> dict[str, Permission]:
    """
    Create default permissions.

    Returns:
        Dictionary mapping permission names to Permission objects
    """
    log.info("Creating default permissions...")
    permissions_map = {}

    for name, description in DEFAULT_PERMISSIONS:
        result = await db.execute(select(Permission).where(Permission.name == name))
        existing = result.scalars().first()

        if existing:
            log.debug("Permission '%s' already exists, skipping", name)
            permissions_map[name] = existing
            continue

        permission = Permission(name=name, description=description)
        db.add(permission)
        permissions_map[name] = permission
        log.info("Created permission: %s", name)

    await db.commit()

    for permission in permissions_map.values():
        await db.refresh(permission)

    log.info("Seeded %d permissions", len(permissions_map))
    return permissions_map


async def seed_roles(db: AsyncSession, permissions_map: dict[str, Permission]):
    """
    Create default roles and assign permissions.

    Args:
        db: Database session
        permissions_map: Dictionary of permission name -> Permission object
    """
    log.info("Creating default roles...")

    for role_name, role_config in DEFAULT_ROLES.items():
        result = await db.execute(select(Role).where(Role.name == role_name))
        if result.scalars().first():
            log.debug("Role '%s' already exists, skipping", role_name)
            continue

        role = Role(name=role_name, description=role_config["description"])

        if role_config["permissions"] == "ALL":
            role.permissions = list(permissions_map.values())
        else:
            granted = []
            for permission_name in role_config["permissions"]:
                if permission_name in permissions_map:
                    granted.append(permissions_map[permission_name])
                else:
                    log.warning("Permission '%s' not found for role '%s'", permission_name, role_name)
            role.permissions = granted

        db.add(role)
        log.info("Created role '%s' with %d permissions", role_name, len(role.permissions))

    await db.commit()


async def seed_departments(db: AsyncSession):
    """Create default departments."""
    for name in DEFAULT_DEPARTMENTS:
        result = await db.execute(select(Department).where(Department.name == name))
        if result.scalars().first():
            continue
        db.add(Department(name=name))
        log.info("Created department: %s", name)
    await db.commit()


async def main():
    """Seed permissions, roles and departments."""
    log.info("Starting seeding...")
    await init_db()

    async for db in get_db():
        try:
            permissions_map = await seed_permissions(db)
            await seed_roles(db, permissions_map)
            await seed_departments(db)
            log.info("Seeding completed successfully")
        except Exception as e:
            log.error("Error seeding: %s", e, exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
