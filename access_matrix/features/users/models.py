"""
User and Department models with ULID primary keys.
"""
from datetime import datetime
from sqlalchemy import String, Boolean, ForeignKey, Table, Column, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from access_matrix.core.database.base import Base, TimestampMixin, generate_ulid


# User-Role relationship (the User→Role relation)
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)

# Direct user permissions (supplement role permissions)
user_permissions = Table(
    "user_permissions",
    Base.metadata,
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)


class Department(Base, TimestampMixin):
    """Department users are grouped by in the user-role matrix."""
    __tablename__ = "departments"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Department(id={self.id}, name={self.name!r})>"


class User(Base, TimestampMixin):
    """
    User model representing people whose roles are administered.

    Uses ULID instead of auto-incrementing integers for better distributed systems support.
    """
    __tablename__ = "users"

    # Primary key using ULID (Universally Unique Lexicographically Sortable Identifier)
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # User information
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    department_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Relationships
    department_ref: Mapped["Department | None"] = relationship(
        "Department",
        lazy="selectin"
    )

    roles: Mapped[list["Role"]] = relationship(  # type: ignore  # noqa: F821
        "Role",
        secondary=user_roles,
        lazy="selectin"
    )

    direct_permissions: Mapped[list["Permission"]] = relationship(  # type: ignore  # noqa: F821
        "Permission",
        secondary=user_permissions,
        lazy="selectin"
    )

    @property
    def department(self) -> str | None:
        return self.department_ref.name if self.department_ref else None

    @property
    def role_ids(self) -> list[str]:
        return [role.id for role in self.roles]

    @property
    def direct_permission_ids(self) -> list[str]:
        return [permission.id for permission in self.direct_permissions]

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r})>"
