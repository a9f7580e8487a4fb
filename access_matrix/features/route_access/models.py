"""
Route record model: one row per discovered API route.
"""
from typing import Any
from sqlalchemy import String, ForeignKey, Table, Column, JSON, Text, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship

from access_matrix.core.database.base import Base, TimestampMixin, generate_ulid


GENERAL_GROUP = "General"


# Route-Permission relationship
route_permission_assignments = Table(
    "route_permission_assignments",
    Base.metadata,
    Column("route_id", String(26), ForeignKey("routes.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

# Route-Role relationship
route_role_assignments = Table(
    "route_role_assignments",
    Base.metadata,
    Column("route_id", String(26), ForeignKey("routes.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class RouteRecord(Base, TimestampMixin):
    """
    A route of the API and the policy attached to it.

    Routes that disappear from the application are deactivated, not deleted,
    so their assignments survive a temporary removal.
    """
    __tablename__ = "routes"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    route_name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    route_uri: Mapped[str] = mapped_column(String(500), nullable=False)
    route_methods: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    controller_class: Mapped[str | None] = mapped_column(String(255), nullable=True)
    controller_method: Mapped[str | None] = mapped_column(String(255), nullable=True)
    group_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True, default=GENERAL_GROUP)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    middleware: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)

    is_protected: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    # Relationships
    permissions: Mapped[list["Permission"]] = relationship(  # type: ignore  # noqa: F821
        "Permission",
        secondary=route_permission_assignments,
        lazy="selectin"
    )

    roles: Mapped[list["Role"]] = relationship(  # type: ignore  # noqa: F821
        "Role",
        secondary=route_role_assignments,
        lazy="selectin"
    )

    @property
    def permission_ids(self) -> list[str]:
        return [permission.id for permission in self.permissions]

    @property
    def role_ids(self) -> list[str]:
        return [role.id for role in self.roles]

    @property
    def display_name(self) -> str:
        name = self.route_name
        for separator in ("-", "_", "."):
            name = name.replace(separator, " ")
        return name.title()

    def __repr__(self) -> str:
        return f"<RouteRecord(id={self.id}, name={self.route_name!r}, group={self.group_name!r})>"
