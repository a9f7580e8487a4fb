"""
Read-only entity records the matrix editors are built from.

These mirror the JSON returned by the access-control API; unknown fields are
ignored so the editors keep working when the server adds more.
"""
from typing import Any, Dict, List, Literal, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field

from access_matrix.engine.grouping import NO_DEPARTMENT, action_of, category_of


class Entity(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    id: str


class Permission(Entity):
    name: str
    description: Optional[str] = None

    @property
    def category(self) -> str:
        return category_of(self.name)

    @property
    def action(self) -> str:
        return action_of(self.name)

    @property
    def display_name(self) -> str:
        return self.name

    def search_fields(self) -> Tuple[str, ...]:
        return (self.name, self.description or "")


class Role(Entity):
    name: str
    description: Optional[str] = None
    permission_ids: frozenset[str] = frozenset()

    @property
    def display_name(self) -> str:
        return self.name

    def search_fields(self) -> Tuple[str, ...]:
        return (self.name, self.description or "")


class Department(Entity):
    name: str


class User(Entity):
    name: str
    email: str
    department: Optional[str] = None
    department_id: Optional[str] = None
    role_ids: frozenset[str] = frozenset()
    direct_permission_ids: frozenset[str] = frozenset()

    @property
    def department_name(self) -> str:
        return self.department or NO_DEPARTMENT

    @property
    def display_name(self) -> str:
        return self.name

    def search_fields(self) -> Tuple[str, ...]:
        return (self.name, self.email)


class Route(Entity):
    route_name: str
    route_uri: str
    route_methods: Tuple[str, ...] = ()
    group_name: str
    description: Optional[str] = None
    display_name: str = ""
    controller_class: Optional[str] = None
    controller_method: Optional[str] = None
    is_protected: bool = True
    permission_ids: frozenset[str] = frozenset()
    role_ids: frozenset[str] = frozenset()

    @property
    def label(self) -> str:
        return self.display_name or self.route_name

    def search_fields(self) -> Tuple[str, ...]:
        return (
            self.route_name,
            self.display_name,
            self.route_uri,
            self.controller_class or "",
            self.controller_method or "",
            self.description or "",
        )


class BulkAssignment(BaseModel):
    """The target assignment applied to every listed route by a bulk update."""
    route_ids: List[str]
    permission_ids: List[str] = []
    role_ids: List[str] = []
    is_protected: bool = True


class BulkUserRoles(BaseModel):
    user_ids: List[str]
    role_ids: List[str]
    action: Literal["assign", "remove"] = "assign"


# ============================================================================
# Page payloads
# ============================================================================

class RolePermissionData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    permissions: List[Permission]
    roles: List[Role]


class UserRoleData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    users: List[User]
    roles: List[Role]
    departments: List[Department] = []


class RouteData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    routes: List[Route]
    permissions: List[Permission]
    roles: List[Role]
    stats: Dict[str, Any] = Field(default_factory=dict)
