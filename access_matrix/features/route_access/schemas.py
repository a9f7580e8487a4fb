"""
Pydantic schemas for route access control.
"""
from datetime import datetime
from typing import Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict

from access_matrix.features.permissions.schemas import PermissionResponse, RoleResponse


class RouteResponse(BaseModel):
    """A discovered route with its attached permission and role ids."""
    id: str
    route_name: str
    route_uri: str
    route_methods: List[str]
    controller_class: Optional[str] = None
    controller_method: Optional[str] = None
    group_name: str
    description: Optional[str] = None
    display_name: str
    middleware: Optional[List[Any]] = None
    is_protected: bool
    is_active: bool
    permission_ids: List[str] = []
    role_ids: List[str] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RouteStats(BaseModel):
    total_routes: int
    active_routes: int
    protected_routes: int
    routes_with_permissions: int
    total_groups: int


class RoutePage(BaseModel):
    """Everything the route access editor needs to load."""
    routes: List[RouteResponse]
    permissions: List[PermissionResponse]
    roles: List[RoleResponse]
    stats: RouteStats


class RouteAssignment(BaseModel):
    """The full target assignment of one route."""
    route_id: str
    permission_ids: List[str] = []
    role_ids: List[str] = []
    is_protected: bool = True


class RouteAssignmentsUpdate(BaseModel):
    assignments: List[RouteAssignment]


class BulkRouteAssignment(BaseModel):
    """Overwrite the assignments of every listed route with the same target."""
    route_ids: List[str] = Field(..., min_length=1)
    permission_ids: List[str] = []
    role_ids: List[str] = []
    is_protected: bool = True


class RouteUpdate(BaseModel):
    description: Optional[str] = Field(None, max_length=1000)
    is_protected: Optional[bool] = None


class RouteSyncResponse(BaseModel):
    message: str
    discovered: int
    new: int
    updated: int
    deactivated: int


class RouteSaveResponse(BaseModel):
    message: str
    routes: int
