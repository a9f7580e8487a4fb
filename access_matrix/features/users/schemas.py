"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from typing import Literal
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from access_matrix.features.permissions.schemas import RoleWithPermissions


class DepartmentCreate(BaseModel):
    """Schema for creating a department."""
    name: str = Field(..., min_length=1, max_length=255)


class DepartmentResponse(BaseModel):
    """Schema for department responses."""
    id: str
    name: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class UserBase(BaseModel):
    """Base user schema with common fields."""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)


class UserCreate(UserBase):
    """Schema for creating a new user."""
    department_id: str | None = Field(None, description="Department the user belongs to")


class UserResponse(UserBase):
    """Schema for user responses, including the user's current assignments."""
    id: str
    is_active: bool
    department_id: str | None = None
    department: str | None = None
    role_ids: list[str] = []
    direct_permission_ids: list[str] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserRolePage(BaseModel):
    """Everything the user-role matrix editor needs to load."""
    users: list[UserResponse]
    roles: list[RoleWithPermissions]
    departments: list[DepartmentResponse]


class BulkUserRoleUpdate(BaseModel):
    """Assign roles to, or remove roles from, many users at once."""
    user_ids: list[str] = Field(..., min_length=1)
    role_ids: list[str] = Field(..., min_length=1)
    action: Literal["assign", "remove"]


class UserPermissionsUpdate(BaseModel):
    """Replace a user's direct permissions."""
    user_id: str
    permission_ids: list[str]


class MessageResponse(BaseModel):
    message: str
