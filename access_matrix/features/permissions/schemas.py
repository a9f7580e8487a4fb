"""
Pydantic schemas for permission management.

Request and response models for permissions, roles, the role-permission
matrix and audit logs.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


def _clean_name(value: str, kind: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{kind} name must not be blank")
    if value.startswith("-") or value.endswith("-"):
        raise ValueError(f"{kind} name must not start or end with '-'")
    if any(not ch.isprintable() for ch in value):
        raise ValueError(f"{kind} name must not contain control characters")
    return value


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionBase(BaseModel):
    """Base permission schema."""
    name: str = Field(..., min_length=1, max_length=255, description="Unique permission name, e.g. 'User-Create'")
    description: Optional[str] = Field(None, max_length=1000, description="Permission description")


class PermissionCreate(PermissionBase):
    """Schema for creating a new permission."""

    @field_validator('name')
    @classmethod
    def name_format(cls, v: str) -> str:
        """Validate permission name format."""
        return _clean_name(v, "Permission")


class PermissionUpdate(BaseModel):
    """Schema for updating a permission."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)

    @field_validator('name')
    @classmethod
    def name_format(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _clean_name(v, "Permission")


class PermissionResponse(PermissionBase):
    """Schema for permission response."""
    id: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=255, description="Unique role name")
    description: Optional[str] = Field(None, max_length=1000, description="Role description")


class RoleCreate(RoleBase):
    """Schema for creating a new role."""

    @field_validator('name')
    @classmethod
    def name_format(cls, v: str) -> str:
        """Validate role name format."""
        return _clean_name(v, "Role")


class RoleUpdate(BaseModel):
    """Schema for updating a role."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)

    @field_validator('name')
    @classmethod
    def name_format(cls, v: Optional[str]) -> Optional[str]:
        return None if v is None else _clean_name(v, "Role")


class RoleResponse(RoleBase):
    """Schema for role response."""
    id: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleWithPermissions(RoleResponse):
    """Schema for role with the ids of its granted permissions."""
    permission_ids: List[str] = []

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Matrix Schemas
# ============================================================================

class MatrixUpdate(BaseModel):
    """Full replacement of a relation: {row_id: {column_id: granted}}."""
    matrix: Dict[str, Dict[str, bool]]


class BulkRolePermissionUpdate(BaseModel):
    """Give every listed role exactly the listed permissions."""
    role_ids: List[str] = Field(..., min_length=1)
    permission_ids: List[str] = []


class MatrixUpdateResponse(BaseModel):
    """Result of a matrix save."""
    message: str
    rows: int
    assignments: int


class RolePermissionPage(BaseModel):
    """Everything the role-permission matrix editor needs to load."""
    permissions: List[PermissionResponse]
    roles: List[RoleWithPermissions]


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    action: str
    resource_type: str
    resource_id: Optional[str]
    details: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int
