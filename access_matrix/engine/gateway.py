"""
Commit gateway: the boundary between the matrix editors and the access-control API.

Saves return a `CommitResult` and never raise for HTTP or network failures;
page loads raise `GatewayError`, since an editor cannot be built without data.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence
import httpx
from pydantic import TypeAdapter, ValidationError

from access_matrix.core import config
from access_matrix.engine.entities import (
    BulkAssignment,
    BulkUserRoles,
    Permission,
    RolePermissionData,
    RouteData,
    UserRoleData,
)
from access_matrix.engine.errors import GatewayError
from access_matrix.utils import get_logger


log = get_logger(__name__)

SAVE_FAILED = "Failed to save changes. Please try again."

_permission_list = TypeAdapter(List[Permission])


@dataclass
class CommitResult:
    ok: bool
    message: str = ""
    errors: Dict[str, str] = field(default_factory=dict)
    status_code: Optional[int] = None
    data: Any = None


class CommitGateway(Protocol):
    async def load_role_permission_page(self) -> RolePermissionData: ...

    async def load_user_role_page(self) -> UserRoleData: ...

    async def load_route_page(self) -> RouteData: ...

    async def load_permissions(self) -> List[Permission]: ...

    async def save_role_permission_matrix(self, matrix: Mapping[str, Mapping[str, bool]]) -> CommitResult: ...

    async def save_user_role_matrix(self, matrix: Mapping[str, Mapping[str, bool]]) -> CommitResult: ...

    async def save_route_permissions(self, assignments: Sequence[Mapping[str, Any]]) -> CommitResult: ...

    async def bulk_assign_routes(self, bulk: BulkAssignment) -> CommitResult: ...

    async def bulk_assign_role_permissions(self, role_ids: Sequence[str], permission_ids: Sequence[str]) -> CommitResult: ...

    async def bulk_assign_user_roles(self, bulk: BulkUserRoles) -> CommitResult: ...

    async def save_user_permissions(self, user_id: str, permission_ids: Sequence[str]) -> CommitResult: ...

    async def sync_routes(self) -> CommitResult: ...

    async def create_permission(self, name: str, description: Optional[str] = None) -> CommitResult: ...

    async def update_permission(self, permission_id: str, **fields: Any) -> CommitResult: ...

    async def delete_permission(self, permission_id: str) -> CommitResult: ...

    async def create_role(self, name: str, description: Optional[str] = None) -> CommitResult: ...

    async def update_role(self, role_id: str, **fields: Any) -> CommitResult: ...

    async def delete_role(self, role_id: str) -> CommitResult: ...

    async def create_user(self, name: str, email: str, department_id: Optional[str] = None) -> CommitResult: ...


def _error_map(body: Any) -> tuple[str, Dict[str, str]]:
    """Split an error body into a message and a field-level error map."""
    if not isinstance(body, dict):
        return "", {}
    if "detail" in body:
        detail = body["detail"]
        if isinstance(detail, dict):
            return "", {str(key): str(value) for key, value in detail.items()}
        if isinstance(detail, str):
            return detail, {}
        return "", {}
    if "error" in body and len(body) == 1:
        return str(body["error"]), {}
    return "", {str(key): str(value) for key, value in body.items()}


class HttpCommitGateway:
    """
    `CommitGateway` over HTTP.

    Usage:
        async with HttpCommitGateway() as gateway:
            editor = await RolePermissionEditor.load(gateway)
            editor.toggle(role_id, permission_id)
            result = await editor.save()
    """

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url or config.ACCESS_MATRIX_API_URL)

    async def __aenter__(self) -> "HttpCommitGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(self, method: str, path: str, success: str, json: Any = None) -> CommitResult:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            log.warning("%s %s failed: %s", method, path, e)
            return CommitResult(ok=False, message=SAVE_FAILED)

        try:
            body = response.json() if response.content else None
        except ValueError:
            body = None

        if response.is_success:
            message = body.get("message", success) if isinstance(body, dict) else success
            return CommitResult(ok=True, message=message, status_code=response.status_code, data=body)

        message, errors = _error_map(body)
        if not message:
            message = "Validation failed" if errors else SAVE_FAILED
        log.warning("%s %s answered %d: %s %s", method, path, response.status_code, message, errors)
        return CommitResult(ok=False, message=message, errors=errors, status_code=response.status_code, data=body)

    async def _load(self, path: str, validate: Callable[[Any], Any]):
        try:
            response = await self._client.get(path)
            response.raise_for_status()
            return validate(response.json())
        except httpx.HTTPStatusError as e:
            raise GatewayError(f"Loading {path} failed", status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            raise GatewayError(f"Loading {path} failed: {e}") from e
        except (ValueError, ValidationError) as e:
            raise GatewayError(f"Unexpected response from {path}") from e

    # ------------------------------------------------------------------
    # Page loads
    # ------------------------------------------------------------------

    async def load_role_permission_page(self) -> RolePermissionData:
        return await self._load("/access-control/role-permissions", RolePermissionData.model_validate)

    async def load_user_role_page(self) -> UserRoleData:
        return await self._load("/access-control/user-roles", UserRoleData.model_validate)

    async def load_route_page(self) -> RouteData:
        return await self._load("/access-control/routes", RouteData.model_validate)

    async def load_permissions(self) -> List[Permission]:
        return await self._load("/permissions", _permission_list.validate_python)

    # ------------------------------------------------------------------
    # Matrix commits
    # ------------------------------------------------------------------

    async def save_role_permission_matrix(self, matrix: Mapping[str, Mapping[str, bool]]) -> CommitResult:
        return await self._send(
            "POST", "/access-control/role-permissions", "Role permissions updated successfully",
            json={"matrix": matrix},
        )

    async def save_user_role_matrix(self, matrix: Mapping[str, Mapping[str, bool]]) -> CommitResult:
        return await self._send(
            "POST", "/access-control/user-roles", "User roles updated successfully",
            json={"matrix": matrix},
        )

    async def save_route_permissions(self, assignments: Sequence[Mapping[str, Any]]) -> CommitResult:
        return await self._send(
            "POST", "/access-control/route-permissions", "Route permissions updated successfully",
            json={"assignments": list(assignments)},
        )

    async def bulk_assign_routes(self, bulk: BulkAssignment) -> CommitResult:
        return await self._send(
            "POST", "/access-control/route-permissions/bulk", "Route access updated successfully",
            json=bulk.model_dump(),
        )

    async def bulk_assign_role_permissions(self, role_ids: Sequence[str], permission_ids: Sequence[str]) -> CommitResult:
        return await self._send(
            "POST", "/access-control/role-permissions/bulk", "Role permissions updated successfully",
            json={"role_ids": list(role_ids), "permission_ids": list(permission_ids)},
        )

    async def bulk_assign_user_roles(self, bulk: BulkUserRoles) -> CommitResult:
        return await self._send(
            "POST", "/access-control/user-roles/bulk", "User roles updated successfully",
            json=bulk.model_dump(),
        )

    async def save_user_permissions(self, user_id: str, permission_ids: Sequence[str]) -> CommitResult:
        return await self._send(
            "POST", "/access-control/user-permissions", "User permissions updated successfully",
            json={"user_id": user_id, "permission_ids": list(permission_ids)},
        )

    async def sync_routes(self) -> CommitResult:
        return await self._send("POST", "/access-control/routes/sync", "Routes synchronized successfully")

    # ------------------------------------------------------------------
    # Entity CRUD
    # ------------------------------------------------------------------

    async def create_permission(self, name: str, description: Optional[str] = None) -> CommitResult:
        return await self._send(
            "POST", "/permissions", "Permission created", json={"name": name, "description": description}
        )

    async def update_permission(self, permission_id: str, **fields: Any) -> CommitResult:
        return await self._send("PUT", f"/permissions/{permission_id}", "Permission updated", json=fields)

    async def delete_permission(self, permission_id: str) -> CommitResult:
        return await self._send("DELETE", f"/permissions/{permission_id}", "Permission deleted")

    async def create_role(self, name: str, description: Optional[str] = None) -> CommitResult:
        return await self._send("POST", "/roles", "Role created", json={"name": name, "description": description})

    async def update_role(self, role_id: str, **fields: Any) -> CommitResult:
        return await self._send("PUT", f"/roles/{role_id}", "Role updated", json=fields)

    async def delete_role(self, role_id: str) -> CommitResult:
        return await self._send("DELETE", f"/roles/{role_id}", "Role deleted")

    async def create_user(self, name: str, email: str, department_id: Optional[str] = None) -> CommitResult:
        return await self._send(
            "POST", "/users", "User created",
            json={"name": name, "email": email, "department_id": department_id},
        )
