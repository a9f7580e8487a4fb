import csv
from io import StringIO

import pytest

from tests.utils import (
    create_department,
    create_permission,
    create_role,
    create_user,
    routes_by_name,
    sync_routes,
)


@pytest.mark.asyncio
async def test_health(async_client):
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


# ============================================================================
# Permissions and roles
# ============================================================================

@pytest.mark.asyncio
async def test_permission_crud(async_client):
    created = await create_permission(async_client, "  User-Create ", "Create users")
    assert created["name"] == "User-Create"

    response = await async_client.put(f"/permissions/{created['id']}", json={"description": "Add users"})
    assert response.status_code == 200
    assert response.json()["description"] == "Add users"

    response = await async_client.get("/permissions", params={"search": "add"})
    assert [item["id"] for item in response.json()] == [created["id"]]

    response = await async_client.delete(f"/permissions/{created['id']}")
    assert response.status_code == 204
    response = await async_client.get(f"/permissions/{created['id']}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_duplicate_permission_name_conflicts(async_client):
    await create_permission(async_client, "User-View")
    response = await async_client.post("/permissions", json={"name": "User-View"})
    assert response.status_code == 409
    assert "name" in response.json()["detail"]


@pytest.mark.parametrize("name", ["", "   ", "-User", "User-", "Bad\tName"])
@pytest.mark.asyncio
async def test_invalid_role_names_are_rejected(async_client, name):
    response = await async_client.post("/roles", json={"name": name})
    assert response.status_code == 400
    assert "name" in response.json()


@pytest.mark.asyncio
async def test_roles_are_listed_with_permission_ids(async_client):
    view = await create_permission(async_client, "User-View")
    role = await create_role(async_client, "Viewer")
    response = await async_client.post(
        "/access-control/role-permissions", json={"matrix": {role["id"]: {view["id"]: True}}}
    )
    assert response.status_code == 200

    response = await async_client.get("/roles")
    assert response.json()[0]["permission_ids"] == [view["id"]]


# ============================================================================
# Role-permission matrix
# ============================================================================

@pytest.mark.asyncio
async def test_role_permission_matrix_replaces_each_row(async_client):
    create = await create_permission(async_client, "User-Create")
    view = await create_permission(async_client, "User-View")
    admin = await create_role(async_client, "Admin")
    viewer = await create_role(async_client, "Viewer")

    matrix = {
        admin["id"]: {create["id"]: True, view["id"]: True},
        viewer["id"]: {create["id"]: False, view["id"]: True},
    }
    response = await async_client.post("/access-control/role-permissions", json={"matrix": matrix})
    assert response.status_code == 200
    assert response.json()["assignments"] == 3

    matrix[admin["id"]][create["id"]] = False
    await async_client.post("/access-control/role-permissions", json={"matrix": matrix})

    page = (await async_client.get("/access-control/role-permissions")).json()
    granted = {role["name"]: sorted(role["permission_ids"]) for role in page["roles"]}
    assert granted == {"Admin": [view["id"]], "Viewer": [view["id"]]}
    assert [p["name"] for p in page["permissions"]] == ["User-Create", "User-View"]


@pytest.mark.asyncio
async def test_matrix_save_is_all_or_nothing(async_client):
    view = await create_permission(async_client, "User-View")
    admin = await create_role(async_client, "Admin")

    response = await async_client.post(
        "/access-control/role-permissions",
        json={"matrix": {admin["id"]: {view["id"]: True}, "missing-role": {view["id"]: True}}},
    )
    assert response.status_code == 404

    page = (await async_client.get("/access-control/role-permissions")).json()
    assert page["roles"][0]["permission_ids"] == []


@pytest.mark.asyncio
async def test_bulk_role_permissions_sync_every_role(async_client):
    create = await create_permission(async_client, "User-Create")
    view = await create_permission(async_client, "User-View")
    admin = await create_role(async_client, "Admin")
    viewer = await create_role(async_client, "Viewer")
    auditor = await create_role(async_client, "Auditor")

    await async_client.post(
        "/access-control/role-permissions", json={"matrix": {admin["id"]: {create["id"]: True}}}
    )
    response = await async_client.post(
        "/access-control/role-permissions/bulk",
        json={"role_ids": [admin["id"], viewer["id"]], "permission_ids": [view["id"]]},
    )
    assert response.status_code == 200
    assert response.json()["rows"] == 2

    page = (await async_client.get("/access-control/role-permissions")).json()
    granted = {role["name"]: role["permission_ids"] for role in page["roles"]}
    assert granted == {"Admin": [view["id"]], "Viewer": [view["id"]], "Auditor": []}

    response = await async_client.post(
        "/access-control/role-permissions/bulk",
        json={"role_ids": [auditor["id"]], "permission_ids": ["missing"]},
    )
    assert response.status_code == 422
    assert "permission_ids" in response.json()["detail"]

    response = await async_client.post(
        "/access-control/role-permissions/bulk", json={"role_ids": [], "permission_ids": [view["id"]]}
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_deleting_a_permission_removes_its_assignments(async_client):
    view = await create_permission(async_client, "User-View")
    admin = await create_role(async_client, "Admin")
    await async_client.post("/access-control/role-permissions", json={"matrix": {admin["id"]: {view["id"]: True}}})

    await async_client.delete(f"/permissions/{view['id']}")

    response = await async_client.get(f"/roles/{admin['id']}")
    assert response.json()["permission_ids"] == []


# ============================================================================
# Users and the user-role matrix
# ============================================================================

@pytest.mark.asyncio
async def test_user_role_page(async_client):
    finance = await create_department(async_client, "Finance")
    ann = await create_user(async_client, "Ann", "ann@example.com", finance["id"])
    await create_user(async_client, "Ben", "ben@example.com")
    viewer = await create_role(async_client, "Viewer")

    response = await async_client.post(
        "/access-control/user-roles", json={"matrix": {ann["id"]: {viewer["id"]: True}}}
    )
    assert response.status_code == 200

    page = (await async_client.get("/access-control/user-roles")).json()
    users = {user["name"]: user for user in page["users"]}
    assert users["Ann"]["department"] == "Finance"
    assert users["Ann"]["role_ids"] == [viewer["id"]]
    assert users["Ben"]["department"] is None
    assert [department["name"] for department in page["departments"]] == ["Finance"]


@pytest.mark.asyncio
async def test_duplicate_user_email_conflicts(async_client):
    await create_user(async_client, "Ann", "ann@example.com")
    response = await async_client.post("/users", json={"name": "Ann B", "email": "ann@example.com"})
    assert response.status_code == 409
    assert "email" in response.json()["detail"]


@pytest.mark.asyncio
async def test_bulk_assign_adds_without_removing(async_client):
    ann = await create_user(async_client, "Ann", "ann@example.com")
    ben = await create_user(async_client, "Ben", "ben@example.com")
    viewer = await create_role(async_client, "Viewer")
    clerk = await create_role(async_client, "Clerk")
    await async_client.post("/access-control/user-roles", json={"matrix": {ann["id"]: {viewer["id"]: True}}})

    payload = {"user_ids": [ann["id"], ben["id"]], "role_ids": [viewer["id"], clerk["id"]], "action": "assign"}
    response = await async_client.post("/access-control/user-roles/bulk", json=payload)
    assert response.status_code == 200

    page = (await async_client.get("/access-control/user-roles")).json()
    assert all(sorted(user["role_ids"]) == sorted([viewer["id"], clerk["id"]]) for user in page["users"])

    payload["action"] = "remove"
    payload["role_ids"] = [clerk["id"]]
    await async_client.post("/access-control/user-roles/bulk", json=payload)
    page = (await async_client.get("/access-control/user-roles")).json()
    assert all(user["role_ids"] == [viewer["id"]] for user in page["users"])


@pytest.mark.asyncio
async def test_bulk_assign_rejects_unknown_roles(async_client):
    ann = await create_user(async_client, "Ann", "ann@example.com")
    response = await async_client.post(
        "/access-control/user-roles/bulk",
        json={"user_ids": [ann["id"]], "role_ids": ["missing"], "action": "assign"},
    )
    assert response.status_code == 422
    assert "role_ids" in response.json()["detail"]


@pytest.mark.asyncio
async def test_user_role_export(async_client):
    finance = await create_department(async_client, "Finance")
    ann = await create_user(async_client, "Ann", "ann@example.com", finance["id"])
    await create_user(async_client, "Ben", "ben@example.com")
    admin = await create_role(async_client, "Admin")
    await create_role(async_client, "Viewer")
    await async_client.post("/access-control/user-roles", json={"matrix": {ann["id"]: {admin["id"]: True}}})

    response = await async_client.get("/access-control/user-roles/export")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    rows = list(csv.reader(StringIO(response.text)))
    assert rows == [
        ["User", "Email", "Department", "Admin", "Viewer"],
        ["Ben", "ben@example.com", "", "No", "No"],
        ["Ann", "ann@example.com", "Finance", "Yes", "No"],
    ]


@pytest.mark.asyncio
async def test_direct_user_permissions(async_client):
    ann = await create_user(async_client, "Ann", "ann@example.com")
    export = await create_permission(async_client, "Invoice-Export")

    response = await async_client.post(
        "/access-control/user-permissions", json={"user_id": ann["id"], "permission_ids": [export["id"]]}
    )
    assert response.status_code == 200

    users = (await async_client.get("/users")).json()
    assert users[0]["direct_permission_ids"] == [export["id"]]

    response = await async_client.post(
        "/access-control/user-permissions", json={"user_id": "missing", "permission_ids": []}
    )
    assert response.status_code == 404


# ============================================================================
# Routes
# ============================================================================

@pytest.mark.asyncio
async def test_route_page_after_sync(async_client):
    result = await sync_routes(async_client)
    assert result["new"] == result["discovered"]

    page = (await async_client.get("/access-control/routes")).json()
    assert page["stats"]["active_routes"] == result["discovered"]
    assert page["stats"]["routes_with_permissions"] == 0

    routes = {route["route_name"]: route for route in page["routes"]}
    assert routes["list_permissions"]["is_protected"] is False
    assert routes["create_permission"]["is_protected"] is True
    assert routes["create_permission"]["route_methods"] == ["POST"]
    assert routes["sync_application_routes"]["group_name"] == "Access Control"
    assert "health" not in routes


@pytest.mark.asyncio
async def test_route_page_search_and_group_filters(async_client):
    result = await sync_routes(async_client)

    response = await async_client.get("/access-control/routes", params={"search": "user-roles"})
    names = {route["route_name"] for route in response.json()["routes"]}
    assert "bulk_update_user_roles" in names
    assert "create_permission" not in names
    assert response.json()["stats"]["active_routes"] == result["discovered"]

    response = await async_client.get("/access-control/routes", params={"search": "ACCESS CONTROL"})
    assert {route["group_name"] for route in response.json()["routes"]} == {"Access Control"}

    response = await async_client.get("/access-control/routes", params={"group": "Policy"})
    routes = response.json()["routes"]
    assert routes
    assert {route["group_name"] for route in routes} == {"Policy"}

    response = await async_client.get(
        "/access-control/routes", params={"group": "Policy", "search": "sync"}
    )
    assert response.json()["routes"] == []


@pytest.mark.asyncio
async def test_route_assignments_replace_rows(async_client):
    await sync_routes(async_client)
    view = await create_permission(async_client, "User-View")
    admin = await create_role(async_client, "Admin")
    routes = await routes_by_name(async_client)
    target = routes["list_users"]

    response = await async_client.post(
        "/access-control/route-permissions",
        json={"assignments": [{
            "route_id": target["id"],
            "permission_ids": [view["id"]],
            "role_ids": [admin["id"]],
            "is_protected": True,
        }]},
    )
    assert response.status_code == 200

    route = (await routes_by_name(async_client))["list_users"]
    assert route["permission_ids"] == [view["id"]]
    assert route["role_ids"] == [admin["id"]]
    assert route["is_protected"] is True


@pytest.mark.asyncio
async def test_route_assignment_with_unknown_route_fails(async_client):
    response = await async_client.post(
        "/access-control/route-permissions",
        json={"assignments": [{"route_id": "missing", "permission_ids": [], "role_ids": []}]},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_bulk_route_assignment_overwrites_every_route(async_client):
    await sync_routes(async_client)
    view = await create_permission(async_client, "User-View")
    export = await create_permission(async_client, "Invoice-Export")
    routes = await routes_by_name(async_client)
    ids = [routes["list_users"]["id"], routes["create_user"]["id"]]

    await async_client.post(
        "/access-control/route-permissions/bulk",
        json={"route_ids": ids, "permission_ids": [view["id"]], "role_ids": [], "is_protected": True},
    )
    response = await async_client.post(
        "/access-control/route-permissions/bulk",
        json={"route_ids": ids, "permission_ids": [export["id"]], "role_ids": [], "is_protected": False},
    )
    assert response.status_code == 200

    routes = await routes_by_name(async_client)
    for name in ("list_users", "create_user"):
        assert routes[name]["permission_ids"] == [export["id"]]
        assert routes[name]["is_protected"] is False


@pytest.mark.asyncio
async def test_update_route(async_client):
    await sync_routes(async_client)
    route = (await routes_by_name(async_client))["list_roles"]

    response = await async_client.put(
        f"/access-control/routes/{route['id']}", json={"description": "Role list", "is_protected": True}
    )
    assert response.status_code == 200
    assert response.json()["description"] == "Role list"
    assert response.json()["is_protected"] is True

    response = await async_client.put("/access-control/routes/missing", json={"description": "x"})
    assert response.status_code == 404


# ============================================================================
# Audit trail
# ============================================================================

@pytest.mark.asyncio
async def test_audit_log_records_matrix_saves(async_client):
    view = await create_permission(async_client, "User-View")
    role = await create_role(async_client, "Viewer")
    await async_client.post("/access-control/role-permissions", json={"matrix": {role["id"]: {view["id"]: True}}})

    response = await async_client.get("/audit-logs", params={"action": "save_matrix"})
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["resource_type"] == "role_permissions"
    assert body["items"][0]["details"] == {"roles": 1, "assignments": 1}

    everything = (await async_client.get("/audit-logs", params={"page_size": 2})).json()
    assert everything["total"] == 3
    assert everything["pages"] == 2
    assert len(everything["items"]) == 2
