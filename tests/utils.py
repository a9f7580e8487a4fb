"""Helpers shared by API and editor tests."""
from httpx import AsyncClient


async def create_permission(client: AsyncClient, name: str, description: str | None = None) -> dict:
    response = await client.post("/permissions", json={"name": name, "description": description})
    assert response.status_code == 201, response.text
    return response.json()


async def create_role(client: AsyncClient, name: str, description: str | None = None) -> dict:
    response = await client.post("/roles", json={"name": name, "description": description})
    assert response.status_code == 201, response.text
    return response.json()


async def create_department(client: AsyncClient, name: str) -> dict:
    response = await client.post("/departments", json={"name": name})
    assert response.status_code == 201, response.text
    return response.json()


async def create_user(client: AsyncClient, name: str, email: str, department_id: str | None = None) -> dict:
    response = await client.post("/users", json={"name": name, "email": email, "department_id": department_id})
    assert response.status_code == 201, response.text
    return response.json()


async def sync_routes(client: AsyncClient) -> dict:
    response = await client.post("/access-control/routes/sync")
    assert response.status_code == 200, response.text
    return response.json()


async def routes_by_name(client: AsyncClient) -> dict[str, dict]:
    response = await client.get("/access-control/routes")
    assert response.status_code == 200, response.text
    return {route["route_name"]: route for route in response.json()["routes"]}
