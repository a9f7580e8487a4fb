import pytest

from access_matrix.engine.entities import Route
from access_matrix.engine.resolver import CommonSubsetResolver
from access_matrix.engine.route_store import RouteAssignmentStore


def billing_routes() -> list[Route]:
    return [
        Route(
            id="r1", route_name="list_invoices", route_uri="/invoices", group_name="Billing",
            permission_ids=["invoice-view", "invoice-export"], role_ids=["clerk"], is_protected=True,
        ),
        Route(
            id="r2", route_name="export_invoices", route_uri="/invoices/export", group_name="Billing",
            permission_ids=["invoice-view", "invoice-export"], role_ids=["clerk", "auditor"], is_protected=True,
        ),
        Route(
            id="r3", route_name="show_invoice", route_uri="/invoices/{id}", group_name="Billing",
            permission_ids=["invoice-view"], role_ids=["clerk"], is_protected=False,
        ),
    ]


@pytest.fixture()
def store() -> RouteAssignmentStore:
    return RouteAssignmentStore(
        billing_routes(),
        ["invoice-view", "invoice-export", "user-view"],
        ["clerk", "auditor"],
    )


@pytest.fixture()
def resolver(store: RouteAssignmentStore) -> CommonSubsetResolver:
    return CommonSubsetResolver(store)


def test_permission_on_two_of_three_routes_is_partial(resolver):
    routes = ["r1", "r2", "r3"]
    assert resolver.common_permissions(routes) == {"invoice-view"}
    assert resolver.partial_permissions(routes) == {"invoice-export"}
    assert resolver.permission_status(routes, "invoice-export").indeterminate is True
    assert resolver.permission_status(routes, "invoice-view").checked is True


def test_single_route_common_set_is_its_own(resolver):
    assert resolver.common_permissions(["r2"]) == {"invoice-view", "invoice-export"}
    assert resolver.common_roles(["r2"]) == {"clerk", "auditor"}
    assert resolver.partial_permissions(["r2"]) == set()


def test_nothing_in_common(store, resolver):
    store.permissions.set("r3", "invoice-view", False)
    store.permissions.set("r3", "user-view", True)

    assert resolver.common_permissions(["r1", "r3"]) == set()
    assert resolver.partial_permissions(["r1", "r3"]) == {"invoice-view", "invoice-export", "user-view"}


def test_roles(resolver):
    assert resolver.common_roles(["r1", "r2", "r3"]) == {"clerk"}
    assert resolver.partial_roles(["r1", "r2", "r3"]) == {"auditor"}
    assert resolver.role_status(["r1", "r2"], "auditor").indeterminate is True


def test_empty_selection(resolver):
    assert resolver.common_permissions([]) == set()
    assert resolver.partial_permissions([]) == set()
    assert resolver.all_protected([]) is False


def test_all_protected_uses_pending_overrides(store, resolver):
    assert resolver.all_protected(["r1", "r2"]) is True
    assert resolver.all_protected(["r1", "r3"]) is False

    store.set_protected("r3", True)
    assert resolver.all_protected(["r1", "r3"]) is True
    assert store.declared_protected("r3") is False


def test_prefill(resolver):
    bulk = resolver.prefill(["r2", "r1", "r2"])
    assert bulk.route_ids == ["r2", "r1"]
    assert bulk.permission_ids == ["invoice-view", "invoice-export"]
    assert bulk.role_ids == ["clerk"]
    assert bulk.is_protected is True


def test_route_store_tracks_all_three_relations(store):
    assert store.is_dirty() is False
    store.toggle_protected("r1")
    assert store.is_dirty() is True

    sent = store.diff()
    store.commit(sent)
    assert store.is_dirty() is False
    assert store.effective_protected("r1") is False

    store.roles.toggle("r3", "auditor")
    assert store.pending_changes()["route roles"] == [("r3", "auditor", True)]
    store.reset()
    assert store.is_dirty() is False
    assert store.roles.get("r3", "auditor") is False


def test_assignments_payload(store):
    store.permissions.set("r3", "user-view", True)
    payload = {item["route_id"]: item for item in store.assignments()}

    assert payload["r3"] == {
        "route_id": "r3",
        "permission_ids": ["invoice-view", "user-view"],
        "role_ids": ["clerk"],
        "is_protected": False,
    }
    assert set(payload) == {"r1", "r2", "r3"}
