import pytest

from access_matrix.engine.aggregate import (
    GroupStatus,
    TriState,
    TriStateAggregator,
    assignment_count,
    column_group_status,
    row_group_status,
    rows_with_assignments,
    tri_state,
)
from access_matrix.engine.entities import Permission
from access_matrix.engine.grouping import Group, categories_of
from access_matrix.engine.relation import RelationStore


PERMISSIONS = [
    Permission(id="p-create", name="User-Create"),
    Permission(id="p-view", name="User-View"),
    Permission(id="p-report", name="Report-View"),
]


def role_store() -> RelationStore:
    return RelationStore.from_edges(
        ["admin", "viewer"],
        [p.id for p in PERMISSIONS],
        {"admin": ["p-create", "p-view"], "viewer": ["p-view"]},
    )


def user_category() -> Group:
    return next(group for group in categories_of(PERMISSIONS) if group.name == "User")


@pytest.mark.parametrize(
    "count, size, state",
    [
        (0, 0, TriState.UNCHECKED),
        (0, 3, TriState.UNCHECKED),
        (2, 3, TriState.INDETERMINATE),
        (3, 3, TriState.CHECKED),
    ],
)
def test_tri_state(count, size, state):
    assert tri_state(count, size) is state


def test_empty_group_is_neither_checked_nor_indeterminate():
    assert column_group_status(role_store(), "admin", []) == GroupStatus(False, False)


def test_category_is_checked_for_admin_and_indeterminate_for_viewer():
    store = role_store()
    category = user_category()

    admin = column_group_status(store, "admin", category)
    viewer = column_group_status(store, "viewer", category)

    assert admin == GroupStatus(checked=True, indeterminate=False)
    assert viewer == GroupStatus(checked=False, indeterminate=True)
    assert viewer.state is TriState.INDETERMINATE


def test_checked_iff_every_row_has_the_column():
    store = role_store()
    assert row_group_status(store, ["admin", "viewer"], "p-view").checked is True
    assert row_group_status(store, ["admin", "viewer"], "p-create").indeterminate is True
    assert row_group_status(store, ["admin", "viewer"], "p-report").state is TriState.UNCHECKED


def test_aggregator_tracks_store_changes():
    store = role_store()
    aggregator = TriStateAggregator(store, "columns")
    category = user_category()

    assert aggregator.status(category, "viewer").indeterminate is True
    store.set("viewer", "p-create", True)
    assert aggregator.status(category, "viewer").checked is True


def test_select_all_uses_the_whole_axis():
    store = role_store()
    columns = TriStateAggregator(store, "columns")
    rows = TriStateAggregator(store, "rows")

    assert columns.select_all_status("admin").indeterminate is True
    store.set_all_for_row("admin", True)
    assert columns.select_all_status("admin").checked is True
    assert rows.select_all_status("p-view").checked is True


def test_aggregator_rejects_unknown_axis():
    with pytest.raises(ValueError):
        TriStateAggregator(role_store(), "diagonal")


def test_summary_statistics():
    store = role_store()
    assert assignment_count(store) == 3
    assert rows_with_assignments(store) == 2

    store.set_all_for_row("viewer", False)
    assert assignment_count(store) == 2
    assert rows_with_assignments(store) == 1
