import pytest

from access_matrix.engine.entities import Permission, Route, User
from access_matrix.engine.grouping import (
    GENERAL_CATEGORY,
    NO_DEPARTMENT,
    ExpansionState,
    action_of,
    categories_of,
    category_of,
    departments_of,
    filter_groups,
    route_groups_of,
)


@pytest.mark.parametrize(
    "name, category",
    [
        ("User-Create", "User"),
        ("Invoice-Export-CSV", "Invoice"),
        ("Dashboard", GENERAL_CATEGORY),
        ("-Orphan", GENERAL_CATEGORY),
        ("", GENERAL_CATEGORY),
    ],
)
def test_category_of(name, category):
    assert category_of(name) == category


def test_action_of():
    assert action_of("User-Create") == "Create"
    assert action_of("Dashboard") == "Dashboard"


def permissions():
    return [
        Permission(id="1", name="user-view"),
        Permission(id="2", name="User-Create"),
        Permission(id="3", name="Report-Export", description="Download reports"),
        Permission(id="4", name="Dashboard"),
        Permission(id="5", name="User-Delete"),
    ]


def test_categories_are_sorted_with_sorted_members():
    groups = categories_of(permissions())

    assert [group.name for group in groups] == ["General", "Report", "User", "user"]
    user = groups[2]
    assert [p.name for p in user] == ["User-Create", "User-Delete"]
    assert user.ids == ("2", "5")
    assert user.size == 2


def test_every_permission_lands_in_exactly_one_category():
    groups = categories_of(permissions())
    ids = [pid for group in groups for pid in group.ids]
    assert sorted(ids) == ["1", "2", "3", "4", "5"]


def test_users_without_department_share_a_group():
    users = [
        User(id="u1", name="Zoe", email="zoe@example.com", department="Finance"),
        User(id="u2", name="adam", email="adam@example.com"),
        User(id="u3", name="Bea", email="bea@example.com", department="Finance"),
    ]
    groups = departments_of(users)

    assert [group.name for group in groups] == ["Finance", NO_DEPARTMENT]
    assert [user.name for user in groups[0]] == ["Bea", "Zoe"]


def test_routes_use_the_declared_group():
    routes = [
        Route(id="r1", route_name="list_invoices", route_uri="/invoices", group_name="Billing"),
        Route(id="r2", route_name="health", route_uri="/health", group_name=""),
    ]
    assert [group.name for group in route_groups_of(routes)] == ["Billing", GENERAL_CATEGORY]


def test_filter_matches_member_fields_case_insensitively():
    groups = categories_of(permissions())

    filtered = filter_groups(groups, "DOWNLOAD")

    assert [group.name for group in filtered] == ["Report"]
    assert filtered[0].ids == ("3",)


def test_filter_keeps_whole_group_when_its_name_matches():
    groups = categories_of(permissions())
    filtered = filter_groups(groups, "user")
    by_name = {group.name: group for group in filtered}

    assert by_name["User"].ids == ("2", "5")
    assert by_name["user"].ids == ("1",)


def test_filter_drops_empty_groups_and_returns_a_new_list():
    groups = categories_of(permissions())

    assert filter_groups(groups, "nothing matches this") == []
    everything = filter_groups(groups, "  ")
    assert everything == groups
    assert everything is not groups


def test_filter_searches_user_email():
    users = [
        User(id="u1", name="Zoe", email="zoe@finance.example.com", department="Finance"),
        User(id="u2", name="Adam", email="adam@example.com", department="Support"),
    ]
    filtered = filter_groups(departments_of(users), "finance.example")
    assert [group.ids for group in filtered] == [("u1",)]


def test_expansion_defaults_and_toggles():
    categories = ExpansionState.collapsed()
    departments = ExpansionState.expanded()

    assert categories.is_expanded("User") is False
    assert departments.is_expanded("Finance") is True

    assert categories.toggle("User") is True
    assert categories.is_expanded("User") is True

    categories.collapse_all()
    assert categories.is_expanded("User") is False

    categories.expand_all()
    assert categories.is_expanded("Report") is True
    assert categories.version == 3
