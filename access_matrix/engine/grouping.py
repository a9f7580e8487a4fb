"""
Grouping of matrix entities for display.

Permissions are grouped by the category prefix of their name, users by
department and routes by the group the server declared for them. Groups and
their members are sorted case-insensitively.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple


GENERAL_CATEGORY = "General"
NO_DEPARTMENT = "No Department"


def category_of(name: str) -> str:
    """
    Category of a permission name: the text before the first "-".

    >>> category_of("User-Create")
    'User'
    >>> category_of("Dashboard")
    'General'
    """
    prefix, separator, _ = name.partition("-")
    prefix = prefix.strip()
    if not separator or not prefix:
        return GENERAL_CATEGORY
    return prefix


def action_of(name: str) -> str:
    """The part of a permission name after the category, or the whole name."""
    prefix, separator, rest = name.partition("-")
    if not separator or not prefix.strip() or not rest.strip():
        return name
    return rest.strip()


def _sort_key(text: str) -> Tuple[str, str]:
    return (text.lower(), text)


@dataclass(frozen=True)
class Group:
    name: str
    members: Tuple[Any, ...]

    @property
    def ids(self) -> Tuple[str, ...]:
        return tuple(member.id for member in self.members)

    @property
    def size(self) -> int:
        return len(self.members)

    def __len__(self) -> int:
        return len(self.members)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.members)


def group_by(items: Iterable[Any], key: Callable[[Any], str], label: Callable[[Any], str]) -> List[Group]:
    """Partition `items` by `key`, sorting groups by name and members by `label`."""
    buckets: Dict[str, List[Any]] = {}
    for item in items:
        buckets.setdefault(key(item), []).append(item)
    return [
        Group(name, tuple(sorted(buckets[name], key=lambda item: _sort_key(label(item)))))
        for name in sorted(buckets, key=_sort_key)
    ]


def categories_of(permissions: Iterable[Any]) -> List[Group]:
    return group_by(permissions, lambda p: category_of(p.name), lambda p: p.display_name)


def departments_of(users: Iterable[Any]) -> List[Group]:
    return group_by(users, lambda u: u.department or NO_DEPARTMENT, lambda u: u.display_name)


def route_groups_of(routes: Iterable[Any]) -> List[Group]:
    return group_by(routes, lambda r: r.group_name or GENERAL_CATEGORY, lambda r: r.label)


def filter_groups(groups: Iterable[Group], query: Optional[str]) -> List[Group]:
    """
    Case-insensitive substring filter over each member's `search_fields()`.

    A query matching a group's name keeps the whole group. Groups left without
    members are dropped. A new list is returned on every call.
    """
    needle = (query or "").strip().lower()
    if not needle:
        return list(groups)

    filtered = []
    for group in groups:
        if needle in group.name.lower():
            filtered.append(group)
            continue
        members = tuple(
            member for member in group.members
            if any(needle in field.lower() for field in member.search_fields() if field)
        )
        if members:
            filtered.append(Group(group.name, members))
    return filtered


class ExpansionState:
    """
    Expanded/collapsed flags of named groups.

    Groups never toggled individually follow the default, which expand_all and
    collapse_all reset.
    """

    def __init__(self, expanded_by_default: bool):
        self._default = expanded_by_default
        self._overrides: Dict[str, bool] = {}
        self.version = 0

    @classmethod
    def collapsed(cls) -> "ExpansionState":
        return cls(expanded_by_default=False)

    @classmethod
    def expanded(cls) -> "ExpansionState":
        return cls(expanded_by_default=True)

    def is_expanded(self, name: str) -> bool:
        return self._overrides.get(name, self._default)

    def toggle(self, name: str) -> bool:
        value = not self.is_expanded(name)
        self._overrides[name] = value
        self.version += 1
        return value

    def expand_all(self) -> None:
        self._default = True
        self._overrides.clear()
        self.version += 1

    def collapse_all(self) -> None:
        self._default = False
        self._overrides.clear()
        self.version += 1
