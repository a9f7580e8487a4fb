"""
Route discovery: reads the routes of the running FastAPI application and keeps
the `routes` table in step with them.
"""
from dataclasses import dataclass, field
from fnmatch import fnmatch
from typing import Any, Iterable, Sequence
from fastapi import FastAPI
from fastapi.routing import APIRoute
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from access_matrix.features.route_access.models import RouteRecord, GENERAL_GROUP
from access_matrix.utils import get_logger


log = get_logger(__name__)

METHOD_ORDER = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")
READ_ONLY_METHODS = {"GET", "HEAD"}


@dataclass
class DiscoveredRoute:
    route_name: str
    route_uri: str
    route_methods: list[str]
    controller_class: str | None
    controller_method: str | None
    group_name: str
    description: str
    middleware: list[Any] = field(default_factory=list)

    @property
    def default_protected(self) -> bool:
        """
        Routes guarded by declared dependencies start protected, as do routes
        with any method beyond GET/HEAD. Other read-only routes start unprotected.
        """
        if self.middleware:
            return True
        return not set(self.route_methods) <= READ_ONLY_METHODS


def ordered_methods(methods: Iterable[str]) -> list[str]:
    rank = {method: index for index, method in enumerate(METHOD_ORDER)}
    return sorted({method.upper() for method in methods}, key=lambda m: (rank.get(m, len(rank)), m))


def group_for(route: APIRoute) -> str:
    """First tag, else the first path segment title-cased, else the general group."""
    if route.tags:
        return str(route.tags[0])
    for segment in route.path.split("/"):
        if segment and not segment.startswith("{"):
            return segment.replace("-", " ").replace("_", " ").title()
    return GENERAL_GROUP


def describe(route: APIRoute) -> str:
    doc = (route.endpoint.__doc__ or "").strip()
    if doc:
        return doc.splitlines()[0].strip()
    return route.name.replace("_", " ").capitalize()


def is_excluded(path: str, patterns: Sequence[str]) -> bool:
    return any(fnmatch(path, pattern) for pattern in patterns)


def discover_routes(app: FastAPI, exclude: Sequence[str] = ()) -> list[DiscoveredRoute]:
    """
    Collect every named API route of `app` whose path matches no exclude pattern.

    Route names must be unique; a repeated name keeps its first route.
    """
    discovered: dict[str, DiscoveredRoute] = {}
    for route in app.routes:
        if not isinstance(route, APIRoute) or not route.name:
            continue
        if is_excluded(route.path, exclude):
            continue
        if route.name in discovered:
            log.warning("Skipping route %s %s: name %r already discovered", route.methods, route.path, route.name)
            continue

        endpoint = route.endpoint
        discovered[route.name] = DiscoveredRoute(
            route_name=route.name,
            route_uri=route.path,
            route_methods=ordered_methods(route.methods or ()),
            controller_class=getattr(endpoint, "__module__", None),
            controller_method=getattr(endpoint, "__name__", None),
            group_name=group_for(route),
            description=describe(route),
            middleware=[
                getattr(dependency.dependency, "__name__", repr(dependency.dependency))
                for dependency in route.dependencies
                if dependency.dependency is not None
            ],
        )
    return list(discovered.values())


async def sync_routes(db: AsyncSession, app: FastAPI, exclude: Sequence[str] = ()) -> dict[str, int]:
    """
    Create, update and deactivate route records so they match the application.

    Existing records keep their protected flag and any edited description.
    Does not commit.
    """
    discovered = discover_routes(app, exclude)
    result = await db.execute(select(RouteRecord))
    existing = {record.route_name: record for record in result.scalars().all()}

    stats = {"discovered": len(discovered), "new": 0, "updated": 0, "deactivated": 0}
    seen = set()
    for route in discovered:
        seen.add(route.route_name)
        record = existing.get(route.route_name)
        if record is None:
            db.add(RouteRecord(
                route_name=route.route_name,
                route_uri=route.route_uri,
                route_methods=route.route_methods,
                controller_class=route.controller_class,
                controller_method=route.controller_method,
                group_name=route.group_name,
                description=route.description,
                middleware=route.middleware,
                is_protected=route.default_protected,
                is_active=True,
            ))
            stats["new"] += 1
            continue

        record.route_uri = route.route_uri
        record.route_methods = route.route_methods
        record.controller_class = route.controller_class
        record.controller_method = route.controller_method
        record.group_name = route.group_name
        record.middleware = route.middleware
        if not record.description:
            record.description = route.description
        record.is_active = True
        stats["updated"] += 1

    for name, record in existing.items():
        if name not in seen and record.is_active:
            record.is_active = False
            stats["deactivated"] += 1

    await db.flush()
    log.info(
        "Route sync: %(discovered)d discovered, %(new)d new, %(updated)d updated, %(deactivated)d deactivated",
        stats,
    )
    return stats
