"""Route Modules — one file per route group, mounted in a fixed order.

Invariants:
    - Mount order: /uploads static files, the five route groups, /api/health,
      then a catch-all that raises RouteNotFoundError for every method
    - Route group prefixes live here, not in the group modules
    - Routes never contain business logic of the gateway itself

Design Decisions:
    - Explicit registration over auto-discovery
    - Any group router can be replaced at app build time (feature modules, tests)
"""

from dataclasses import dataclass
from typing import Mapping

from fastapi import APIRouter, FastAPI, Request

from vecinity.api.routes import admin, auth, categories, health, reports, users
from vecinity.api.routes.uploads import UPLOADS_PREFIX, create_upload_files
from vecinity.config import Settings
from vecinity.core.errors import RouteNotFoundError

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


@dataclass(frozen=True)
class RouteGroup:
    name: str
    prefix: str
    router: APIRouter


ROUTE_GROUPS: tuple[RouteGroup, ...] = (
    RouteGroup("auth", "/api/auth", auth.router),
    RouteGroup("users", "/api/users", users.router),
    RouteGroup("reports", "/api/reports", reports.router),
    RouteGroup("categories", "/api/categories", categories.router),
    RouteGroup("admin", "/api/admin", admin.router),
)

not_found_router = APIRouter()


@not_found_router.api_route(
    "/{path:path}", methods=ALL_METHODS, include_in_schema=False,
)
async def route_not_found(request: Request, path: str):
    raise RouteNotFoundError(request.url.path)


def mount_routes(
    app: FastAPI,
    settings: Settings,
    routers: Mapping[str, APIRouter] | None = None,
) -> None:
    """Mount static uploads, route groups, health and the 404 fallback, in order."""
    routers = routers or {}
    unknown = set(routers) - {group.name for group in ROUTE_GROUPS}
    if unknown:
        raise ValueError(f"Unknown route groups: {sorted(unknown)}")

    app.mount(
        UPLOADS_PREFIX, create_upload_files(settings.upload_dir), name="uploads",
    )
    for group in ROUTE_GROUPS:
        app.include_router(routers.get(group.name, group.router), prefix=group.prefix)
    app.include_router(health.router)
    app.include_router(not_found_router)
