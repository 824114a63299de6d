"""Auth Routes — mount point for /api/auth (registration, login, token refresh).

Handlers are contributed by the auth feature module and attach to this
router; the prefix comes from ROUTE_GROUPS.
"""

from fastapi import APIRouter

router = APIRouter(tags=["auth"])
