"""Health Check — liveness endpoint for load balancers and uptime monitors.

Invariants:
    - GET and HEAD /api/health (with or without trailing slash) return 200
      while the process is serving
    - database field is the storage kind ("MySQL"), not a live probe
    - timestamp is the current UTC time, ISO-8601
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, status

from vecinity.api.dependencies import SettingsDep
from vecinity.infrastructure.database import DATABASE_KIND
from vecinity.schemas.health import HealthResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/health", tags=["health"])

HEALTH_METHODS = ["GET", "HEAD"]


@router.api_route(
    "", methods=HEALTH_METHODS, response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
@router.api_route(
    "/", methods=HEALTH_METHODS, response_model=HealthResponse,
    status_code=status.HTTP_200_OK, include_in_schema=False,
)
async def health_check(settings: SettingsDep):
    """Basic liveness probe. Returns 200 if the process is up."""
    return HealthResponse(
        status="OK",
        message="API de Vecinity funcionando correctamente",
        timestamp=datetime.now(timezone.utc),
        database=DATABASE_KIND,
        environment=settings.environment,
    )
