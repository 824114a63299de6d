"""Vecinity API — FastAPI application factory.

Invariants:
    - Middleware comes only from build_middleware(PIPELINE); nothing calls
      add_middleware() afterwards
    - Routes mounted explicitly by mount_routes (uploads, groups, health, 404)
    - Global error handlers map every error to {"success": false, "message"}
    - Settings and the rate limiter live on app.state for the app's lifetime
    - Building the app never touches the database; the orchestrator
      initializes it before the listener is bound
"""

import logging
from typing import Mapping

from fastapi import APIRouter, FastAPI

from vecinity.api.error_handlers import register_error_handlers
from vecinity.api.routes import mount_routes
from vecinity.config import Settings, get_settings
from vecinity.middleware.pipeline import build_middleware, create_rate_limiter

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    routers: Mapping[str, APIRouter] | None = None,
) -> FastAPI:
    """Build the gateway app: ordered pipeline, routes and error handlers."""
    settings = settings or get_settings()
    limiter = create_rate_limiter(settings)

    app = FastAPI(
        title="Vecinity API",
        version="1.0.0",
        middleware=build_middleware(settings, limiter),
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
        openapi_url=None if settings.is_production else "/openapi.json",
    )
    app.state.settings = settings
    app.state.rate_limiter = limiter

    mount_routes(app, settings, routers)
    register_error_handlers(app)
    return app
