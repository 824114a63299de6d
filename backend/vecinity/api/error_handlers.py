"""Error Handlers — translate every error into the {"success": false, "message"} envelope.

Invariants:
    - VecinityError → its own http_status + to_response()
    - Starlette HTTPException → same envelope; a bare 404 becomes "Ruta no encontrada"
    - RequestValidationError → 400 with field-level details
    - Exception (catch-all) → 500, never leaks internal details

Design Decisions:
    - error_response() shared with pure ASGI stages (rate limit, body parser)
      that short-circuit outside FastAPI's exception middleware
"""

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vecinity.core.errors import ErrorSeverity, RouteNotFoundError, VecinityError

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Error interno del servidor"


def error_response(
    exc: VecinityError, headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Render a VecinityError as a JSON response."""
    return JSONResponse(
        status_code=exc.http_status, content=exc.to_response(), headers=headers,
    )


def internal_error_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": INTERNAL_ERROR_MESSAGE},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_vecinity_error_handler(app)
    _register_http_exception_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _register_vecinity_error_handler(app: FastAPI) -> None:

    @app.exception_handler(VecinityError)
    async def vecinity_error_handler(request: Request, exc: VecinityError):
        """Handle all gateway domain errors."""
        log = logger.warning if exc.severity == ErrorSeverity.WARNING else logger.error
        log(
            f"VecinityError: {exc.message}",
            extra={"error_code": exc.code, "path": request.url.path},
        )
        return error_response(exc)


def _register_http_exception_handler(app: FastAPI) -> None:

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException,
    ):
        """Handle HTTPException raised by routers, handlers and static files."""
        if exc.status_code == status.HTTP_404_NOT_FOUND and _is_default_detail(exc):
            return error_response(RouteNotFoundError(request.url.path))
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )


def _register_validation_error_handler(app: FastAPI) -> None:

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError,
    ):
        """Handle Pydantic validation errors."""
        logger.warning(
            f"Validation error on {request.url.path}: {exc.errors()}",
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_build_validation_error_response(exc),
        )


def _register_generic_error_handler(app: FastAPI) -> None:
    """Last resort for faults raised by middleware outside the error boundary stage."""

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all — never leaks internal details."""
        logger.error(
            f"Unhandled exception on {request.url.path}: {exc}",
            exc_info=True,
        )
        return internal_error_response()


def _is_default_detail(exc: StarletteHTTPException) -> bool:
    return exc.detail == HTTPStatus(exc.status_code).phrase


def _build_validation_error_response(exc: RequestValidationError) -> dict:
    """Build structured validation error response."""
    return {
        "success": False,
        "message": "Datos de solicitud inválidos",
        "errors": [
            {
                "field": ".".join(str(loc) for loc in e["loc"]),
                "message": e["msg"],
                "type": e["type"],
            }
            for e in exc.errors()
        ],
    }
