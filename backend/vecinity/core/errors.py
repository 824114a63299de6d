"""Error Hierarchy — typed exceptions for every gateway failure mode.

Invariants:
    - Every error has a code (str), an http_status and a user-facing message
    - to_response() always produces the {"success": False, "message": ...} envelope
    - Startup errors (DatabaseUnreachable, SchemaSyncFailed) never reach an HTTP client
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with VecinityError base: one FastAPI handler catches all
    - User-facing messages are Spanish, matching the client application
"""

from enum import Enum


class ErrorSeverity(str, Enum):
    """Severity used for log level selection."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class VecinityError(Exception):
    """Base exception for all gateway errors."""

    def __init__(
        self,
        message: str,
        code: str,
        http_status: int = 500,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.severity = severity

    def to_response(self) -> dict:
        """Convert to the standard JSON error envelope."""
        return {"success": False, "message": self.message}


# ─── Startup Errors (fatal, process exits 1) ────────────────────

class DatabaseUnreachableError(VecinityError):
    """Connectivity probe against the backing store failed."""
    def __init__(self, message: str = "No se pudo conectar a la base de datos"):
        super().__init__(
            message, "DATABASE_UNREACHABLE", 503, ErrorSeverity.CRITICAL,
        )


class SchemaSyncFailedError(VecinityError):
    """Model/schema reconciliation failed."""
    def __init__(self, message: str = "No se pudieron sincronizar los modelos"):
        super().__init__(
            message, "SCHEMA_SYNC_FAILED", 503, ErrorSeverity.CRITICAL,
        )


# ─── Request Errors (recoverable, 4xx) ──────────────────────────

class RateLimitExceededError(VecinityError):
    """Client IP exhausted its request budget for the current window."""
    def __init__(self, retry_after_seconds: int):
        super().__init__(
            "Demasiadas solicitudes desde esta IP, intenta de nuevo más tarde.",
            "RATE_LIMIT_EXCEEDED", 429, ErrorSeverity.WARNING,
        )
        self.retry_after_seconds = retry_after_seconds


class PayloadTooLargeError(VecinityError):
    """Request body exceeds the configured cap."""
    def __init__(self, limit_bytes: int):
        super().__init__(
            "El cuerpo de la solicitud excede el tamaño máximo permitido",
            "PAYLOAD_TOO_LARGE", 413, ErrorSeverity.WARNING,
        )
        self.limit_bytes = limit_bytes


class MalformedBodyError(VecinityError):
    """Body declared as JSON or form data could not be decoded."""
    def __init__(self, media_type: str):
        super().__init__(
            "El cuerpo de la solicitud no tiene un formato válido",
            "MALFORMED_BODY", 400, ErrorSeverity.WARNING,
        )
        self.media_type = media_type


class RouteNotFoundError(VecinityError):
    """No route matches the request path."""
    def __init__(self, path: str = ""):
        super().__init__(
            "Ruta no encontrada", "ROUTE_NOT_FOUND", 404, ErrorSeverity.WARNING,
        )
        self.path = path


# ─── Runtime Faults (fatal, process exits 1) ────────────────────

class UnhandledFaultError(VecinityError):
    """Exception that escaped every handler after startup."""
    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(
            message, "UNHANDLED_FAULT", 500, ErrorSeverity.CRITICAL,
        )
        self.cause = cause


# ─── Infrastructure Errors (5xx) ────────────────────────────────

class DatabaseError(VecinityError):
    """Database operation failed while serving a request."""
    def __init__(self, message: str, operation: str):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", 503, ErrorSeverity.CRITICAL,
        )
        self.operation = operation

    def to_response(self) -> dict:
        return {"success": False, "message": "Servicio de base de datos no disponible"}
