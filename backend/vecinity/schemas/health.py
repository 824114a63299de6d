"""Health Schemas — response contract for GET /api/health."""

from datetime import datetime

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Liveness confirmation with storage kind and environment."""
    status: str
    message: str
    timestamp: datetime
    database: str
    environment: str
