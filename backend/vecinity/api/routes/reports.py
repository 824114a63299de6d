"""Report Routes — mount point for /api/reports (citizen incident reports)."""

from fastapi import APIRouter

router = APIRouter(tags=["reports"])
