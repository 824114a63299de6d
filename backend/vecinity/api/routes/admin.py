"""Admin Routes — mount point for /api/admin (moderation and report triage)."""

from fastapi import APIRouter

router = APIRouter(tags=["admin"])
