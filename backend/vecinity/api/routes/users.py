"""User Routes — mount point for /api/users (profile and account management)."""

from fastapi import APIRouter

router = APIRouter(tags=["users"])
