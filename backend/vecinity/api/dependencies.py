"""Shared Dependencies — FastAPI Depends() providers for app-scoped resources.

Invariants:
    - Settings come from app.state (set by create_app), never re-read from env per request
"""

from typing import Annotated

from fastapi import Depends, Request

from vecinity.config import Settings
from vecinity.core.request_context import RequestContext, get_request_context


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_context(request: Request) -> RequestContext:
    """The pipeline's per-request context (client IP, decoded body)."""
    return get_request_context(request.scope)


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
ContextDep = Annotated[RequestContext, Depends(get_context)]
