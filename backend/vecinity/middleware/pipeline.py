"""Request Pipeline — the ordered stage list every request passes through.

Invariants:
    - PIPELINE order is the execution order: index 0 is outermost
    - build_middleware() is the only consumer; FastAPI receives its output as
      middleware=[...] (Starlette wraps the first entry outermost)
    - Only rate_limit and body_parser short-circuit before routing
    - error_boundary is last so handler faults still pass through every
      outer stage on the way out

Design Decisions:
    - Order as data: tests assert on PIPELINE names instead of inferring
      order from add_middleware() call sequence
    - One ClientRateLimiter per app, shared by reference with the stage
"""

from dataclasses import dataclass
from typing import Callable

from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware import Middleware
from starlette.middleware.gzip import GZipMiddleware

from vecinity.config import Settings
from vecinity.middleware.access_log import AccessLogMiddleware
from vecinity.middleware.body_parser import BodyParserMiddleware
from vecinity.middleware.error_boundary import ErrorBoundaryMiddleware
from vecinity.middleware.parameter_pollution import ParameterPollutionMiddleware
from vecinity.middleware.rate_limit import (
    ClientRateLimiter, RateLimitMiddleware, rate_expression,
)
from vecinity.middleware.sanitize import SanitizeMiddleware
from vecinity.middleware.security_headers import SecurityHeadersMiddleware

API_PREFIX = "/api"
GZIP_MINIMUM_SIZE = 1024


@dataclass(frozen=True)
class Stage:
    """One pipeline stage: a name and a factory producing its middleware."""
    name: str
    build: Callable[[Settings, ClientRateLimiter], Middleware]


def _security_headers(settings, limiter):
    return Middleware(SecurityHeadersMiddleware)


def _sanitize(settings, limiter):
    return Middleware(SanitizeMiddleware)


def _parameter_pollution(settings, limiter):
    return Middleware(
        ParameterPollutionMiddleware, whitelist=settings.hpp_whitelist_keys,
    )


def _rate_limit(settings, limiter):
    return Middleware(
        RateLimitMiddleware,
        limiter=limiter,
        prefix=API_PREFIX,
        trust_proxy=settings.trust_proxy,
    )


def _compression(settings, limiter):
    return Middleware(GZipMiddleware, minimum_size=GZIP_MINIMUM_SIZE)


def _access_log(settings, limiter):
    return Middleware(AccessLogMiddleware, fmt=settings.access_log_format)


def _cors(settings, limiter):
    return Middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _body_parser(settings, limiter):
    return Middleware(BodyParserMiddleware, limit_bytes=settings.body_limit_bytes)


def _error_boundary(settings, limiter):
    return Middleware(ErrorBoundaryMiddleware)


PIPELINE: tuple[Stage, ...] = (
    Stage("security_headers", _security_headers),
    Stage("sanitize", _sanitize),
    Stage("parameter_pollution", _parameter_pollution),
    Stage("rate_limit", _rate_limit),
    Stage("compression", _compression),
    Stage("access_log", _access_log),
    Stage("cors", _cors),
    Stage("body_parser", _body_parser),
    Stage("error_boundary", _error_boundary),
)


def create_rate_limiter(settings: Settings) -> ClientRateLimiter:
    return ClientRateLimiter(
        rate_expression(settings.rate_limit_max, settings.rate_limit_window_seconds),
    )


def build_middleware(
    settings: Settings,
    limiter: ClientRateLimiter,
    stages: tuple[Stage, ...] = PIPELINE,
) -> list[Middleware]:
    """Materialize the stage list, outermost first."""
    return [stage.build(settings, limiter) for stage in stages]
