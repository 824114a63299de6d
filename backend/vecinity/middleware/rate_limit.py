"""Rate Limiting — fixed-window request budget per client IP under /api.

Invariants:
    - One counter table (a limits MemoryStorage) per ClientRateLimiter, keyed
      by client IP; the event loop serializes hits on it
    - A window starts at the first request from an IP and lasts the rate's
      period; the count resets when it elapses (storage expiry)
    - Over budget: 429 envelope, chain stops (no body parsing, no handler)
    - Only "/api" and paths below it are counted

Design Decisions:
    - limits' FixedWindowRateLimiter strategy decides; get_window_stats()
      feeds the X-RateLimit-* headers
    - The rate is a limits expression ("100/900 seconds") so tests can use
      one-second windows
"""

import logging
import math
import time
from dataclasses import dataclass

from limits import RateLimitItem, parse
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from vecinity.api.error_handlers import error_response
from vecinity.core.errors import RateLimitExceededError
from vecinity.core.request_context import client_ip_from_scope, get_request_context

logger = logging.getLogger(__name__)


def rate_expression(max_requests: int, window_seconds: float) -> str:
    """limits notation for max_requests per window, whole seconds."""
    return f"{max_requests}/{max(1, math.ceil(window_seconds))} seconds"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float


class ClientRateLimiter:
    """Process-wide per-client fixed-window budget."""

    def __init__(self, rate: str, storage: MemoryStorage | None = None):
        self.item: RateLimitItem = parse(rate)
        self.storage = storage if storage is not None else MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self.storage)

    def hit(self, key: str) -> RateLimitDecision:
        """Count one request for key and decide whether it may proceed."""
        allowed = self._strategy.hit(self.item, key)
        stats = self._strategy.get_window_stats(self.item, key)
        return RateLimitDecision(
            allowed=allowed,
            limit=self.item.amount,
            remaining=max(stats.remaining, 0),
            reset_after=max(stats.reset_time - time.time(), 0.0),
        )

    def count(self, key: str) -> int:
        return self.storage.get(self.item.key_for(key))

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self.storage.reset()
        else:
            self._strategy.clear(self.item, key)


def is_limited_path(path: str, prefix: str = "/api") -> bool:
    return path == prefix or path.startswith(prefix + "/")


class RateLimitMiddleware:
    """Pure ASGI middleware enforcing ClientRateLimiter on the API prefix."""

    def __init__(
        self,
        app: ASGIApp,
        limiter: ClientRateLimiter,
        prefix: str = "/api",
        trust_proxy: bool = False,
    ):
        self.app = app
        self.limiter = limiter
        self.prefix = prefix.rstrip("/")
        self.trust_proxy = trust_proxy

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not is_limited_path(scope["path"], self.prefix):
            await self.app(scope, receive, send)
            return

        context = get_request_context(scope)
        context.client_ip = client_ip_from_scope(scope, self.trust_proxy)
        decision = self.limiter.hit(context.client_ip)
        headers = _rate_limit_headers(decision)

        if not decision.allowed:
            exc = RateLimitExceededError(max(1, math.ceil(decision.reset_after)))
            logger.warning(
                f"Rate limit exceeded for {context.client_ip}",
                extra={
                    "client_ip": context.client_ip,
                    "path": scope["path"],
                    "error_code": exc.code,
                },
            )
            headers["Retry-After"] = str(exc.retry_after_seconds)
            response = error_response(exc, headers=headers)
            await response(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for name, value in headers.items():
                    response_headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_headers)


def _rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(math.ceil(decision.reset_after)),
    }
