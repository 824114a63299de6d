"""Access Logging — one morgan-style line per request on the vecinity.access logger.

Invariants:
    - Every request that reaches this stage is logged, including error paths
    - An exception escaping inner stages is logged as status 500, then re-raised
    - Formats: combined (default), common, dev, short, tiny
"""

import logging
import time
from datetime import datetime, timezone

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from vecinity.core.request_context import get_request_context

logger = logging.getLogger("vecinity.access")

FORMATS = {
    "combined": (
        '{remote_addr} - - [{date}] "{method} {url} HTTP/{http_version}" '
        '{status} {content_length} "{referrer}" "{user_agent}"'
    ),
    "common": (
        '{remote_addr} - - [{date}] "{method} {url} HTTP/{http_version}" '
        "{status} {content_length}"
    ),
    "dev": "{method} {url} {status} {response_time} ms - {content_length}",
    "short": (
        "{remote_addr} - {method} {url} HTTP/{http_version} {status} "
        "{content_length} - {response_time} ms"
    ),
    "tiny": "{method} {url} {status} {content_length} - {response_time} ms",
}


def format_access_line(
    fmt: str,
    scope: Scope,
    status: int,
    content_length: str,
    duration_ms: float,
    remote_addr: str,
    now: datetime | None = None,
) -> str:
    """Render one access line for a finished request."""
    headers = Headers(scope=scope)
    url = scope.get("raw_path", scope["path"].encode()).decode("latin-1")
    if scope.get("query_string"):
        url = f"{url}?{scope['query_string'].decode('latin-1')}"
    now = now or datetime.now(timezone.utc)
    return FORMATS.get(fmt, FORMATS["combined"]).format(
        remote_addr=remote_addr,
        date=now.strftime("%d/%b/%Y:%H:%M:%S %z"),
        method=scope["method"],
        url=url,
        http_version=scope.get("http_version", "1.1"),
        status=status,
        content_length=content_length,
        referrer=headers.get("referer", "-"),
        user_agent=headers.get("user-agent", "-"),
        response_time=f"{duration_ms:.3f}",
    )


class AccessLogMiddleware:
    """Pure ASGI middleware emitting access lines after the response completes."""

    def __init__(self, app: ASGIApp, fmt: str = "combined"):
        self.app = app
        self.fmt = fmt if fmt in FORMATS else "combined"

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status = 500
        content_length = "-"

        async def send_capturing(message: Message) -> None:
            nonlocal status, content_length
            if message["type"] == "http.response.start":
                status = message["status"]
                content_length = Headers(raw=message.get("headers", [])).get(
                    "content-length", "-",
                )
            await send(message)

        try:
            await self.app(scope, receive, send_capturing)
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            remote_addr = get_request_context(scope).client_ip
            logger.info(
                format_access_line(
                    self.fmt, scope, status, content_length, duration_ms, remote_addr,
                ),
                extra={
                    "client_ip": remote_addr,
                    "path": scope["path"],
                    "status_code": status,
                    "duration_ms": round(duration_ms, 3),
                },
            )
