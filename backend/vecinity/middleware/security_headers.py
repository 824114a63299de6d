"""Security Headers — hardening headers injected into every response.

Invariants:
    - Outermost stage: every response leaving the app carries the full header set
    - Inner stages may only override Cross-Origin-Resource-Policy (uploads need
      "cross-origin"); every other header is forced to the hardened value
    - X-Powered-By and Server are stripped
"""

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

DEFAULT_HEADERS: dict[str, str] = {
    "Content-Security-Policy": (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
        "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
        "object-src 'none';script-src 'self';script-src-attr 'none';"
        "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}
OVERRIDABLE = frozenset({"cross-origin-resource-policy"})
STRIPPED = ("x-powered-by", "server")


class SecurityHeadersMiddleware:
    """Pure ASGI middleware that hardens response headers."""

    def __init__(self, app: ASGIApp, headers: dict[str, str] | None = None):
        self.app = app
        self.headers = dict(DEFAULT_HEADERS if headers is None else headers)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                self._harden(MutableHeaders(scope=message))
            await send(message)

        await self.app(scope, receive, send_with_headers)

    def _harden(self, headers: MutableHeaders) -> None:
        for name in STRIPPED:
            if name in headers:
                del headers[name]
        for name, value in self.headers.items():
            if name.lower() in OVERRIDABLE:
                headers.setdefault(name, value)
            else:
                headers[name] = value
