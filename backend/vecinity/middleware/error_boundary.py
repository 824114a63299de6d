"""Error Boundary — innermost stage turning escaped exceptions into a 500 envelope.

Invariants:
    - Sits inside the hardening, CORS and access-log stages, so 500 responses
      carry the same headers and log lines as any other response
    - Never re-raises: a handler fault is a request failure, not a process fault
    - If the response already started, the connection is left to close as-is
"""

import logging

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from vecinity.api.error_handlers import internal_error_response

logger = logging.getLogger(__name__)


class ErrorBoundaryMiddleware:

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_tracking(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_tracking)
        except Exception as exc:
            logger.error(
                f"Unhandled exception on {scope['path']}: {exc}",
                exc_info=True,
                extra={"path": scope["path"], "error_code": "INTERNAL_ERROR"},
            )
            if response_started:
                return
            await internal_error_response()(scope, receive, send)
