"""Body Parser — size-capped body decoding for JSON and form-encoded requests.

Invariants:
    - Only stage that reads the request body from the server
    - Bodies above limit_bytes → 413 before any handler runs (Content-Length
      checked first, then the running total while streaming)
    - JSON and form bodies decoded once, passed through RequestContext.body_filters
      (registered by earlier stages, in pipeline order), stored on context.body
      and replayed to handlers re-encoded when a filter changed them
    - Malformed JSON / form data → 400 envelope
    - Other media types are capped and replayed byte-for-byte, never decoded
"""

import json
import logging
from typing import Any
from urllib.parse import parse_qsl, urlencode

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from vecinity.api.error_handlers import error_response
from vecinity.core.errors import MalformedBodyError, PayloadTooLargeError
from vecinity.core.request_context import get_request_context

logger = logging.getLogger(__name__)

DEFAULT_LIMIT_BYTES = 10 * 1024 * 1024
JSON_MEDIA_TYPE = "application/json"
FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"


def media_type_of(headers: Headers) -> str:
    return headers.get("content-type", "").split(";")[0].strip().lower()


def is_json(media_type: str) -> bool:
    return media_type == JSON_MEDIA_TYPE or media_type.endswith("+json")


def decode_body(raw: bytes, media_type: str) -> Any:
    """Decode a JSON or form body; raises MalformedBodyError."""
    if is_json(media_type):
        if not raw.strip():
            return {}
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise MalformedBodyError(media_type)
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise MalformedBodyError(media_type)
    form: dict[str, Any] = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        if key not in form:
            form[key] = value
        elif isinstance(form[key], list):
            form[key].append(value)
        else:
            form[key] = [form[key], value]
    return form


def encode_body(body: Any, media_type: str) -> bytes:
    if is_json(media_type):
        return json.dumps(body, ensure_ascii=False).encode("utf-8")
    return urlencode(body, doseq=True).encode("utf-8")


class BodyTooLarge(Exception):
    pass


class BodyParserMiddleware:
    """Pure ASGI middleware buffering, decoding and filtering request bodies."""

    def __init__(self, app: ASGIApp, limit_bytes: int = DEFAULT_LIMIT_BYTES):
        self.app = app
        self.limit_bytes = limit_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        if "content-length" not in headers and "transfer-encoding" not in headers:
            await self.app(scope, receive, send)
            return

        try:
            declared = int(headers.get("content-length", "0"))
        except ValueError:
            declared = 0
        try:
            if declared > self.limit_bytes:
                raise BodyTooLarge()
            raw, disconnected = await self._read_body(receive)
        except BodyTooLarge:
            await self._reject(scope, receive, send, PayloadTooLargeError(self.limit_bytes))
            return

        media_type = media_type_of(headers)
        if raw and (is_json(media_type) or media_type == FORM_MEDIA_TYPE):
            try:
                raw = self._decode_and_filter(scope, raw, media_type)
            except MalformedBodyError as exc:
                await self._reject(scope, receive, send, exc)
                return

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": raw, "more_body": False}
            if disconnected:
                return {"type": "http.disconnect"}
            return await receive()

        await self.app(scope, replay, send)

    async def _read_body(self, receive: Receive) -> tuple[bytes, bool]:
        chunks: list[bytes] = []
        total = 0
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return b"".join(chunks), True
            chunk = message.get("body", b"")
            total += len(chunk)
            if total > self.limit_bytes:
                raise BodyTooLarge()
            chunks.append(chunk)
            if not message.get("more_body", False):
                return b"".join(chunks), False

    def _decode_and_filter(self, scope: Scope, raw: bytes, media_type: str) -> bytes:
        context = get_request_context(scope)
        decoded = decode_body(raw, media_type)
        filtered = context.apply_body_filters(decoded, media_type)
        context.body = filtered
        if filtered == decoded:
            return raw
        raw = encode_body(filtered, media_type)
        scope["headers"] = [
            (name, value) for name, value in scope["headers"]
            if name not in (b"content-length", b"transfer-encoding")
        ] + [(b"content-length", str(len(raw)).encode("latin-1"))]
        return raw

    async def _reject(self, scope: Scope, receive: Receive, send: Send, exc) -> None:
        logger.warning(
            f"Rejected body on {scope['path']}: {exc.message}",
            extra={"path": scope["path"], "error_code": exc.code},
        )
        response = error_response(exc)
        await response(scope, receive, send)
