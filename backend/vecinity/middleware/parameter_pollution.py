"""HTTP Parameter Pollution guard — one deterministic value per key.

Invariants:
    - Duplicate query keys collapse to the LAST value
    - Same rule for form-encoded bodies (JSON bodies untouched)
    - Dropped values kept on RequestContext.polluted_query / polluted_body
    - Whitelisted keys keep every value
"""

from typing import Any, Iterable
from urllib.parse import parse_qsl, urlencode

from starlette.types import ASGIApp, Receive, Scope, Send

from vecinity.core.request_context import RequestContext, get_request_context

FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"


def collapse_pairs(
    pairs: Iterable[tuple[str, str]], whitelist: frozenset[str] = frozenset(),
) -> tuple[list[tuple[str, str]], dict[str, list[str]]]:
    """Keep the last value of each duplicated key; return (pairs, polluted)."""
    grouped: dict[str, list[str]] = {}
    for key, value in pairs:
        grouped.setdefault(key, []).append(value)

    kept: list[tuple[str, str]] = []
    polluted: dict[str, list[str]] = {}
    for key, values in grouped.items():
        if len(values) > 1 and key not in whitelist:
            polluted[key] = values
            kept.append((key, values[-1]))
        else:
            kept.extend((key, value) for value in values)
    return kept, polluted


class ParameterPollutionMiddleware:
    """Pure ASGI middleware applying hpp semantics."""

    def __init__(self, app: ASGIApp, whitelist: Iterable[str] = ()):
        self.app = app
        self.whitelist = frozenset(whitelist)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            context = get_request_context(scope)
            scope["query_string"] = self._collapse_query(
                scope.get("query_string", b""), context,
            )
            context.body_filters.append(self._body_filter(context))
        await self.app(scope, receive, send)

    def _collapse_query(self, query_string: bytes, context: RequestContext) -> bytes:
        if not query_string:
            return query_string
        pairs = parse_qsl(query_string.decode("latin-1"), keep_blank_values=True)
        kept, polluted = collapse_pairs(pairs, self.whitelist)
        if not polluted:
            return query_string
        context.polluted_query.update(polluted)
        return urlencode(kept).encode("latin-1")

    def _body_filter(self, context: RequestContext):
        whitelist = self.whitelist

        def collapse_form(body: Any, media_type: str) -> Any:
            if media_type != FORM_MEDIA_TYPE or not isinstance(body, dict):
                return body
            collapsed: dict[str, Any] = {}
            for key, value in body.items():
                if isinstance(value, list) and key not in whitelist:
                    context.polluted_body[key] = value
                    collapsed[key] = value[-1] if value else ""
                else:
                    collapsed[key] = value
            return collapsed

        return collapse_form
