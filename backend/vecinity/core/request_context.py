"""Request Context — per-request state threaded through the pipeline.

Invariants:
    - One RequestContext per ASGI scope, stored under scope["state"]["context"]
    - Never shared across requests; discarded with the scope
    - body_filters run in registration order, which is pipeline order

Design Decisions:
    - Stored in scope["state"] so handlers reach it as request.state.context
    - Early stages register body filters instead of reading the body themselves;
      the body stage is the only reader, so the size cap applies before buffering
"""

from dataclasses import dataclass, field
from typing import Any, Callable

# (decoded body, media type) -> filtered body
BodyFilter = Callable[[Any, str], Any]


@dataclass
class RequestContext:
    """Transient state for one request."""
    client_ip: str
    body: Any = None
    body_filters: list[BodyFilter] = field(default_factory=list)
    polluted_query: dict[str, list[str]] = field(default_factory=dict)
    polluted_body: dict[str, list[str]] = field(default_factory=dict)
    route: str | None = None

    def apply_body_filters(self, body: Any, media_type: str) -> Any:
        for body_filter in self.body_filters:
            body = body_filter(body, media_type)
        return body


def client_ip_from_scope(scope: dict, trust_proxy: bool = False) -> str:
    """Socket peer address, or the first X-Forwarded-For hop when proxied."""
    if trust_proxy:
        for name, value in scope.get("headers", []):
            if name == b"x-forwarded-for":
                first = value.decode("latin-1").split(",")[0].strip()
                if first:
                    return first
    client = scope.get("client")
    return client[0] if client else "unknown"


def get_request_context(scope: dict) -> RequestContext:
    """Return the scope's context, creating it on first access."""
    state = scope.setdefault("state", {})
    context = state.get("context")
    if context is None:
        context = RequestContext(client_ip=client_ip_from_scope(scope))
        state["context"] = context
    return context
