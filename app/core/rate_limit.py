"""Rate limit configuration model and key derivation.

A key identifies the caller and the route class a quota is tracked
against. The default key is ``"{client_ip}:{route_class}"``, e.g.
``"1.2.3.4:POST:/api/jobs"`` or ``"1.2.3.4:DELETE:*"`` for a path only
covered by the DELETE default. Without a resolved route class,
``"{METHOD}:{normalized_path}"`` stands in for it.

Client address resolution only consults forwarding headers listed in
``APP_RATE_LIMIT_TRUSTED_HEADERS``. Those headers are client-controlled unless
a proxy in front of the API writes them, so none are trusted by default.
Proxies append to ``X-Forwarded-For``, so its hops are read from the right.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable

from fastapi import Request
from pydantic import BaseModel, ConfigDict, Field

from app.core.config import settings

UNKNOWN_CLIENT = "unknown"

_UUID_SEGMENT = re.compile(r"/[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}(?=/|$)")
_OBJECT_ID_SEGMENT = re.compile(r"/[0-9a-fA-F]{24}(?=/|$)")

KeyGenerator = Callable[[Request], str]


class RateLimitConfig(BaseModel):
    """Quota applied to one route class.

    Validation happens on construction, so a zero or negative limit is
    rejected when the rule table is loaded rather than at request time.
    """

    model_config = ConfigDict(frozen=True)

    window_ms: int = Field(..., ge=1, description="Window length in milliseconds")
    max_requests: int = Field(..., ge=1, description="Requests admitted per window")
    message: str | None = Field(
        None,
        description="Message returned to clients when this quota is exhausted",
    )
    key_generator: KeyGenerator | None = Field(
        None,
        description="Custom bucket key derivation; defaults to client ip + method + path",
        exclude=True,
    )


def normalize_path(path: str) -> str:
    """Collapse resource identifiers so a route class shares one bucket.

    Examples:
        >>> normalize_path("/api/jobs/3f2b8c1e-1d2a-4c55-9e0b-7a6f5d4c3b2a")
        '/api/jobs/[id]'
        >>> normalize_path("/api/vagas/65a1f0c2e4b0a1b2c3d4e5f6/")
        '/api/vagas/[id]'
    """

    normalized = _UUID_SEGMENT.sub("/[id]", path)
    normalized = _OBJECT_ID_SEGMENT.sub("/[id]", normalized)
    return normalized.rstrip("/") or "/"


def get_client_ip(
    request: Request,
    trusted_headers: Iterable[str] = (),
    *,
    proxy_hops: int = 1,
) -> str:
    """Resolve the client address for keying.

    Args:
        request: Incoming request.
        trusted_headers: Forwarding headers to consult, in priority order.
        proxy_hops: Trusted proxies that append to a comma-separated header.
            The hop ``proxy_hops`` places from the right is the one the
            outermost trusted proxy saw; hops left of it are client-supplied.

    Returns:
        Client address, or ``"unknown"`` when none is available.
    """

    for header in trusted_headers:
        value = request.headers.get(header)
        if not value:
            continue
        hops = [hop.strip() for hop in value.split(",")]
        candidate = hops[-proxy_hops] if len(hops) >= proxy_hops else hops[0]
        if candidate:
            return candidate

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_CLIENT


def _client_ip(request: Request) -> str:
    """Client address under the serving app's settings, else global settings."""

    app = request.scope.get("app")
    app_settings = (getattr(getattr(app, "state", None), "settings", None) or settings).app
    return get_client_ip(
        request,
        app_settings.rate_limit_trusted_headers,
        proxy_hops=app_settings.rate_limit_proxy_hops,
    )


def default_key_generator(request: Request, route_class: str | None = None) -> str:
    """Key requests by client address and route class.

    Args:
        request: Incoming request.
        route_class: Resolved class such as ``"GET:*"``; defaults to the
            HTTP method and normalized path.
    """

    route_class = route_class or f"{request.method.upper()}:{normalize_path(request.url.path)}"
    return f"{_client_ip(request)}:{route_class}"


def build_key_generator(prefix: str, *, include_user_agent: bool = False) -> KeyGenerator:
    """Build a key generator with a fixed namespace.

    Used for sensitive endpoints whose quota is shared by every path variant,
    e.g. ``auth:login:{ip}:{user_agent}``.

    Args:
        prefix: Namespace placed before the client address.
        include_user_agent: Append the first 50 chars of the User-Agent so
            distinct clients behind one address get separate buckets.
    """

    def _generate(request: Request) -> str:
        ip = _client_ip(request)
        if not include_user_agent:
            return f"{prefix}:{ip}"
        user_agent = (request.headers.get("user-agent") or UNKNOWN_CLIENT)[:50]
        return f"{prefix}:{ip}:{user_agent}"

    return _generate
