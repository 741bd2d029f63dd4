"""HTTP middleware for request correlation and rate limiting.

request_id_middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for log correlation
- Adds X-Request-ID and X-Request-Duration-ms to the response

rate_limit_middleware:
- Resolves the quota for the request's route class from app.state.rate_limit_rules
- Counts the request with app.state.rate_limiter
- Short-circuits with HTTP 429 when denied, otherwise attaches X-RateLimit-* headers

Usage (register rate limiting first so the request id wraps it):
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from app.core.logging import clear_request_id, get_request_id, set_request_id
from app.schemas.rate_limit import RateLimitError, RateLimitErrorDetails, RateLimitErrorResponse
from app.services.rate_limiter import RateLimitDecision

logger = logging.getLogger(__name__)

DEFAULT_LIMIT_MESSAGE = "Too many requests. Try again later."


async def request_id_middleware(request: Request, call_next) -> Response:
    """Propagate a correlation id through the request lifecycle.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The downstream response with X-Request-ID and
            X-Request-Duration-ms headers added.
    """

    header_name = request.app.state.settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def build_rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    """Informational quota headers for a decision (Retry-After only when denied)."""

    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at_seconds),
        "X-RateLimit-Window": str(decision.window_ms // 1000),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(decision.retry_after_seconds or 0)
    return headers


def _is_exempt(path: str, exempt_paths: list[str]) -> bool:
    return any(path == exempt or path.startswith(exempt.rstrip("/") + "/") for exempt in exempt_paths)


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """Enforce per-route quotas before the request reaches its handler.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: HTTP 429 with quota headers when the limit is exhausted,
            otherwise the downstream response with X-RateLimit-* headers.
    """

    app_settings = request.app.state.settings.app
    path = request.url.path

    if not app_settings.rate_limit_enabled or _is_exempt(path, app_settings.rate_limit_exempt_paths):
        return await call_next(request)

    route = request.app.state.rate_limit_rules.classify(request.method, path)
    config = route.config
    decision: RateLimitDecision = request.app.state.rate_limiter.check(
        request, config, route_class=route.name
    )
    headers = build_rate_limit_headers(decision) if app_settings.rate_limit_include_headers else {}

    log_extra = {
        "key_hash": _hash_limiter_key(decision.key),
        "method": request.method,
        "path": path,
        "limit": decision.limit,
        "remaining": decision.remaining,
        "window_ms": decision.window_ms,
    }

    if not decision.allowed:
        logger.warning(
            "rate_limit.exceeded",
            extra={**log_extra, "retry_after_s": decision.retry_after_seconds},
        )
        body = RateLimitErrorResponse(
            error=RateLimitError(
                message=config.message or DEFAULT_LIMIT_MESSAGE,
                request_id=get_request_id(),
                details=RateLimitErrorDetails(
                    limit=decision.limit,
                    remaining=0,
                    reset_at=decision.reset_at,
                    retry_after=decision.retry_after_seconds or 0,
                ),
            )
        )
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=body.model_dump(),
            headers=headers or None,
        )

    logger.debug("rate_limit.allowed", extra=log_extra)
    response: Response = await call_next(request)
    for name, value in headers.items():
        response.headers[name] = value
    return response
