from __future__ import annotations

from fastapi import APIRouter, Query, Request

from app.core.errors import ValidationAppError
from app.core.rate_limit import normalize_path
from app.core.rate_limit_rules import HTTP_METHODS
from app.schemas.rate_limit import RateLimitStatsResponse, ResolvedRateLimitResponse

router = APIRouter(prefix="/rate-limit", tags=["Rate limit"])


@router.get("/stats", response_model=RateLimitStatsResponse)
def rate_limit_stats(request: Request) -> RateLimitStatsResponse:
    """Report how many keys the counter store currently tracks."""

    stats = request.app.state.rate_limiter.stats()
    return RateLimitStatsResponse(
        total_entries=stats.total_entries,
        oldest_window_start=stats.oldest_window_start,
        newest_window_start=stats.newest_window_start,
        environment=request.app.state.rate_limit_rules.environment,
    )


@router.get("/resolve", response_model=ResolvedRateLimitResponse)
def resolve_rate_limit(
    request: Request,
    method: str = Query(..., description="HTTP method of the route to inspect."),
    path: str = Query(..., description="Request path, e.g. /api/jobs/<uuid>."),
) -> ResolvedRateLimitResponse:
    """Show which quota the rule table applies to a method + path.

    Raises:
        ValidationAppError: If the method is not a known HTTP method or the
            path is not absolute.
    """

    method = method.upper()
    if method not in HTTP_METHODS:
        raise ValidationAppError(
            code="invalid_method",
            message=f"Unsupported HTTP method: {method}",
            details={"method": method},
        )
    if not path.startswith("/"):
        raise ValidationAppError(
            code="invalid_path",
            message="Path must start with '/'",
            details={"hint": "Pass the request path, not a full URL"},
        )

    route = request.app.state.rate_limit_rules.classify(method, path)
    config = route.config

    return ResolvedRateLimitResponse(
        method=method,
        path=path,
        normalized_path=normalize_path(path),
        route_class=route.name,
        matched_pattern=route.rule.pattern if route.rule else None,
        max_requests=config.max_requests,
        window_ms=config.window_ms,
        message=config.message,
        custom_key=config.key_generator is not None,
    )
