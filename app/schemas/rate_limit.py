"""Pydantic schemas for rate limiting responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RateLimitErrorDetails(BaseModel):
    """Quota state reported alongside a 429."""

    limit: int = Field(..., description="Requests admitted per window for this route class.")
    remaining: int = Field(0, description="Requests left in the current window (always 0).")
    reset_at: int = Field(..., description="UNIX epoch milliseconds when the window ends.")
    retry_after: int = Field(..., description="Seconds until a retry can be admitted.")


class RateLimitError(BaseModel):
    code: str = Field("rate_limit_exceeded", description="Machine-readable error code.")
    message: str = Field(..., description="Human-readable explanation of the limit.")
    request_id: str | None = Field(None, description="Correlation id of the rejected request.")
    details: RateLimitErrorDetails


class RateLimitErrorResponse(BaseModel):
    """Body of an HTTP 429 Too Many Requests response."""

    error: RateLimitError


class RateLimitStatsResponse(BaseModel):
    """Snapshot of the in-process counter store."""

    total_entries: int = Field(..., description="Keys currently tracked (expired but unswept included).")
    oldest_window_start: int | None = Field(
        None, description="Earliest window start among tracked keys (epoch ms)."
    )
    newest_window_start: int | None = Field(
        None, description="Latest window start among tracked keys (epoch ms)."
    )
    environment: str = Field(..., description="Environment the rule table was built for.")


class ResolvedRateLimitResponse(BaseModel):
    """Quota the rule table applies to a method + path."""

    method: str
    path: str
    normalized_path: str
    route_class: str = Field(
        ..., description="Bucket shared by every request of the class, e.g. DELETE:*."
    )
    matched_pattern: str | None = Field(
        None, description="Pattern of the matching rule; null when a default applied."
    )
    max_requests: int
    window_ms: int
    message: str | None = None
    custom_key: bool = Field(
        False, description="Whether the route class uses its own key generator."
    )
