"""Fixed-window rate limiter service.

Each key gets a window that opens on its first request and lasts
``config.window_ms``. Within an open window at most ``config.max_requests``
requests are admitted; further attempts are denied without consuming quota.
Once the window has elapsed the next request opens a fresh one.

Counter state lives in an injected ``AbstractRateLimitStore`` so the
limiter can move to a shared backend without changing its callers.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request

from app.adapters.rate_limit.base import AbstractRateLimitStore
from app.core.rate_limit import UNKNOWN_CLIENT, RateLimitConfig, default_key_generator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        key: Bucket key the request was counted against.
        limit: Max requests per window.
        remaining: Requests left in the current window (0 when blocked).
        reset_at: UNIX epoch milliseconds when the current window ends.
        window_ms: Window length applied to this request.
        retry_after_seconds: Suggested wait in seconds when blocked.
    """

    allowed: bool
    key: str
    limit: int
    remaining: int
    reset_at: int
    window_ms: int
    retry_after_seconds: int | None = None

    @property
    def reset_at_seconds(self) -> int:
        """Window end as UNIX epoch seconds (value of X-RateLimit-Reset)."""
        return math.ceil(self.reset_at / 1000)


@dataclass(frozen=True)
class RateLimitStats:
    """Lightweight view of the counter store."""

    total_entries: int
    oldest_window_start: int | None
    newest_window_start: int | None


class RateLimiter:
    """Admit or deny requests against per-key quotas."""

    def __init__(
        self,
        store: AbstractRateLimitStore,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Counter store shared by every check.
            clock: Time source returning UNIX time in seconds.
        """
        self._store = store
        self._clock = clock

    @property
    def store(self) -> AbstractRateLimitStore:
        return self._store

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _derive_key(
        self, request: Request, config: RateLimitConfig, route_class: str | None
    ) -> str:
        try:
            if config.key_generator is not None:
                key = config.key_generator(request)
            else:
                key = default_key_generator(request, route_class)
        except Exception as exc:
            logger.warning(
                "rate_limit.key_fallback",
                extra={"reason": "key_generator_failed", "error_type": type(exc).__name__},
            )
            return UNKNOWN_CLIENT
        if not key:
            logger.warning("rate_limit.key_fallback", extra={"reason": "empty_key"})
            return UNKNOWN_CLIENT
        return key

    def check(
        self,
        request: Request,
        config: RateLimitConfig,
        *,
        route_class: str | None = None,
    ) -> RateLimitDecision:
        """Count the request against its bucket and decide admission.

        Key derivation failures never disable limiting: the request is
        counted against the shared ``"unknown"`` bucket instead.

        Args:
            request: Incoming request.
            config: Quota already resolved for the request's route class.
            route_class: Name of that route class, used by the default key
                so every path of the class shares one bucket.

        Returns:
            RateLimitDecision; denial is a normal outcome, not an exception.
        """
        return self.check_key(self._derive_key(request, config, route_class), config)

    def check_key(self, key: str, config: RateLimitConfig) -> RateLimitDecision:
        """Count one attempt against ``key`` and decide admission."""
        now = self._now_ms()

        if config.max_requests <= 0 or config.window_ms <= 0:
            # Unvalidated config: fail closed.
            logger.error(
                "rate_limit.invalid_config",
                extra={"max_requests": config.max_requests, "window_ms": config.window_ms},
            )
            return RateLimitDecision(
                allowed=False,
                key=key,
                limit=max(0, config.max_requests),
                remaining=0,
                reset_at=now,
                window_ms=config.window_ms,
                retry_after_seconds=0,
            )

        entry, allowed = self._store.hit(
            key,
            max_requests=config.max_requests,
            window_ms=config.window_ms,
            now_ms=now,
        )

        reset_at = entry.window_start + config.window_ms
        remaining = max(0, config.max_requests - entry.count)

        if allowed:
            return RateLimitDecision(
                allowed=True,
                key=key,
                limit=config.max_requests,
                remaining=remaining,
                reset_at=reset_at,
                window_ms=config.window_ms,
            )

        return RateLimitDecision(
            allowed=False,
            key=key,
            limit=config.max_requests,
            remaining=remaining,
            reset_at=reset_at,
            window_ms=config.window_ms,
            retry_after_seconds=max(0, math.ceil((reset_at - now) / 1000)),
        )

    def sweep(self) -> int:
        """Remove every expired entry from the store.

        Returns:
            Number of entries removed.
        """
        return self._store.sweep(self._now_ms())

    def stats(self) -> RateLimitStats:
        entries = self._store.entries()
        starts = [entry.window_start for entry in entries]
        return RateLimitStats(
            total_entries=len(entries),
            oldest_window_start=min(starts) if starts else None,
            newest_window_start=max(starts) if starts else None,
        )
