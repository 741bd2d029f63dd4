"""Background removal of expired rate limit entries.

The sweep only bounds memory: the limiter already treats an expired entry
as absent, so a sweep racing a request cannot change its decision.
"""

from __future__ import annotations

import asyncio
import logging

from app.services.rate_limiter import RateLimiter


class RateLimitSweeper:
    """Periodic sweep task started and stopped with the application."""

    def __init__(self, limiter: RateLimiter, *, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._limiter = limiter
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._logger = logging.getLogger("rate_limit.sweeper")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="rate-limit-sweeper")
        self._logger.info("sweeper.start", extra={"interval_s": self._interval})

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        self._logger.info("sweeper.stop")

    def sweep_once(self) -> int:
        removed = self._limiter.sweep()
        if removed:
            self._logger.info(
                "rate_limit.sweep",
                extra={"removed": removed, "remaining_entries": len(self._limiter.store)},
            )
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.sweep_once()
            except Exception:
                self._logger.exception("rate_limit.sweep_failed")
