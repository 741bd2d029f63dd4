"""In-memory rate limit counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Process restart resets every quota.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from app.adapters.rate_limit.base import AbstractRateLimitStore, RateLimitEntry


@dataclass
class _WindowState:
    window_start: int
    window_duration_ms: int
    count: int

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.window_start + self.window_duration_ms


class InMemoryRateLimitStore(AbstractRateLimitStore):
    """Counter store backed by a dict guarded by a re-entrant lock.

    Important:
        This store is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryRateLimitStore(size={len(self._state_by_key)})"

    @staticmethod
    def _snapshot(key: str, state: _WindowState) -> RateLimitEntry:
        return RateLimitEntry(
            key=key,
            count=state.count,
            window_start=state.window_start,
            window_duration_ms=state.window_duration_ms,
        )

    def hit(
        self,
        key: str,
        *,
        max_requests: int,
        window_ms: int,
        now_ms: int,
    ) -> tuple[RateLimitEntry, bool]:
        """Atomically open, increment, or reject the window for ``key``.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        with self._lock:
            state = self._state_by_key.get(key)

            if state is None or state.is_expired(now_ms):
                state = _WindowState(window_start=now_ms, window_duration_ms=window_ms, count=1)
                self._state_by_key[key] = state
                return self._snapshot(key, state), True

            if state.count < max_requests:
                state.count += 1
                return self._snapshot(key, state), True

            return self._snapshot(key, state), False

    def get(self, key: str) -> RateLimitEntry | None:
        with self._lock:
            state = self._state_by_key.get(key)
            return self._snapshot(key, state) if state else None

    def sweep(self, now_ms: int) -> int:
        with self._lock:
            expired_keys = [k for k, state in self._state_by_key.items() if state.is_expired(now_ms)]
            for key in expired_keys:
                del self._state_by_key[key]
            return len(expired_keys)

    def entries(self) -> list[RateLimitEntry]:
        with self._lock:
            return [self._snapshot(k, state) for k, state in self._state_by_key.items()]

    def clear(self) -> None:
        with self._lock:
            self._state_by_key.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._state_by_key)
