"""Rate limit store interfaces.

The limiter depends on this abstraction (not the concrete implementation)
so the counter storage can move to a shared backend (e.g., Redis) when the
API runs on more than one process.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitEntry:
    """Counter state for one key within its current window.

    Attributes:
        key: Caller + route class identity.
        count: Requests admitted within the current window.
        window_start: UNIX epoch milliseconds when the window began.
        window_duration_ms: Window length captured when the window opened.
    """

    key: str
    count: int
    window_start: int
    window_duration_ms: int

    @property
    def expires_at(self) -> int:
        return self.window_start + self.window_duration_ms

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.expires_at


class AbstractRateLimitStore(ABC):
    """Interface for rate limit counter stores.

    Implementations must make ``hit`` atomic per key: the read, the limit
    comparison and the increment happen as one step.
    """

    @abstractmethod
    def hit(
        self,
        key: str,
        *,
        max_requests: int,
        window_ms: int,
        now_ms: int,
    ) -> tuple[RateLimitEntry, bool]:
        """Record an attempt for ``key`` and decide whether it is admitted.

        A missing or expired entry is replaced by a fresh window with
        ``count=1``. A live entry is incremented only while below
        ``max_requests``; at the limit it is left untouched and the attempt
        is rejected.

        Args:
            key: Rate limit key.
            max_requests: Requests admitted per window.
            window_ms: Window length for a newly opened window.
            now_ms: Current UNIX time in milliseconds.

        Returns:
            Tuple of (entry snapshot after the operation, admitted flag).
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, key: str) -> RateLimitEntry | None:
        """Return a snapshot of the stored entry, expired or not."""
        raise NotImplementedError

    @abstractmethod
    def sweep(self, now_ms: int) -> int:
        """Delete every entry whose window has expired.

        Returns:
            Number of entries removed.
        """
        raise NotImplementedError

    @abstractmethod
    def entries(self) -> list[RateLimitEntry]:
        """Return snapshots of all stored entries."""
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        """Remove all entries."""
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError
