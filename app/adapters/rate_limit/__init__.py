"""Rate limit counter stores.

This package provides a small abstraction layer so the API can start with an
in-memory store and later migrate to Redis or another shared store without
changing the limiter or the HTTP layer.
"""

from app.adapters.rate_limit.base import AbstractRateLimitStore, RateLimitEntry
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore

__all__ = ["AbstractRateLimitStore", "InMemoryRateLimitStore", "RateLimitEntry"]
