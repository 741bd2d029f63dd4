"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins APP_ENV to testing before any app module reads settings.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Any

import pytest
from starlette.requests import Request


class FakeClock:
    """Deterministic clock returning UNIX seconds."""

    def __init__(self, start: float = 0.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


def make_request(
    method: str = "GET",
    path: str = "/api/jobs",
    *,
    client: tuple[str, int] | None = ("1.2.3.4", 50000),
    headers: dict[str, str] | None = None,
) -> Request:
    """Build a bare Starlette request for unit tests."""

    scope: dict[str, Any] = {
        "type": "http",
        "method": method,
        "path": path,
        "raw_path": path.encode(),
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
        "server": ("testserver", 80),
        "scheme": "http",
    }
    return Request(scope)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
