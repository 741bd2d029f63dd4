"""Tests for the rate limit inspection endpoints."""

import pytest
from fastapi.testclient import TestClient

from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.core.app_factory import create_app
from app.core.rate_limit_rules import build_default_rules
from app.services.rate_limiter import RateLimiter
from conftest import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=1000.0)


@pytest.fixture
def limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(InMemoryRateLimitStore(), clock=clock)


@pytest.fixture
def client(limiter: RateLimiter) -> TestClient:
    app = create_app(limiter=limiter, rules=build_default_rules("production"))
    return TestClient(app)


class TestStatsEndpoint:
    def test_counts_tracked_keys(self, client: TestClient) -> None:
        resp = client.get("/v1/rate-limit/stats")

        assert resp.status_code == 200
        data = resp.json()
        # The stats request itself is counted before the handler runs.
        assert data["total_entries"] == 1
        assert data["oldest_window_start"] == 1_000_000
        assert data["newest_window_start"] == 1_000_000
        assert data["environment"] == "production"

    def test_reflects_sweep(
        self, client: TestClient, limiter: RateLimiter, clock: FakeClock
    ) -> None:
        client.get("/v1/rate-limit/stats")
        clock.advance(120)
        limiter.sweep()

        data = client.get("/v1/rate-limit/stats").json()

        assert data["total_entries"] == 1
        assert data["oldest_window_start"] == 1_120_000


class TestResolveEndpoint:
    def test_resolves_job_deletion(self, client: TestClient) -> None:
        resp = client.get(
            "/v1/rate-limit/resolve",
            params={"method": "delete", "path": "/api/jobs/3f2b8c1e-1d2a-4c55-9e0b-7a6f5d4c3b2a"},
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["method"] == "DELETE"
        assert data["normalized_path"] == "/api/jobs/[id]"
        assert data["matched_pattern"] == "/api/jobs/[id]"
        assert data["route_class"] == "DELETE:/api/jobs/[id]"
        assert data["max_requests"] == 8
        assert data["window_ms"] == 60_000
        assert data["custom_key"] is False

    def test_resolves_login_with_custom_key(self, client: TestClient) -> None:
        data = client.get(
            "/v1/rate-limit/resolve", params={"method": "POST", "path": "/api/auth/login"}
        ).json()

        assert data["max_requests"] == 5
        assert data["window_ms"] == 15 * 60 * 1000
        assert data["custom_key"] is True

    def test_default_has_no_pattern(self, client: TestClient) -> None:
        data = client.get(
            "/v1/rate-limit/resolve", params={"method": "GET", "path": "/api/faculdade/provas"}
        ).json()

        assert data["matched_pattern"] is None
        assert data["route_class"] == "GET:*"
        assert data["max_requests"] == 100

    def test_rejects_unknown_method(self, client: TestClient) -> None:
        resp = client.get("/v1/rate-limit/resolve", params={"method": "BREW", "path": "/api/jobs"})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_method"

    def test_rejects_relative_path(self, client: TestClient) -> None:
        resp = client.get("/v1/rate-limit/resolve", params={"method": "GET", "path": "api/jobs"})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_path"


def test_health_check() -> None:
    from app.main import app

    resp = TestClient(app).get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
