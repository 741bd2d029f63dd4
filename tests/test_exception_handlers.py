"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.errors import AppError, ConfigurationAppError, ValidationAppError
from app.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation")
        async def endpoint():
            raise ValidationAppError(code="invalid_method", message="Unsupported HTTP method: BREW")

        response = client.get("/test-validation")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "invalid_method"
        assert error["message"] == "Unsupported HTTP method: BREW"
        assert "request_id" in error
        assert "details" not in error

    def test_configuration_error_returns_500_with_details(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/test-config")
        async def endpoint():
            raise ConfigurationAppError(
                code="invalid_rate_limit_rule",
                message="Unknown HTTP method in rate limit rule: FETCH",
                details={"method": "FETCH", "pattern": "/api/jobs"},
            )

        response = client.get("/test-config")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "invalid_rate_limit_rule"
        assert error["details"] == {"method": "FETCH", "pattern": "/api/jobs"}


class TestGeneralExceptionHandler:
    def test_never_leaks_exception_text(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = RuntimeError("store connection failed at 10.0.0.5")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "10.0.0.5" not in json.dumps(data)
        assert "RuntimeError" not in json.dumps(data)

    def test_unexpected_route_error_returns_500(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/boom")
        async def endpoint():
            raise KeyError("secret")

        response = client.get("/boom")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"


def test_setup_registers_handlers(app_with_handlers: FastAPI):
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers


def test_app_error_str_is_message():
    error = ValidationAppError(code="x", message="readable message")

    assert str(error) == "readable message"
