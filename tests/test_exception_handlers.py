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
from pydantic import BaseModel

from cafe_api.core.errors import (
    AppError,
    AuthenticationAppError,
    InvalidTransitionAppError,
    NotFoundAppError,
    StorageAppError,
    UpstreamAppError,
    ValidationAppError,
)
from cafe_api.core.exception_handlers import setup_exception_handlers, status_for_error


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    """Create test client with handlers enabled."""
    return TestClient(app_with_handlers)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation")
        async def test_endpoint():
            raise ValidationAppError(code="test_validation", message="Test validation error")

        response = client.get("/test-validation")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "test_validation"
        assert data["error"]["message"] == "Test validation error"
        assert "request_id" in data["error"]

    def test_validation_error_includes_details(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify ValidationAppError includes details when provided."""
        @app_with_handlers.get("/test-validation-details")
        async def test_endpoint():
            raise ValidationAppError(
                code="missing_fields",
                message="Missing required fields: destination",
                details={"missing_fields": ["destination"]},
            )

        response = client.get("/test-validation-details")

        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"missing_fields": ["destination"]}

    @pytest.mark.parametrize(
        "error_type, expected_status",
        [
            (AuthenticationAppError, 401),
            (NotFoundAppError, 404),
            (InvalidTransitionAppError, 409),
            (UpstreamAppError, 502),
            (StorageAppError, 500),
            (ValidationAppError, 400),
        ],
    )
    def test_status_mapping(self, error_type, expected_status):
        assert status_for_error(error_type(code="x", message="y")) == expected_status

    def test_not_found_over_http(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-missing")
        async def test_endpoint():
            raise NotFoundAppError(code="search_state_not_found", message="Search state not found")

        response = client.get("/test-missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "search_state_not_found"

    def test_storage_error_message_is_generic(self, client: TestClient, app_with_handlers: FastAPI):
        """Backend details must not reach the client."""
        @app_with_handlers.get("/test-storage")
        async def test_endpoint():
            raise StorageAppError(
                code="storage_unavailable",
                message="redis://10.0.0.5:6379 connection refused",
                details={"provider": "redis"},
            )

        response = client.get("/test-storage")

        assert response.status_code == 500
        data = response.json()
        assert data["error"]["code"] == "storage_unavailable"
        assert "10.0.0.5" not in response.text
        assert "details" not in data["error"]

    def test_error_response_format_is_consistent(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify error responses have consistent JSON structure."""
        @app_with_handlers.get("/test-format")
        async def test_endpoint():
            raise InvalidTransitionAppError(code="test", message="test")

        data = client.get("/test-format").json()

        # Required fields always present
        assert "error" in data
        assert "code" in data["error"]
        assert "message" in data["error"]
        assert "request_id" in data["error"]


class TestRequestValidationHandler:
    """Body/query validation failures surface as 400 with field names."""

    def test_missing_body_fields(self, client: TestClient, app_with_handlers: FastAPI):
        class Payload(BaseModel):
            search_id: str
            destination: str

        @app_with_handlers.post("/test-body")
        async def test_endpoint(body: Payload):
            return {}

        response = client.post("/test-body", json={"search_id": "s1"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "validation_error"
        assert error["details"]["missing_fields"] == ["destination"]
        assert "destination" in error["message"]

    def test_invalid_query_value(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-query")
        async def test_endpoint(page: int):
            return {}

        response = client.get("/test-query", params={"page": "two"})

        assert response.status_code == 400
        details = response.json()["error"]["details"]
        assert details["missing_fields"] == []
        assert details["invalid_fields"] == ["page"]


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_handler_registered(self, app_with_handlers: FastAPI):
        assert Exception in app_with_handlers.exception_handlers

    def test_general_exception_handler_logic(self):
        """Verify general_exception_handler returns correct structure."""
        from cafe_api.core.exception_handlers import general_exception_handler

        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = RuntimeError("Unexpected error: database connection failed")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        # Original error message should NOT be in response
        assert "database connection" not in data["error"]["message"]
        assert "request_id" in data["error"]

    def test_general_exception_handler_never_leaks_stack_trace(self):
        from cafe_api.core.exception_handlers import general_exception_handler

        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        response = asyncio.run(general_exception_handler(request, ValueError("Test error")))

        response_text = bytes(response.body).decode()
        assert "Traceback" not in response_text
        assert "File \"" not in response_text
        assert "ValueError" not in response_text


class TestErrorHandlerIntegration:
    """Integration tests for exception handler setup."""

    def test_setup_exception_handlers_registers_handlers(self, app_with_handlers: FastAPI):
        assert AppError in app_with_handlers.exception_handlers
        assert Exception in app_with_handlers.exception_handlers

    def test_multiple_handler_setups_does_not_fail(self):
        """Verify calling setup_exception_handlers multiple times is safe."""
        app = FastAPI()

        setup_exception_handlers(app)
        setup_exception_handlers(app)

        assert AppError in app.exception_handlers
