"""
Unit tests for exception handlers.

Tests cover:
- AppException handler response envelope and headers
- Validation error handler formatting
- General exception handler (debug vs production)
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from fastapi import Request
from fastapi.exceptions import RequestValidationError

from gatekeeper.api.handlers import (
    app_exception_handler,
    general_exception_handler,
    validation_exception_handler,
)
from gatekeeper.core.exceptions import (
    AppException,
    NotFoundError,
    TokenExpiredError,
    TooManyAttemptsError,
)


def make_request(debug: bool = False, request_id: str | None = "test-request-123") -> MagicMock:
    request = MagicMock(spec=Request)
    if request_id is None:
        request.state = MagicMock(spec=[])
    else:
        request.state.request_id = request_id
    request.app.state.settings = SimpleNamespace(debug=debug)
    return request


class TestAppExceptionHandler:
    """Tests for app_exception_handler."""

    async def test_returns_status_and_envelope(self) -> None:
        exc = AppException(
            message="Test error",
            status_code=400,
            error_code="TEST_ERROR",
            details={"field": "value"},
        )

        response = await app_exception_handler(make_request(), exc)

        body = json.loads(response.body)
        assert response.status_code == 400
        assert body["error"] == {"code": "TEST_ERROR", "message": "Test error", "details": {"field": "value"}}
        assert body["meta"]["request_id"] == "test-request-123"

    async def test_handles_missing_request_id(self) -> None:
        response = await app_exception_handler(make_request(request_id=None), NotFoundError(resource="User"))

        assert response.status_code == 404
        assert json.loads(response.body)["meta"]["request_id"] is None

    async def test_authentication_errors_challenge_bearer(self) -> None:
        response = await app_exception_handler(make_request(), TokenExpiredError())

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_rate_limit_sets_retry_after(self) -> None:
        response = await app_exception_handler(make_request(), TooManyAttemptsError(retry_after=42))

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "42"
        assert json.loads(response.body)["error"]["details"]["retry_after"] == 42

    async def test_retry_after_from_details(self) -> None:
        exc = TooManyAttemptsError(details={"retry_after": 7})

        response = await app_exception_handler(make_request(), exc)

        assert response.headers["Retry-After"] == "7"


class TestValidationExceptionHandler:
    """Tests for validation_exception_handler."""

    async def test_formats_validation_errors(self) -> None:
        exc = MagicMock(spec=RequestValidationError)
        exc.errors.return_value = [
            {"loc": ("body", "email"), "msg": "Invalid email", "type": "value_error"},
            {"loc": ("body", "password"), "msg": "Field required", "type": "missing"},
        ]

        response = await validation_exception_handler(make_request(), exc)

        body = json.loads(response.body)
        assert response.status_code == 422
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert [d["field"] for d in body["error"]["details"]] == ["body.email", "body.password"]


class TestGeneralExceptionHandler:
    """Tests for general_exception_handler."""

    @pytest.mark.parametrize("debug", [False, True])
    async def test_returns_500(self, debug: bool) -> None:
        response = await general_exception_handler(make_request(debug=debug), RuntimeError("boom"))

        assert response.status_code == 500
        assert json.loads(response.body)["error"]["code"] == "INTERNAL_ERROR"

    async def test_hides_details_in_production(self) -> None:
        response = await general_exception_handler(make_request(), RuntimeError("Sensitive database error"))

        message = json.loads(response.body)["error"]["message"]
        assert "Sensitive database error" not in message
        assert "contact support" in message.lower()

    async def test_shows_details_in_debug(self) -> None:
        response = await general_exception_handler(make_request(debug=True), RuntimeError("Debug error message"))

        assert json.loads(response.body)["error"]["message"] == "Debug error message"
