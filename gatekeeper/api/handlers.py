"""
Exception handlers for the FastAPI application.

This module provides:
- Application exception handler (AppException and subclasses)
- Pydantic validation error handler (RequestValidationError)
- General unhandled exception handler (Exception)

Every error uses the same envelope:
    {"error": {"code", "message", "details"}, "meta": {"request_id"}}
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gatekeeper.core.exceptions import AppException, AuthenticationError, TooManyAttemptsError

logger = logging.getLogger(__name__)


def _envelope(request: Request, code: str, message: str, details: Any) -> dict[str, Any]:
    return {
        "error": {"code": code, "message": message, "details": details},
        "meta": {"request_id": getattr(request.state, "request_id", None)},
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle application exceptions.

    Adds ``WWW-Authenticate`` to 401 responses and ``Retry-After`` to 429
    responses.
    """
    logger.warning(f"Application exception: {exc.error_code} - {exc.message}")

    headers: dict[str, str] = {}
    if isinstance(exc, AuthenticationError):
        headers["WWW-Authenticate"] = "Bearer"
    if isinstance(exc, TooManyAttemptsError):
        retry_after = exc.retry_after or exc.details.get("retry_after")
        if retry_after:
            headers["Retry-After"] = str(retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(request, exc.error_code, exc.message, exc.details),
        headers=headers or None,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Convert request validation errors to the error envelope."""
    logger.warning(f"Validation error: {len(exc.errors())} invalid fields")

    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_envelope(request, "VALIDATION_ERROR", "Request validation failed", errors),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions.

    Logs the full error and returns a generic message; internal details are
    only exposed in debug mode.
    """
    logger.error(f"Unexpected error: {exc}", exc_info=True)

    settings = getattr(request.app.state, "settings", None)
    message = (
        str(exc)
        if settings is not None and settings.debug
        else "An unexpected error occurred. Please contact support."
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(request, "INTERNAL_ERROR", message, {}),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
