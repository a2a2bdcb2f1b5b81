"""Global exception handlers for standardized error responses.

Catches HTTPException, RequestValidationError, store failures and unhandled
exceptions to return a consistent JSON error format.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gitcache.middleware.error_codes import ErrorCode, get_error_code
from gitcache.services.exceptions import StoreError

logger = logging.getLogger("gitcache.exception")


def build_error_response(
    status_code: int,
    code: ErrorCode,
    message: str,
    details: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    """Build standardized error response."""
    body: dict[str, Any] = {
        "success": False,
        "error": {
            "code": code.value,
            "message": message,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if details:
        body["error"]["details"] = details

    return JSONResponse(status_code=status_code, content=body)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTPException with standardized format."""
    if exc.status_code >= 500:
        logger.error(
            "HTTPException status=%s detail=%s path=%s",
            exc.status_code,
            exc.detail,
            request.url.path,
        )

    return build_error_response(
        status_code=exc.status_code,
        code=get_error_code(exc.status_code),
        message=str(exc.detail),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with field-level details."""
    details = []
    for error in exc.errors():
        loc = " -> ".join(str(x) for x in error.get("loc", []))
        details.append(
            {
                "field": loc,
                "message": error.get("msg", "Invalid value"),
                "type": error.get("type", "value_error"),
            }
        )

    return build_error_response(
        status_code=422,
        code=ErrorCode.VALIDATION_ERROR,
        message="Validation error: Please check your request data",
        details=details,
    )


async def store_exception_handler(request: Request, exc: StoreError) -> JSONResponse:
    """The durable store is unreachable or rejected the operation."""
    logger.error("Store failure path=%s error=%s", request.url.path, exc)
    return build_error_response(
        status_code=503,
        code=ErrorCode.STORE_UNAVAILABLE,
        message="Repository cache store is unavailable. Please try again later.",
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions - returns 500 with minimal info."""
    logger.exception("Unhandled exception path=%s", request.url.path)

    return build_error_response(
        status_code=500,
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StoreError, store_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
