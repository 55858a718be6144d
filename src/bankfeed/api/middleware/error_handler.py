"""Global error handling middleware.

This module provides consistent error responses across all API endpoints.
All exceptions are caught and converted to a standardized JSON format with
appropriate HTTP status codes.
"""

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from bankfeed.config import settings
from bankfeed.core.errors import get_error
from bankfeed.core.exceptions import BankFeedError

logger = logging.getLogger(__name__)


async def handle_bank_feed_error(request: Request, exc: BankFeedError) -> JSONResponse:
    """Handle custom bank feed exceptions.

    Args:
        request: The incoming request
        exc: The bank feed exception

    Returns:
        JSONResponse with error details from catalog
    """
    error_info = get_error(exc.error_code)

    # Provider responses and token details stay out of non-debug logs.
    extra = {"error_code": exc.error_code, "path": request.url.path, "method": request.method}
    if settings.debug:
        extra["details"] = exc.details

    log = logger.error if exc.http_status >= 500 else logger.warning
    log(f"Bank feed error: {exc.error_code}", extra=extra)

    return JSONResponse(
        status_code=exc.http_status,
        content={
            "error_code": exc.error_code,
            "message": error_info.get("message", str(exc)),
            "user_message": exc.user_message or error_info.get("user_message", "An error occurred"),
            "suggestion": error_info.get("suggestion", "Please try again later"),
            "retry_allowed": error_info.get("retry_allowed", False),
        },
    )


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors.

    Args:
        request: The incoming request
        exc: The validation error

    Returns:
        JSONResponse with validation error details
    """
    errors = exc.errors()
    error_messages = []

    for error in errors:
        field = ".".join(str(x) for x in error.get("loc", []))
        msg = error.get("msg", "Invalid value")
        error_messages.append(f"{field}: {msg}")

    extra = {"path": request.url.path, "method": request.method}
    if settings.debug:
        extra["errors"] = errors
    logger.warning(f"Validation error on {request.url.path}", extra=extra)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error_code": "VAL_001",
            "message": " | ".join(error_messages),
            "user_message": "Invalid input data",
            "suggestion": "Please check your input and try again",
            "retry_allowed": True,
        },
    )


async def handle_integrity_error(
    request: Request, exc: IntegrityError
) -> JSONResponse:
    """Handle database integrity errors.

    Args:
        request: The incoming request
        exc: The integrity error

    Returns:
        JSONResponse with error details
    """
    # Do not log str(exc): it can include SQL + bound parameters.
    if settings.debug:
        logger.exception(
            f"Database integrity error on {request.url.path}",
            extra={"path": request.url.path, "method": request.method},
        )
    else:
        logger.error(
            f"Database integrity error on {request.url.path}",
            extra={"path": request.url.path, "method": request.method},
        )

    error_msg = str(exc).lower()
    if "unique" in error_msg or "duplicate" in error_msg:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "error_code": "DB_002",
                "message": "Bank feed record already exists",
                "user_message": "This transaction, rule or webhook event has already been recorded",
                "suggestion": "Refresh the page to see the existing record",
                "retry_allowed": False,
            },
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "DB_001",
            "message": "Bank feed database operation failed",
            "user_message": "The bank feed could not be updated",
            "suggestion": "Please try again later. Transactions already imported are not affected",
            "retry_allowed": True,
        },
    )


async def handle_generic_error(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions.

    Args:
        request: The incoming request
        exc: The unexpected exception

    Returns:
        JSONResponse with generic error message
    """
    # In non-debug: do not log str(exc) or traceback (may include tokens).
    if settings.debug:
        logger.exception(
            f"Unexpected error on {request.url.path}",
            extra={
                "error_type": type(exc).__name__,
                "path": request.url.path,
                "method": request.method,
            },
        )
    else:
        logger.error(
            f"Unexpected error on {request.url.path}",
            extra={
                "error_type": type(exc).__name__,
                "path": request.url.path,
                "method": request.method,
            },
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "SYS_001",
            "message": "Internal server error",
            "user_message": "An unexpected error occurred",
            "suggestion": "Please try again later or contact support",
            "retry_allowed": True,
        },
    )
