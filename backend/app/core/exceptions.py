"""Application exceptions and their HTTP rendering.

Services raise these; the handlers registered in main.py turn them into
``{"success": false, "error": {...}}`` responses.
"""

import logging
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.logging import get_correlation_id

logger = logging.getLogger(__name__)


class ErrorCodes:
    """Standard error codes returned to API clients."""
    NOT_FOUND = "NOT_FOUND"
    BAD_REQUEST = "BAD_REQUEST"
    CONFLICT = "CONFLICT"
    FORBIDDEN = "FORBIDDEN"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    PIX_KEY_NOT_CONFIGURED = "PIX_KEY_NOT_CONFIGURED"
    PAYMENT_PROVIDER_ERROR = "PAYMENT_PROVIDER_ERROR"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 400
    default_code: str = ErrorCodes.BAD_REQUEST

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.context = context or {}
        super().__init__(message)


class BadRequestError(AppError):
    status_code = 400
    default_code = ErrorCodes.BAD_REQUEST


class ForbiddenError(AppError):
    status_code = 403
    default_code = ErrorCodes.FORBIDDEN


class NotFoundError(AppError):
    status_code = 404
    default_code = ErrorCodes.NOT_FOUND


class ConflictError(AppError):
    status_code = 409
    default_code = ErrorCodes.CONFLICT


class InsufficientBalanceError(BadRequestError):
    default_code = ErrorCodes.INSUFFICIENT_BALANCE


class PaymentProviderError(AppError):
    """Provider failure surfaced to callers without provider internals."""
    status_code = 502
    default_code = ErrorCodes.PAYMENT_PROVIDER_ERROR


class ConfigurationError(AppError):
    status_code = 500
    default_code = ErrorCodes.CONFIGURATION_ERROR


def create_error_response(
    status_code: int,
    code: str,
    message: str,
    context: Optional[dict[str, Any]] = None,
) -> JSONResponse:
    """Build the standard error envelope."""
    error: dict[str, Any] = {"code": code, "message": message}
    if context:
        error["context"] = context
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "correlation_id": get_correlation_id(),
        },
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError raised anywhere below a route."""
    if exc.status_code >= 500:
        logger.error(
            f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
            extra={"error_code": exc.code, **exc.context},
        )
    else:
        logger.info(
            f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
            extra={"error_code": exc.code},
        )
    return create_error_response(exc.status_code, exc.code, exc.message, exc.context or None)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler; never leaks internals to the caller."""
    logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    return create_error_response(
        500,
        ErrorCodes.INTERNAL_SERVER_ERROR,
        "An unexpected error occurred",
    )
