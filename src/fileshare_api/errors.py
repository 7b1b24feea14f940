"""Application error taxonomy and the FastAPI handlers that render it."""

import logging
from typing import Any, Optional

import pydantic
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from fileshare_api.responses import error_response

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map onto a fixed HTTP status and error code."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int,
        is_operational: bool = True,
        details: Optional[Any] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.is_operational = is_operational
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class AuthenticationError(AppError):
    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Any] = None,
        code: str = "AUTHENTICATION_ERROR",
    ):
        super().__init__(code, message, status.HTTP_401_UNAUTHORIZED, True, details)


class AuthorizationError(AppError):
    def __init__(self, message: str = "Access denied", details: Optional[Any] = None):
        super().__init__("AUTHORIZATION_ERROR", message, status.HTTP_403_FORBIDDEN, True, details)


class ValidationError(AppError):
    def __init__(self, message: str = "Validation failed", details: Optional[Any] = None):
        super().__init__("VALIDATION_ERROR", message, status.HTTP_400_BAD_REQUEST, True, details)


class NotFoundError(AppError):
    def __init__(self, resource: str = "Resource", details: Optional[Any] = None):
        super().__init__("NOT_FOUND", f"{resource} not found", status.HTTP_404_NOT_FOUND, True, details)


class ConflictError(AppError):
    def __init__(self, message: str = "Resource conflict", details: Optional[Any] = None):
        super().__init__("CONFLICT", message, status.HTTP_409_CONFLICT, True, details)


class DatabaseError(AppError):
    def __init__(self, message: str = "Database operation failed", details: Optional[Any] = None):
        super().__init__(
            "DATABASE_ERROR", message, status.HTTP_500_INTERNAL_SERVER_ERROR, True, details
        )


class ExternalServiceError(AppError):
    def __init__(
        self,
        service: str,
        message: str = "External service error",
        details: Optional[Any] = None,
    ):
        super().__init__(
            "EXTERNAL_SERVICE_ERROR", f"{service}: {message}", status.HTTP_502_BAD_GATEWAY, True, details
        )


class InternalServerError(AppError):
    def __init__(self, message: str = "Internal server error", details: Optional[Any] = None):
        super().__init__(
            "INTERNAL_ERROR", message, status.HTTP_500_INTERNAL_SERVER_ERROR, False, details
        )


class FileProcessingError(AppError):
    def __init__(self, message: str = "File processing failed", details: Optional[Any] = None):
        super().__init__(
            "FILE_PROCESSING_ERROR", message, status.HTTP_400_BAD_REQUEST, True, details
        )


class RateLimitError(AppError):
    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Any] = None):
        super().__init__(
            "RATE_LIMIT_ERROR", message, status.HTTP_429_TOO_MANY_REQUESTS, True, details
        )


async def handle_app_errors(request: Request, exc: AppError) -> JSONResponse:
    """Render any `AppError` as `{error, message, details?}` with its own status code."""
    log = logger.warning if exc.is_operational else logger.error
    log("%s %s failed with %s: %s", request.method, request.url.path, exc.code, exc.message)
    return error_response(exc.to_dict(), status_code=exc.status_code)


async def handle_pydantic_validation_errors(
    request: Request, exc: pydantic.ValidationError | RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    return error_response(
        {
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": [
                {"msg": error["msg"], "input": error.get("input"), "loc": list(error.get("loc", ()))}
                for error in errors
            ],
        },
        status_code=status.HTTP_400_BAD_REQUEST,
    )


async def handle_broad_exceptions(request: Request, call_next):
    """Handle any exception that propagates during the request without leaking internals."""
    try:
        return await call_next(request)
    except Exception:  # pylint: disable=broad-except
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(
            InternalServerError("An unexpected error occurred").to_dict(),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
