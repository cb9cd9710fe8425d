"""
Domain exceptions and global exception handlers for the FastAPI application.
Serializes exceptions into structured logs and a stable JSON error envelope.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
from typing import Any

from ledgercrm.core.integrations.observability import record_exception


logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""
    default_code = "APP_ERROR"
    default_status = 500

    def __init__(
        self,
        message: str,
        status_code: int = None,
        details: Any = None,
        code: str = None,
    ):
        self.message = message
        self.status_code = status_code or self.default_status
        self.details = details
        self.code = code or self.default_code
        super().__init__(self.message)


class ValidationError(AppException):
    """Malformed input; raised before any external call is made."""
    default_code = "VALIDATION_ERROR"
    default_status = 422


class NotFoundError(AppException):
    """Referenced entity is absent or belongs to another organization."""
    default_code = "NOT_FOUND"
    default_status = 404


class PreconditionFailedError(AppException):
    """Operation would violate a domain invariant."""
    default_code = "PRECONDITION_FAILED"
    default_status = 412


class ConflictError(AppException):
    """Duplicate operation."""
    default_code = "CONFLICT"
    default_status = 409


class InvalidStateError(AppException):
    """Entity is not in a state that allows the operation."""
    default_code = "INVALID_STATE"
    default_status = 409


class RateLimitError(AppException):
    """Outbound call budget exhausted."""
    default_code = "RATE_LIMITED"
    default_status = 429


class ServiceUnavailableError(AppException):
    """External registry unreachable or timed out."""
    default_code = "SERVICE_UNAVAILABLE"
    default_status = 503


class RegistryUnavailableError(Exception):
    """Transport failure or timeout talking to an external registry. Never reaches the API."""

    def __init__(self, registry: str, reason: str, timed_out: bool = False):
        self.registry = registry
        self.reason = reason
        self.timed_out = timed_out
        super().__init__(f"{registry} unavailable: {reason}")


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle custom application exceptions."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"Application exception: {exc.message}",
        extra={
            "code": exc.code,
            "status_code": exc.status_code,
            "path": request.url.path,
            "details": exc.details,
        },
    )

    if exc.status_code >= 500:
        record_exception(exc, request)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "details": exc.details,
                "path": request.url.path,
            }
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions."""
    logger.warning(
        f"HTTP exception: {exc.detail}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": "HTTP_ERROR",
                "message": exc.detail,
                "status_code": exc.status_code,
                "path": request.url.path,
            }
        },
        headers=getattr(exc, "headers", None),
    )


def _serialize_validation_errors(errors: list) -> list:
    """Convert validation errors to JSON-serializable format."""
    serialized = []
    for error in errors:
        serialized_error = {}
        for key, value in error.items():
            if key == "ctx" and isinstance(value, dict):
                # Context may contain non-serializable objects like ValueError
                serialized_ctx = {}
                for ctx_key, ctx_value in value.items():
                    if isinstance(ctx_value, Exception):
                        serialized_ctx[ctx_key] = str(ctx_value)
                    else:
                        serialized_ctx[ctx_key] = ctx_value
                serialized_error[key] = serialized_ctx
            elif isinstance(value, Exception):
                serialized_error[key] = str(value)
            else:
                serialized_error[key] = value
        serialized.append(serialized_error)
    return serialized


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors."""
    serialized_errors = _serialize_validation_errors(exc.errors())

    logger.warning(
        f"Validation error: {serialized_errors}",
        extra={
            "path": request.url.path,
            "errors": serialized_errors,
        },
    )

    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": ValidationError.default_code,
                "message": "Validation error",
                "details": serialized_errors,
                "path": request.url.path,
            }
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception(
        f"Unhandled exception: {str(exc)}",
        extra={
            "path": request.url.path,
            "exception_type": type(exc).__name__,
        },
    )

    record_exception(exc, request)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": AppException.default_code,
                "message": "Internal server error",
                "path": request.url.path,
            }
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
