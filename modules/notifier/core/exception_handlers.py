"""
Exception Handlers.

Convert exceptions raised while serving a request into the ErrorResponse
envelope. Status codes are resolved through the exception's MRO, so
InvalidTransitionError answers 409 through ConflictError unless mapped itself.

Queue connectivity failures are not reported through the unhandled-exception
log; the health monitor has already logged the transition once. They become
a 503 with a debug line.

Usage:
    app = FastAPI()
    register_exception_handlers(app)
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from modules.notifier.core.config import get_app_config
from modules.notifier.core.exceptions import (
    ApplicationError,
    AttemptsExhaustedError,
    ConflictError,
    DatabaseError,
    ExternalServiceError,
    InvalidTransitionError,
    NotFoundError,
    QueueUnavailableError,
    TemplateError,
    ValidationError,
)
from modules.notifier.core.logging import get_logger
from modules.notifier.schemas.base import ErrorDetail, ErrorResponse, ResponseMetadata

logger = get_logger(__name__)

EXCEPTION_STATUS_MAP: dict[type[ApplicationError], int] = {
    NotFoundError: 404,
    ValidationError: 400,
    ConflictError: 409,
    TemplateError: 500,
    QueueUnavailableError: 503,
    ExternalServiceError: 502,
    DatabaseError: 503,
}

CONNECTIVITY_ERRORS: tuple[type[Exception], ...] = (
    QueueUnavailableError,
    RedisConnectionError,
    RedisTimeoutError,
)


def resolve_status_code(exc: ApplicationError) -> int:
    for cls in type(exc).__mro__:
        if cls in EXCEPTION_STATUS_MAP:
            return EXCEPTION_STATUS_MAP[cls]
    return 500


def error_details(exc: ApplicationError) -> dict[str, Any] | None:
    """Client-facing details. Server errors never expose internals."""
    if isinstance(exc, ValidationError):
        return exc.details or None
    if isinstance(exc, InvalidTransitionError):
        return {
            "notification_id": exc.notification_id,
            "current_status": exc.current,
            "requested_status": exc.requested,
        }
    if isinstance(exc, AttemptsExhaustedError):
        return {
            "notification_id": exc.notification_id,
            "attempts": exc.attempts,
            "max_attempts": exc.max_attempts,
        }
    return None


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or request.headers.get("x-request-id")


def _log_context(request: Request, **extra: Any) -> dict[str, Any]:
    return {
        "path": request.url.path,
        "method": request.method,
        "request_id": _request_id(request),
        **extra,
    }


def _error_response(request: Request, status_code: int, error: ErrorDetail) -> JSONResponse:
    response = ErrorResponse(error=error, metadata=ResponseMetadata(request_id=_request_id(request)))
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))


async def application_error_handler(request: Request, exc: ApplicationError) -> JSONResponse:
    status_code = resolve_status_code(exc)
    log_extra = _log_context(request, code=exc.code, message=exc.message, status=status_code)

    if isinstance(exc, CONNECTIVITY_ERRORS):
        logger.debug("Queue backend unavailable", extra=log_extra)
    elif status_code >= 500:
        logger.error("Server error", extra=log_extra)
    else:
        logger.warning("Client error", extra=log_extra)

    return _error_response(
        request,
        status_code,
        ErrorDetail(code=exc.code, message=exc.message, details=error_details(exc)),
    )


async def connectivity_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Raw Redis errors that escaped the dispatch fallback."""
    logger.debug(
        "Queue backend unavailable",
        extra=_log_context(request, exception_type=type(exc).__name__),
    )
    return _error_response(
        request,
        503,
        ErrorDetail(code="QUEUE_UNAVAILABLE", message="Queue backend unavailable"),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """FastAPI/Pydantic request validation errors (path, query and body)."""
    errors = exc.errors()
    logger.warning(
        "Request validation failed",
        extra=_log_context(request, error_count=len(errors)),
    )
    details = {
        "validation_errors": [
            {
                "field": ".".join(str(loc) for loc in err.get("loc", [])),
                "message": err.get("msg", "Validation error"),
                "type": err.get("type", "unknown"),
            }
            for err in errors
        ]
    }
    return _error_response(
        request,
        422,
        ErrorDetail(code="VAL_REQUEST_INVALID", message="Request validation failed", details=details),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Generic 500. The exception is only described when api_detailed_errors is on."""
    logger.exception(
        "Unhandled exception",
        extra=_log_context(request, exception_type=type(exc).__name__),
    )
    details = None
    if get_app_config().features.api_detailed_errors:
        details = {"exception_type": type(exc).__name__, "error": str(exc)}
    return _error_response(
        request,
        500,
        ErrorDetail(code="SYS_INTERNAL_ERROR", message="An unexpected error occurred", details=details),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApplicationError, application_error_handler)
    app.add_exception_handler(RedisConnectionError, connectivity_error_handler)
    app.add_exception_handler(RedisTimeoutError, connectivity_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
