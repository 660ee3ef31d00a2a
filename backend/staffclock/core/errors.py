"""Error taxonomy and the JSON error envelope.

Services raise these exceptions; the handlers registered in ``install_error_handlers``
turn them into ``{"success": false, "error": ..., "details"?: ...}`` responses.
``details`` is only emitted outside production.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from staffclock.core.config import settings
from staffclock.core.logging import get_logger

logger = get_logger(__name__)


class StaffClockError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, details: str | None = None) -> None:
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


class InvalidCredentials(StaffClockError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid credentials"


class Forbidden(StaffClockError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Access denied"


class NotFound(StaffClockError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Resource not found"


class AlreadyActiveError(StaffClockError):
    status_code = status.HTTP_409_CONFLICT
    message = "Already clocked in"


class NoActiveEntryError(StaffClockError):
    status_code = status.HTTP_409_CONFLICT
    message = "No active clock-in found"


class ValidationError(StaffClockError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Validation failed"


class RateLimited(StaffClockError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Too many requests, please try again later"


def error_body(message: str, details: Any = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": message}
    if details is not None and not settings.is_production:
        body["details"] = details if isinstance(details, str) else str(details)
    return body


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


async def handle_staffclock_error(request: Request, exc: StaffClockError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request_failed",
        path=request.url.path,
        error=exc.__class__.__name__,
        status_code=exc.status_code,
        message=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.details))


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = _format_validation_errors(exc)
    logger.info("request_validation_failed", path=request.url.path, details=details)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(ValidationError.message, details),
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == status.HTTP_404_NOT_FOUND and message == "Not Found":
        message = "Route not found"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message),
        headers=getattr(exc, "headers", None),
    )


def handle_rate_limit(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("rate_limited", path=request.url.path, limit=str(exc.detail))
    return JSONResponse(
        status_code=RateLimited.status_code,
        content=error_body(RateLimited.message, exc.detail),
    )


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path, error=exc.__class__.__name__)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error", str(exc)),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StaffClockError, handle_staffclock_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RateLimitExceeded, handle_rate_limit)
    app.add_exception_handler(Exception, handle_unexpected)
