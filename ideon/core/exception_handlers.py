"""Error responses and global exception handlers.

Every error leaving the API has the same shape::

    {"error": {"code": ..., "message": ..., "request_id": ..., "details": ...}}

Design:
- AppError subclasses → the HTTP status of their ``ErrorKind``
- Request validation failures → 400
- Unexpected Exception → generic 500, detail only in server logs

The action guards build their responses with the same helpers, so a failure
looks identical whether it is caught by a guard or by the app-wide handlers.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ideon.core.container import get_settings
from ideon.core.errors import AppError, ErrorKind, RateLimitedAppError, ValidationAppError
from ideon.core.logging import get_request_id

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."


def _rate_limit_headers(exc: RateLimitedAppError, include: bool) -> dict[str, str]:
    if not include or not exc.details:
        return {}
    details = exc.details
    headers = {"Retry-After": str(details.get("retry_after", 0))}
    if "limit" in details:
        headers["X-RateLimit-Limit"] = str(details["limit"])
    if "remaining" in details:
        headers["X-RateLimit-Remaining"] = str(details["remaining"])
    if "reset_at" in details:
        headers["X-RateLimit-Reset"] = str(details["reset_at"])
    return headers


def app_error_response(exc: AppError, *, include_rate_limit_headers: bool = True) -> JSONResponse:
    """Render a domain error with the status bound to its kind.

    Args:
        exc: The domain error to render.
        include_rate_limit_headers: Add Retry-After and X-RateLimit-* headers to 429s.
    """
    status_code = exc.http_status

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
        },
    )

    error_content: dict[str, Any] = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = jsonable_encoder(exc.details)

    headers = None
    if isinstance(exc, RateLimitedAppError):
        headers = _rate_limit_headers(exc, include_rate_limit_headers)

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers or None,
    )


def internal_error_response(exc: Exception, *, path: str, method: str) -> JSONResponse:
    """Log an unexpected failure and return a generic 500 without its detail."""
    logger.error(
        "unhandled_exception",
        exc_info=exc,
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": path,
            "request_method": method,
        },
    )

    return JSONResponse(
        status_code=ErrorKind.INTERNAL.http_status,
        content={
            "error": {
                "code": ErrorKind.INTERNAL.default_code,
                "message": INTERNAL_ERROR_MESSAGE,
                "request_id": get_request_id(),
            }
        },
    )


def validation_error(errors: list[Any]) -> ValidationAppError:
    """Convert pydantic/FastAPI error entries into a 400 domain error."""
    cleaned = [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in errors
    ]
    message = cleaned[0]["msg"] if cleaned else "Invalid request body"
    return ValidationAppError(
        code=ErrorKind.VALIDATION.default_code,
        message=message,
        details={"errors": cleaned},
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    include = get_settings(request).rate_limit.include_headers
    return app_error_response(exc, include_rate_limit_headers=include)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return app_error_response(validation_error(list(exc.errors())))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net)."""
    return internal_error_response(exc, path=request.url.path, method=request.method)


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(RequestValidationError)(request_validation_handler)
    app.exception_handler(Exception)(general_exception_handler)
