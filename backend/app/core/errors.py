"""Error handling and consistent error response format."""

from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.common.request_id import get_request_id
from app.core.app_exceptions import AppError, AuthServiceError
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "An internal server error occurred"


class ErrorResponse(BaseModel):
    """Error response envelope.

    Format: {error, code, details, request_id}. ``error`` is the short
    user-facing message; ``details`` is only populated for validation errors
    and rate limiting.
    """

    error: str
    code: str
    details: Any | None = None
    request_id: str | None = None


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=message,
            code=code,
            details=details,
            request_id=get_request_id(request),
        ).model_dump(exclude_none=True),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation errors (400)."""
    details: list[dict[str, Any]] = []
    for error in exc.errors():
        details.append(
            {
                "field": ".".join(str(loc) for loc in error.get("loc", []) if loc != "body"),
                "issue": error.get("msg", "Validation error"),
                "type": error.get("type", "validation_error"),
            }
        )

    return _error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "VALIDATION_ERROR",
        "Invalid request data",
        details=details,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions (including routing 404/405)."""
    if isinstance(exc, AppError):
        response = _error_response(request, exc.status_code, exc.code, exc.message, exc.details)
        # Add Retry-After header for rate limiting
        if (
            exc.status_code == status.HTTP_429_TOO_MANY_REQUESTS
            and isinstance(exc.details, dict)
            and exc.details.get("retry_after_seconds")
        ):
            response.headers["Retry-After"] = str(exc.details["retry_after_seconds"])
        return response

    code = "HTTP_ERROR"
    details = None
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code", code)
        message = exc.detail.get("message", "An error occurred")
        details = exc.detail.get("details")
    elif isinstance(exc.detail, str):
        message = exc.detail
    else:
        message = str(exc.detail)

    response = _error_response(request, exc.status_code, code, message, details)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def auth_service_exception_handler(request: Request, exc: AuthServiceError) -> JSONResponse:
    """Handle classified service errors raised by the auth flows."""
    if exc.status_code >= 500:
        logger.error(
            "Auth service failure",
            extra={
                "request_id": get_request_id(request),
                "error_code": exc.code,
                "cause": repr(exc.cause) if exc.cause else None,
            },
        )
    return _error_response(request, exc.status_code, exc.code, exc.message)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions (500)."""
    logger.error(
        "Unhandled exception",
        extra={"request_id": get_request_id(request), "error_type": type(exc).__name__},
        exc_info=exc,
    )

    # Internal details only reach local development and test callers
    if settings.ENV in ("dev", "test"):
        message = str(exc) or INTERNAL_ERROR_MESSAGE
        details = {"type": type(exc).__name__}
    else:
        message = INTERNAL_ERROR_MESSAGE
        details = None

    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        message,
        details,
    )
