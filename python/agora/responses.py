"""API response envelope helpers and exception handlers.

All API responses use a consistent envelope:
- Success: { "success": true, "data": ..., "message"?: "...", "pagination"?: {...} }
- Error: { "success": false, "error": "...", "code": "E_...", "request_id"?: "...",
           "errors"?: [{"field": "...", "message": "..."}] }

The request_id is included in error responses for debugging and support.
"""

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from agora.config import get_settings
from agora.errors import ApiError, ApiErrorCode
from agora.logging import get_logger, get_request_id

logger = get_logger(__name__)


def success_response(
    data: Any,
    message: str | None = None,
    pagination: dict[str, int] | None = None,
) -> dict[str, Any]:
    """Create a success response envelope.

    Args:
        data: The response data to wrap.
        message: Optional human-readable confirmation.
        pagination: Optional {"limit", "offset"} echo for list endpoints.

    Returns:
        Dict with "success" and "data" keys.
    """
    body: dict[str, Any] = {"success": True, "data": data}
    if message is not None:
        body["message"] = message
    if pagination is not None:
        body["pagination"] = pagination
    return body


def error_response(
    code: ApiErrorCode,
    message: str,
    request_id: str | None = None,
    errors: list[dict[str, str]] | None = None,
) -> dict[str, Any]:
    """Create an error response envelope.

    Args:
        code: The error code enum value.
        message: Human-readable error message.
        request_id: Optional request ID for correlation (auto-populated from context if None).
        errors: Optional per-field validation failures.

    Returns:
        Dict with "success": false, "error" message, and "code".
    """
    if request_id is None:
        request_id = get_request_id()

    body: dict[str, Any] = {"success": False, "error": message, "code": code.value}
    if request_id:
        body["request_id"] = request_id
    if errors:
        body["errors"] = errors

    return body


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Handle ApiError exceptions and return proper JSON response."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message),
    )


async def http_exception_handler(request: Request, exc: Any) -> JSONResponse:
    """Handle Starlette HTTPException (unknown routes, bad methods)."""
    status_to_code = {
        400: ApiErrorCode.E_INVALID_REQUEST,
        401: ApiErrorCode.E_UNAUTHENTICATED,
        403: ApiErrorCode.E_FORBIDDEN,
        404: ApiErrorCode.E_NOT_FOUND,
        405: ApiErrorCode.E_INVALID_REQUEST,
        422: ApiErrorCode.E_INVALID_REQUEST,
    }
    code = status_to_code.get(exc.status_code, ApiErrorCode.E_INTERNAL)
    message = str(exc.detail) if exc.detail else "An error occurred"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(code, message),
    )


def _field_path(loc: tuple | list) -> str:
    # Drop the "body" / "query" / "path" prefix FastAPI puts first
    parts = [str(p) for p in loc[1:]] if len(loc) > 1 else [str(p) for p in loc]
    return ".".join(parts)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation errors (including malformed JSON).

    Returns 400 with one entry per failing field.
    """
    errors = []
    for err in exc.errors():
        message = err.get("msg", "Invalid value")
        # pydantic prefixes custom ValueError messages
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        errors.append({"field": _field_path(err.get("loc", ())), "message": message})

    return JSONResponse(
        status_code=400,
        content=error_response(
            ApiErrorCode.E_INVALID_REQUEST, "Validation failed", errors=errors or None
        ),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Map a uniqueness or foreign-key violation that escaped a service to 409."""
    logger.warning("integrity_error", path=request.url.path, error_class=type(exc.orig).__name__)
    return JSONResponse(
        status_code=409,
        content=error_response(ApiErrorCode.E_CONFLICT, "Resource already exists"),
    )


async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle database failures that escaped a service."""
    logger.error("storage_error", path=request.url.path, error_class=type(exc).__name__)
    message = "Storage failure"
    if get_settings().is_development:
        message = f"Storage failure: {exc}"
    return JSONResponse(
        status_code=500,
        content=error_response(ApiErrorCode.E_STORAGE_ERROR, message),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions and return 500 with E_INTERNAL.

    Logs the exception server-side. The exception text reaches the client
    only in local development.
    """
    logger.exception("unhandled_exception", path=request.url.path)

    message = "Internal server error"
    if get_settings().is_development:
        message = f"Internal server error: {exc}"
    return JSONResponse(
        status_code=500,
        content=error_response(ApiErrorCode.E_INTERNAL, message),
    )
