"""Global exception handlers for consistent error responses.

Design:
- GateError subclasses → their pinned status (405, 400, 413, 429) plus
  extra headers such as Retry-After
- ValidationAppError → 400, LLMAppError → 500
- Unexpected Exception → generic 500 with a fresh correlation id, audited
  as SECURITY_ERROR (safety net; exception text never reaches the client)
- Every error response carries the CORS headers of the protected functions
"""

import logging
import traceback
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from coach_gateway.core.audit import SecurityEventKind, get_auditor
from coach_gateway.core.cors import cors_headers_for
from coach_gateway.core.errors import AppError, GateError, LLMAppError
from coach_gateway.core.gate import extract_client_ip
from coach_gateway.core.logging import get_request_id

logger = logging.getLogger(__name__)

STACK_MAX_CHARS = 500


def _error_body(code: str, message: str, request_id: str | None, details=None) -> dict:
    error_content = {
        "code": code,
        "message": message,
        "request_id": request_id,
    }
    if details:
        error_content["details"] = details
    return {"error": error_content}


async def gate_error_handler(request: Request, exc: GateError) -> JSONResponse:
    """Render a gate rejection (already audited by the gate)."""
    headers = cors_headers_for(request)
    headers.update(exc.response_headers())

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.code, exc.message, get_request_id(), exc.details),
        headers=headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    - ValidationAppError (and any other AppError) → 400 Bad Request
    - LLMAppError → 500 Internal Server Error

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with appropriate status code and error details.
    """
    status_code = 500 if isinstance(exc, LLMAppError) else 400

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=status_code,
        content=_error_body(exc.code, exc.message, get_request_id(), exc.details),
        headers=cors_headers_for(request),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs and audits a truncated stack trace under a freshly generated
    correlation id, and returns only that id with a generic message.

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with generic error (no implementation details leaked).
    """
    correlation_id = str(uuid.uuid4())
    stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))[:STACK_MAX_CHARS]

    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "correlation_id": correlation_id,
        },
    )

    await get_auditor().emit(
        SecurityEventKind.SECURITY_ERROR,
        {
            "error_type": type(exc).__name__,
            "error": str(exc),
            "stack": stack,
            "correlation_id": correlation_id,
        },
        client_ip=extract_client_ip(request.headers),
    )

    return JSONResponse(
        status_code=500,
        content=_error_body(
            "internal_server_error",
            "An unexpected error occurred. Please try again later.",
            correlation_id,
        ),
        headers=cors_headers_for(request),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Starlette resolves handlers by walking the exception's MRO, so the
    GateError handler wins over the AppError one for gate rejections.
    """
    app.exception_handler(GateError)(gate_error_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
