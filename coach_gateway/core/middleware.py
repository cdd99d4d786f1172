"""HTTP middleware for request correlation.

Every request/response pair carries a correlation id so that gate
rejections, audit writes and handler logs can be joined later:

- Accepts an incoming X-Request-ID header (configurable) or generates a UUID
- Stores it in contextvars for the logging filters
- Echoes it on the response together with the total handling time

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from coach_gateway.core.config import settings
from coach_gateway.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Bind a correlation id to the request and time its handling.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response with the correlation id and X-Request-Duration-ms headers.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
