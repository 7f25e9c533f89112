"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a correlation id so rate limit
decisions, AI calls and errors for one request can be tied together in logs.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from app.core.config import settings
from app.core.logging import clear_request_id, set_request_id

_MAX_REQUEST_ID_LENGTH = 128


def _incoming_request_id(request: Request, header_name: str) -> str:
    """Reuse a sane client-supplied id, otherwise mint a UUID."""
    value = request.headers.get(header_name, "").strip()
    if value and len(value) <= _MAX_REQUEST_ID_LENGTH and value.isprintable():
        return value
    return str(uuid.uuid4())


async def request_id_middleware(request: Request, call_next) -> Response:
    """Attach a request id to the context, the logs and the response.

    Side Effects:
        - Sets request_id in contextvars (accessible via get_request_id())
        - Clears request_id from contextvars after request completes
        - Adds the request id header and X-Request-Duration-ms to the response
    """

    header_name = settings.log.request_id_header
    request_id = _incoming_request_id(request, header_name)
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
