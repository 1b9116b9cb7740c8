"""HTTP middleware for request correlation and admission control.

``request_id_middleware`` accepts an incoming request id header (or
generates a UUID), stores it in contextvars for log correlation and echoes it
on the response together with the request duration.

``rate_limit_middleware`` asks the application's admission controller for a
decision and answers 429 when the request is denied.

Usage:
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from gatekeeper.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_ID_HEADER = "X-Request-ID"
RATE_LIMIT_REASON_HEADER = "X-RateLimit-Reason"


async def request_id_middleware(request: Request, call_next) -> Response:
    """Propagate a correlation id for the duration of the request.

    Side Effects:
        - Sets request_id in contextvars (accessible via get_request_id())
        - Clears request_id from contextvars after the request completes
        - Adds the request id header and X-Request-Duration-ms to the response
    """

    header_name = getattr(request.app.state, "request_id_header", DEFAULT_REQUEST_ID_HEADER)
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


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """Enforce the admission decision for every inbound request.

    The controller is synchronous and may wait on Redis up to its timeout, so
    it runs in the threadpool rather than on the event loop.
    """

    controller = getattr(request.app.state, "admission", None)
    if controller is None:
        return await call_next(request)

    path = request.url.path
    decision = await run_in_threadpool(controller.admit, path)
    if decision.allowed:
        return await call_next(request)

    logger.warning(
        "rate_limit.denied",
        extra={
            "path": path,
            "method": request.method,
            "reason": decision.reason.value,
        },
    )
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"error": "Too Many Requests", "message": decision.message},
        headers={RATE_LIMIT_REASON_HEADER: decision.reason.value},
    )
