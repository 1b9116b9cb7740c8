"""Global exception handler for consistent error responses.

Design:
- Limiter failures never reach routes; the admission controller absorbs them
- Unexpected Exception → generic 500 (safety net)
- Responses include request_id for tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from gatekeeper.core.logging import get_request_id

logger = logging.getLogger(__name__)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors; never leaks internals."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register the exception handlers with the FastAPI app."""
    app.exception_handler(Exception)(general_exception_handler)
