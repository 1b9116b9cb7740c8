"""Application factory for the FastAPI app.

Centralizes app construction (logging, limiter, middleware, handlers,
routers) so tests can build isolated instances with their own settings.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from gatekeeper.api.routes import health_router, hello_router
from gatekeeper.core.config import Settings, settings
from gatekeeper.core.exception_handlers import setup_exception_handlers
from gatekeeper.core.logging import configure_logging
from gatekeeper.core.middleware import rate_limit_middleware, request_id_middleware
from gatekeeper.services.admission import AdmissionController, build_admission_controller


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    app.state.admission.close()


def create_app(
    app_settings: Settings | None = None,
    *,
    admission: AdmissionController | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to build from; defaults to the global settings.
        admission: Pre-built controller, mainly for tests.

    Returns:
        Configured app whose limiter lives on ``app.state.admission``.
    """
    cfg = app_settings or settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    app = FastAPI(
        title="Gatekeeper",
        description="Hello service protected by a Redis-backed rate limiter with local fallback.",
        version="0.1.0",
        lifespan=_lifespan,
    )
    app.state.admission = admission or build_admission_controller(cfg)
    app.state.request_id_header = cfg.log.request_id_header

    # Last registered runs first: request ids also cover 429 responses
    if cfg.rate_limit.enabled:
        app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(hello_router)
    app.include_router(health_router)

    return app
