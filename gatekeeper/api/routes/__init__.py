from __future__ import annotations

from gatekeeper.api.routes.health import router as health_router
from gatekeeper.api.routes.hello import router as hello_router

__all__ = ["health_router", "hello_router"]
