from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint, exempt from rate limiting.

    Reports the limiter mode from the cached Redis verdict; it never probes
    Redis itself.

    Returns:
        dict: ``status`` plus the limiter's current mode and health state.
    """

    controller = request.app.state.admission
    state = controller.health.snapshot()
    return {
        "status": "ok",
        "rate_limiter": {
            "mode": controller.mode,
            "redis_available": state.available,
            "redis_checked": state.checked,
        },
    }
