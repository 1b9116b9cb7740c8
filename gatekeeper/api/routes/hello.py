from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Hello"])


@router.get("/hello")
def hello() -> dict[str, str]:
    """The protected endpoint; every call passes through the rate limiter."""

    return {"msg": "hello"}
