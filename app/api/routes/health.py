from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe; exempt from rate limiting so monitors are never throttled."""

    return {"status": "ok"}
