from __future__ import annotations

from fastapi import APIRouter

from app.core.rate_limit import RateLimiterDep

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check used by load balancers and monitoring.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/v1/rate-limit/status")
def rate_limit_status(limiter: RateLimiterDep) -> dict:
    """Report the active limiter backend and bucket ceilings.

    Exposes no identifiers, only the backend name (``remote`` or ``memory``),
    configured buckets and the number of in-process entries.
    """

    return limiter.status()
