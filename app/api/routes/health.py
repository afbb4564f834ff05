from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from app.core.rate_limit import get_rate_limiters
from app.core.response_cache import get_response_cache

router = APIRouter(tags=["Health"])


def format_uptime(seconds: float) -> str:
    """Render an uptime like ``1d 2h 3m 4s``, omitting leading zero units."""
    total = int(seconds)
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if days or hours:
        parts.append(f"{hours}h")
    if days or hours or minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Reports process uptime plus the state of the in-process cache and rate
    limiters. Used by load balancers and monitoring systems, so it is never
    rate limited.

    Returns:
        dict: Status, timestamp, uptime, cache stats and limiter occupancy.
    """

    uptime = time.monotonic() - request.app.state.started_at
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": {
            "seconds": round(uptime, 3),
            "formatted": format_uptime(uptime),
        },
        "cache": get_response_cache(request).get_stats(),
        "rate_limit": {
            "tracked_clients": get_rate_limiters(request).tracked_clients(),
        },
    }


@router.get("/health/live")
def liveness_check() -> dict:
    return {"status": "alive"}


@router.get("/health/ready")
def readiness_check(request: Request):
    """Ready once the application lifespan has started background maintenance."""

    if getattr(request.app.state, "ready", False):
        return {"status": "ready"}
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "not_ready"},
    )
