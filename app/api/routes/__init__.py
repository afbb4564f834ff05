from __future__ import annotations

from app.api.routes.cache import router as cache_router
from app.api.routes.health import router as health_router
from app.api.routes.rate_limits import router as rate_limits_router

__all__ = ["cache_router", "health_router", "rate_limits_router"]
