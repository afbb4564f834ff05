"""Application factory for the FastAPI app.

Centralizes app construction (state, middleware, handlers, routers and the
maintenance lifespan) so tests can build isolated applications with their
own limiters and cache.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api.routes import cache_router, health_router, rate_limits_router
from app.core.config import AppSettings, Settings, settings as default_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.maintenance import build_maintenance_tasks
from app.core.middleware import rate_limit_headers_middleware, request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import RateLimiterRegistry
from app.utils.ttl_cache import TTLCache

logger = logging.getLogger(__name__)


def build_cache(app_settings: AppSettings) -> TTLCache:
    return TTLCache(
        default_ttl_seconds=app_settings.cache_default_ttl_seconds,
        max_entries=app_settings.cache_max_entries,
    )


def create_app(
    settings: Settings | None = None,
    *,
    rate_limiters: RateLimiterRegistry | None = None,
    cache: TTLCache | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Settings to build from; defaults to the global settings.
        rate_limiters: Pre-built limiter registry (tests inject their own).
        cache: Pre-built TTL cache (tests inject their own).

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    if rate_limiters is None:
        rate_limiters = RateLimiterRegistry.from_settings(cfg.app)
    cache = cache if cache is not None else build_cache(cfg.app)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        tasks = []
        if cfg.app.maintenance_enabled:
            tasks = build_maintenance_tasks(cfg.app, rate_limiters=rate_limiters, cache=cache)
            for task in tasks:
                task.start()
        app.state.maintenance_tasks = tasks
        app.state.ready = True
        logger.info(
            "app.started",
            extra={"maintenance_tasks": [task.name for task in tasks]},
        )
        try:
            yield
        finally:
            app.state.ready = False
            for task in tasks:
                await task.stop()
            logger.info("app.stopped")

    app = FastAPI(
        title="Gatekeeper API",
        description=(
            "In-process admission control and response caching: per-client "
            "sliding-window rate limits with named policies, and a TTL cache "
            "serving repeat GET responses. Rejections return HTTP 429 with "
            "a retry hint."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
        lifespan=lifespan,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    app.state.settings = cfg
    app.state.rate_limiters = rate_limiters
    app.state.cache = cache
    app.state.started_at = time.monotonic()
    app.state.ready = False

    # Middleware (last registered runs outermost)
    app.middleware("http")(rate_limit_headers_middleware)
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(cache_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
