"""Periodic background maintenance for in-process state.

Two sweeps keep memory bounded independently of request traffic:
- ``rate_limit.sweep`` drops idle client windows (hourly by default)
- ``cache.clean_expired`` evicts expired cache entries (every 5 minutes)

Both run as asyncio tasks on the server's event loop and are started and
cancelled by the application lifespan.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable

from app.core.config import AppSettings
from app.core.rate_limit import RateLimiterRegistry
from app.utils.ttl_cache import TTLCache

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run a synchronous action on a fixed interval until stopped.

    A failing run is logged and the loop keeps going; the next run happens
    one interval later.
    """

    def __init__(self, name: str, interval_seconds: float, action: Callable[[], object]) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.name = name
        self.interval_seconds = interval_seconds
        self._action = action
        self._task: asyncio.Task[None] | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> object:
        """Run the action now, logging its result."""
        result = self._action()
        self.runs += 1
        logger.info(
            "maintenance.run",
            extra={"task": self.name, "result": result, "runs": self.runs},
        )
        return result

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.run_once()
            except Exception as exc:  # keep the loop alive; next tick retries
                logger.exception(
                    "maintenance.failed",
                    extra={"task": self.name, "error_type": type(exc).__name__},
                )

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None


def build_maintenance_tasks(
    app_settings: AppSettings,
    *,
    rate_limiters: RateLimiterRegistry,
    cache: TTLCache,
) -> list[PeriodicTask]:
    """Build the sweeps for the given limiter registry and cache."""

    return [
        PeriodicTask(
            "rate_limit.sweep",
            app_settings.rate_limit_sweep_interval_seconds,
            rate_limiters.sweep_all,
        ),
        PeriodicTask(
            "cache.clean_expired",
            app_settings.cache_sweep_interval_seconds,
            cache.clean_expired,
        ),
    ]
