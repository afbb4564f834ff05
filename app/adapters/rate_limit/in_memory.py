"""In-memory sliding-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Stores actual admission timestamps per client, so the window slides
  continuously with time instead of resetting on fixed boundaries.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult

DEFAULT_MAX_AGE_SECONDS = 60 * 60


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a trailing time window per key.

    Each client owns an ordered deque of admitted timestamps. Entries that
    fall out of the trailing window are dropped on every ``admit`` call, and
    a periodic ``sweep`` purges clients that stopped sending traffic.

    Important:
        This limiter is per-process only. If the API runs with multiple
        workers, each worker enforces its own independent limits.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: float,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            limit: Maximum number of admissions per trailing window.
            window_seconds: Length of the trailing window in seconds.
            max_age_seconds: Retention horizon used by ``sweep``; must not
                be shorter than the window.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If any argument is out of range.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if max_age_seconds < window_seconds:
            raise ValueError("max_age_seconds must be >= window_seconds")

        self._limit = limit
        self._window_seconds = window_seconds
        self._max_age_seconds = max_age_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._timestamps_by_key: dict[str, deque[float]] = {}

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    @property
    def max_age_seconds(self) -> float:
        return self._max_age_seconds

    @property
    def tracked_clients(self) -> int:
        """Number of clients currently holding a window."""
        with self._lock:
            return len(self._timestamps_by_key)

    def peek(self, key: str) -> tuple[float, ...]:
        """Return the stored timestamps for ``key`` without mutating state."""
        with self._lock:
            return tuple(self._timestamps_by_key.get(key, ()))

    def reset(self, key: str | None = None) -> None:
        """Forget one client, or every client when ``key`` is None."""
        with self._lock:
            if key is None:
                self._timestamps_by_key.clear()
            else:
                self._timestamps_by_key.pop(key, None)

    @staticmethod
    def _drop_older_than(timestamps: deque[float], cutoff: float) -> None:
        # Timestamps are appended in order, so stale ones sit at the left.
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()

    def _build_allowed_result(self, *, remaining: int, reset_at: float) -> RateLimitResult:
        """Build a RateLimitResult for an admitted request."""
        return RateLimitResult(
            allowed=True,
            limit=self._limit,
            remaining=remaining,
            reset_at=reset_at,
            retry_after_seconds=None,
        )

    def _build_blocked_result(self, *, now: float, oldest: float) -> RateLimitResult:
        """Build a RateLimitResult for a rejected request."""
        reset_at = oldest + self._window_seconds
        retry_after = max(1, int(math.ceil(reset_at - now)))
        return RateLimitResult(
            allowed=False,
            limit=self._limit,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=retry_after,
        )

    def admit(self, key: str, now: float | None = None) -> RateLimitResult:
        """Admit or reject one request for ``key``.

        Expired timestamps are dropped before counting. A rejected attempt
        is never recorded, so repeated rejections leave the window unchanged.

        Args:
            key: Client identity.
            now: Decision instant; defaults to the configured clock.

        Returns:
            RateLimitResult with the decision and header metadata.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        if now is None:
            now = self._clock()

        with self._lock:
            timestamps = self._timestamps_by_key.get(key)
            if timestamps is None:
                timestamps = deque()
                self._timestamps_by_key[key] = timestamps

            self._drop_older_than(timestamps, now - self._window_seconds)

            if len(timestamps) >= self._limit:
                return self._build_blocked_result(now=now, oldest=timestamps[0])

            timestamps.append(now)
            remaining = max(0, self._limit - len(timestamps))
            return self._build_allowed_result(
                remaining=remaining,
                reset_at=now + self._window_seconds,
            )

    def sweep(self, now: float | None = None) -> int:
        """Drop timestamps past the retention horizon and empty clients.

        Args:
            now: Sweep instant; defaults to the configured clock.

        Returns:
            Number of client windows removed.
        """
        if now is None:
            now = self._clock()

        cutoff = now - self._max_age_seconds
        removed = 0
        with self._lock:
            for key in list(self._timestamps_by_key):
                timestamps = self._timestamps_by_key[key]
                self._drop_older_than(timestamps, cutoff)
                if not timestamps:
                    del self._timestamps_by_key[key]
                    removed += 1
        return removed
