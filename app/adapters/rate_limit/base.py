"""Rate limiter interfaces.

The HTTP layer depends on this abstraction (not the concrete implementation)
so the storage backend can be swapped later (e.g., Redis) with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single admission decision.

    Rejection is a normal outcome, not an exception: callers inspect
    ``allowed`` and decide how to answer the client.

    Attributes:
        allowed: Whether the request is admitted.
        limit: Max requests per trailing window.
        remaining: Requests still available in the window (0 when blocked).
        reset_at: UNIX epoch seconds when the window frees up again.
        retry_after_seconds: Suggested wait in whole seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def admit(self, key: str, now: float | None = None) -> RateLimitResult:
        """Admit or reject one unit of work for a client.

        Args:
            key: Client identity (e.g., ``ip:1.2.3.4`` or ``user:abc``).
            now: Decision instant in epoch seconds; defaults to the clock.

        Returns:
            RateLimitResult describing the decision.
        """
        raise NotImplementedError

    @abstractmethod
    def sweep(self, now: float | None = None) -> int:
        """Purge stale per-client state.

        Returns:
            Number of clients dropped.
        """
        raise NotImplementedError
