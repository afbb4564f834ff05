"""Rate limiting policies and the FastAPI dependency enforcing them.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency factory only.
- Swap-friendly: storage backend can be replaced (e.g., Redis) behind an
  abstract interface.
- Explicit lifecycle: limiters live on ``app.state`` and are built once per
  application, so tests get isolated instances.

Rate limiting strategy:
- Sliding window per client, with one named policy per route class
  (general traffic, authentication attempts, uploads, payments).
- Clients are keyed by network address; the payment policy keys by the
  authenticated identity first so clients behind a shared address are not
  throttled together.
"""

from __future__ import annotations

import enum
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable

from fastapi import Request

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from app.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from app.core.config import AppSettings, get_request_settings
from app.core.errors import RateLimitExceededError

logger = logging.getLogger(__name__)


class IdentityMode(str, enum.Enum):
    """How a request is mapped to a rate limit client id."""

    ADDRESS = "address"
    USER_OR_ADDRESS = "user_or_address"


@dataclass(frozen=True)
class RateLimitPolicy:
    """Quota configuration for one route class."""

    name: str
    window_seconds: float
    max_requests: int
    message: str
    identity_mode: IdentityMode = IdentityMode.ADDRESS


POLICY_NAMES = ("general", "auth", "upload", "payment")


def build_default_policies(app_settings: AppSettings) -> list[RateLimitPolicy]:
    """Build the named policies from settings.

    Args:
        app_settings: Application settings holding per-policy quotas.

    Returns:
        One policy per entry of ``POLICY_NAMES``.
    """

    return [
        RateLimitPolicy(
            name="general",
            window_seconds=app_settings.rate_limit_general_window_seconds,
            max_requests=app_settings.rate_limit_general_requests,
            message=app_settings.rate_limit_general_message,
        ),
        RateLimitPolicy(
            name="auth",
            window_seconds=app_settings.rate_limit_auth_window_seconds,
            max_requests=app_settings.rate_limit_auth_requests,
            message=app_settings.rate_limit_auth_message,
        ),
        RateLimitPolicy(
            name="upload",
            window_seconds=app_settings.rate_limit_upload_window_seconds,
            max_requests=app_settings.rate_limit_upload_requests,
            message=app_settings.rate_limit_upload_message,
        ),
        RateLimitPolicy(
            name="payment",
            window_seconds=app_settings.rate_limit_payment_window_seconds,
            max_requests=app_settings.rate_limit_payment_requests,
            message=app_settings.rate_limit_payment_message,
            identity_mode=IdentityMode.USER_OR_ADDRESS,
        ),
    ]


class RateLimiterRegistry:
    """Named rate limiters, one per policy.

    Each policy gets its own limiter so quotas for different route classes
    never share a window.
    """

    def __init__(
        self,
        policies: Iterable[RateLimitPolicy],
        *,
        max_age_seconds: float = 3600,
        limiter_factory: Callable[[RateLimitPolicy, float], AbstractRateLimiter] | None = None,
    ) -> None:
        factory = limiter_factory or _build_in_memory_limiter
        self._policies: dict[str, RateLimitPolicy] = {}
        self._limiters: dict[str, AbstractRateLimiter] = {}
        for policy in policies:
            if policy.name in self._policies:
                raise ValueError(f"duplicate rate limit policy: {policy.name}")
            self._policies[policy.name] = policy
            self._limiters[policy.name] = factory(policy, max_age_seconds)

    @classmethod
    def from_settings(cls, app_settings: AppSettings) -> "RateLimiterRegistry":
        return cls(
            build_default_policies(app_settings),
            max_age_seconds=app_settings.rate_limit_max_age_seconds,
        )

    def __contains__(self, name: object) -> bool:
        return name in self._policies

    def get(self, name: str) -> AbstractRateLimiter:
        return self._limiters[name]

    def policy(self, name: str) -> RateLimitPolicy:
        return self._policies[name]

    def policies(self) -> list[RateLimitPolicy]:
        return list(self._policies.values())

    def sweep_all(self, now: float | None = None) -> int:
        """Sweep every limiter; return the total number of clients dropped."""
        removed = sum(limiter.sweep(now) for limiter in self._limiters.values())
        logger.info("rate_limit.sweep", extra={"removed_clients": removed})
        return removed

    def tracked_clients(self) -> int:
        return sum(
            getattr(limiter, "tracked_clients", 0) for limiter in self._limiters.values()
        )


def _build_in_memory_limiter(policy: RateLimitPolicy, max_age_seconds: float) -> AbstractRateLimiter:
    return InMemorySlidingWindowRateLimiter(
        limit=policy.max_requests,
        window_seconds=policy.window_seconds,
        max_age_seconds=max(max_age_seconds, policy.window_seconds),
    )


def build_client_id(request: Request, identity_mode: IdentityMode) -> str:
    """Build the limiter key for the current request.

    Args:
        request: FastAPI request.
        identity_mode: Policy identity mode.

    Returns:
        str: Namespaced client id (``user:<id>`` or ``ip:<host>``).
    """

    if identity_mode is IdentityMode.USER_OR_ADDRESS:
        user_id = getattr(request.state, "user_id", None)
        if user_id:
            return f"user:{user_id}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def format_reset_time(reset_at: float) -> str:
    """Format an epoch instant as an ISO-8601 UTC string with millisecond precision."""
    moment = datetime.fromtimestamp(reset_at, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Standard rate limit headers for a decision."""
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": format_reset_time(result.reset_at),
    }


def get_rate_limiters(request: Request) -> RateLimiterRegistry:
    """Return the registry owned by the running application."""
    return request.app.state.rate_limiters


def get_app_settings(request: Request) -> AppSettings:
    """Settings the running application was built with."""
    return get_request_settings(request).app


def rate_limit(policy_name: str) -> Callable[[Request], Awaitable[None]]:
    """Create a FastAPI dependency enforcing the named policy.

    Usage:
        @router.get("/items", dependencies=[Depends(rate_limit("general"))])

    When enabled, each request consumes one admission from the caller's
    window. Over-quota callers get ``RateLimitExceededError`` which the
    exception handlers render as HTTP 429.

    Args:
        policy_name: One of ``POLICY_NAMES`` (or a custom registered policy).

    Raises:
        ValueError: If ``policy_name`` is empty.
    """

    if not policy_name:
        raise ValueError("policy_name must be a non-empty string")

    async def enforce_rate_limit(request: Request) -> None:
        if not get_app_settings(request).rate_limit_enabled:
            return

        registry = get_rate_limiters(request)
        if policy_name not in registry:
            raise KeyError(f"unknown rate limit policy: {policy_name}")

        policy = registry.policy(policy_name)
        key = build_client_id(request, policy.identity_mode)
        key_hash = _hash_limiter_key(key)
        key_type = key.split(":", 1)[0]

        result = registry.get(policy_name).admit(key)
        request.state.rate_limit = result

        if result.allowed:
            logger.info(
                "rate_limit.allowed",
                extra={
                    "policy": policy_name,
                    "key_type": key_type,
                    "key_hash": key_hash,
                    "limit": result.limit,
                    "remaining": result.remaining,
                    "window_s": policy.window_seconds,
                },
            )
            return

        logger.warning(
            "rate_limit.exceeded",
            extra={
                "policy": policy_name,
                "key_type": key_type,
                "key_hash": key_hash,
                "limit": result.limit,
                "remaining": result.remaining,
                "window_s": policy.window_seconds,
                "retry_after_s": result.retry_after_seconds,
            },
        )
        raise RateLimitExceededError(policy=policy_name, message=policy.message, result=result)

    enforce_rate_limit.__name__ = f"enforce_rate_limit_{policy_name}"
    return enforce_rate_limit
