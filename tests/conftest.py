"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment defaults are set before any app import so the global settings
pick them up.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Callable

import pytest
from fastapi import FastAPI

from app.core.app_factory import create_app
from app.core.config import Settings
from app.core.rate_limit import IdentityMode, RateLimiterRegistry, RateLimitPolicy
from app.utils.ttl_cache import TTLCache


class FakeClock:
    """Deterministic clock injected into limiters and caches."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def valid_api_key_headers() -> dict[str, str]:
    """Headers for authenticated requests."""
    return {"X-API-Key": "test-api-key-123"}


@pytest.fixture
def small_policies() -> list[RateLimitPolicy]:
    """Tight quotas so HTTP tests hit rejections in a few requests."""
    return [
        RateLimitPolicy(name="general", window_seconds=60, max_requests=3, message="Slow down."),
        RateLimitPolicy(name="auth", window_seconds=60, max_requests=2, message="Too many logins."),
        RateLimitPolicy(
            name="payment",
            window_seconds=60,
            max_requests=1,
            message="Too many payments.",
            identity_mode=IdentityMode.USER_OR_ADDRESS,
        ),
    ]


@pytest.fixture
def make_app(small_policies: list[RateLimitPolicy]) -> Callable[..., FastAPI]:
    """Build an isolated app with its own limiter registry and cache."""

    def _make(
        *,
        policies: list[RateLimitPolicy] | None = None,
        cache: TTLCache | None = None,
        settings: Settings | None = None,
    ) -> FastAPI:
        return create_app(
            settings,
            rate_limiters=RateLimiterRegistry(policies or small_policies),
            cache=cache if cache is not None else TTLCache(default_ttl_seconds=300),
        )

    return _make
