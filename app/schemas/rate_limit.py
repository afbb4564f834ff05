"""Pydantic schemas for rate limit endpoints."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class RateLimitPolicyOut(BaseModel):
    """Public view of one configured rate limit policy."""

    name: str = Field(..., description="Policy name (general, auth, upload, payment).")
    window_seconds: float = Field(..., description="Trailing window length in seconds.")
    max_requests: int = Field(..., description="Admissions allowed per window.")
    identity_mode: str = Field(
        ..., description="Client keying: 'address' or 'user_or_address'."
    )


class RateLimitPoliciesResponse(BaseModel):
    """List of configured rate limit policies."""

    enabled: bool = Field(..., description="Whether rate limiting is enforced.")
    policies: List[RateLimitPolicyOut] = Field(default_factory=list)


class SweepResponse(BaseModel):
    """Result of a manual maintenance run."""

    removed: int = Field(..., description="Number of items removed by the sweep.")
