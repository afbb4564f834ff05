"""Rate limit inspection and maintenance endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.core.auth import verify_api_key
from app.core.rate_limit import get_app_settings, get_rate_limiters, rate_limit
from app.core.response_cache import cache_response
from app.schemas.rate_limit import (
    RateLimitPoliciesResponse,
    RateLimitPolicyOut,
    SweepResponse,
)

router = APIRouter(tags=["Rate limits"])


@router.get(
    "/rate-limits",
    response_model=RateLimitPoliciesResponse,
    dependencies=[Depends(rate_limit("general"))],
)
@cache_response(ttl_seconds=60)
async def list_rate_limit_policies(request: Request) -> RateLimitPoliciesResponse:
    """List the configured rate limit policies.

    The listing only changes on redeploy, so it is served from the response
    cache.
    """

    registry = get_rate_limiters(request)
    return RateLimitPoliciesResponse(
        enabled=get_app_settings(request).rate_limit_enabled,
        policies=[
            RateLimitPolicyOut(
                name=policy.name,
                window_seconds=policy.window_seconds,
                max_requests=policy.max_requests,
                identity_mode=policy.identity_mode.value,
            )
            for policy in registry.policies()
        ],
    )


@router.post(
    "/rate-limits/sweep",
    response_model=SweepResponse,
    dependencies=[Depends(verify_api_key), Depends(rate_limit("general"))],
)
async def sweep_rate_limits(request: Request) -> SweepResponse:
    """Run the idle-client sweep now instead of waiting for the next tick."""

    return SweepResponse(removed=get_rate_limiters(request).sweep_all())
