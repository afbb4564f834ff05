"""Cache inspection and invalidation endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.core.auth import verify_api_key
from app.core.errors import NotFoundAppError
from app.core.rate_limit import rate_limit
from app.core.response_cache import get_response_cache, invalidate_cached_responses
from app.schemas.cache import CacheInvalidationResponse, CacheStatsResponse

router = APIRouter(
    prefix="/cache",
    tags=["Cache"],
    dependencies=[Depends(verify_api_key), Depends(rate_limit("general"))],
)


@router.get("/stats", response_model=CacheStatsResponse)
async def cache_stats(request: Request) -> CacheStatsResponse:
    return CacheStatsResponse(**get_response_cache(request).get_stats())


@router.post("/clean", response_model=CacheInvalidationResponse)
async def clean_expired_entries(request: Request) -> CacheInvalidationResponse:
    """Evict expired entries now instead of waiting for the next sweep."""

    return CacheInvalidationResponse(removed=get_response_cache(request).clean_expired())


@router.delete("", response_model=CacheInvalidationResponse)
async def clear_cache(request: Request) -> CacheInvalidationResponse:
    return CacheInvalidationResponse(
        removed=invalidate_cached_responses(get_response_cache(request))
    )


@router.delete("/{cache_key:path}", response_model=CacheInvalidationResponse)
async def delete_cache_entry(cache_key: str, request: Request) -> CacheInvalidationResponse:
    """Drop a single entry, e.g. ``GET:/v1/rate-limits``.

    Raises:
        NotFoundAppError: If no entry is stored under the key.
    """

    removed = invalidate_cached_responses(get_response_cache(request), cache_key)
    if not removed:
        raise NotFoundAppError(
            code="cache_key_not_found",
            message="No cached entry for the given key",
            details={"cache_key": cache_key},
        )
    return CacheInvalidationResponse(removed=removed)
