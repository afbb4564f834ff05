"""Pydantic schemas for cache endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class CacheStatsResponse(BaseModel):
    """Diagnostic snapshot of the shared TTL cache."""

    total: int = Field(..., description="Entries physically stored.")
    active: int = Field(..., description="Entries not yet expired.")
    expired: int = Field(
        ..., description="Entries past expiry that were not touched or swept yet."
    )
    hits: int = Field(0, description="Lifetime cache hits since the last clear.")
    misses: int = Field(0, description="Lifetime cache misses since the last clear.")
    evictions: int = Field(0, description="Entries evicted for expiry or capacity.")
    hit_rate: float = Field(0.0, description="hits / (hits + misses).")
    default_ttl_seconds: float = Field(..., description="TTL applied when none is given.")
    max_entries: int | None = Field(None, description="LRU bound, if configured.")


class CacheInvalidationResponse(BaseModel):
    """Result of dropping cached entries."""

    removed: int = Field(..., description="Number of entries removed.")
