"""In-memory TTL cache used for cache-aside reads and HTTP response caching.

Designed for a single process: minimal dependencies, thread-safe, and easy to
swap for Redis while keeping the same interface and behaviors.
"""

from __future__ import annotations

import inspect
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60

_MISSING = object()

Supplier = Callable[[], Union[Any, Awaitable[Any]]]


@dataclass
class CacheEntry:
    """Container for cached values with expiration metadata."""

    value: Any
    created_at: float
    expires_at: float


def _validate_ttl(ttl_seconds: float) -> float:
    if ttl_seconds <= 0:
        raise ValueError("ttl_seconds must be > 0")
    return ttl_seconds


class TTLCache:
    """Thread-safe, in-memory TTL cache with optional LRU bound.

    Expiry is lazy: an entry is logically absent once ``now > expires_at``
    and is evicted the next time it is touched, or by ``clean_expired``.

    Attributes:
        default_ttl_seconds: Time-to-live applied when ``set`` gets none.
        max_entries: Maximum number of cached items (None for unlimited).
    """

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self._default_ttl = _validate_ttl(default_ttl_seconds)
        self._max_entries = max_entries
        self._clock = clock
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"TTLCache(default_ttl_seconds={self._default_ttl}, "
            f"max_entries={self._max_entries}, size={len(self._store)}, "
            f"hits={self._hits}, misses={self._misses}, evictions={self._evictions})"
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    @property
    def default_ttl_seconds(self) -> float:
        return self._default_ttl

    @property
    def max_entries(self) -> int | None:
        return self._max_entries

    def get(self, key: str, default: Any = None) -> Any:
        """Retrieve a cached value if it exists and is not expired.

        Args:
            key: Cache key.
            default: Returned when the key is absent or expired.

        Returns:
            Cached value or ``default``.
        """

        value = self._lookup(key)
        return default if value is _MISSING else value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """Store a value, replacing any existing entry.

        Args:
            key: Cache key.
            value: Value to store.
            ttl_seconds: Lifetime for this entry; defaults to the cache TTL.

        Raises:
            ValueError: If ``ttl_seconds`` is not positive.
        """

        ttl = self._default_ttl if ttl_seconds is None else _validate_ttl(ttl_seconds)
        now = self._clock()

        with self._lock:
            self._store[key] = CacheEntry(value=value, created_at=now, expires_at=now + ttl)
            self._store.move_to_end(key)
            self._evict_if_over_capacity_locked()

            logger.debug(
                "cache.set",
                extra={
                    "cache_key": key[:64],
                    "size": len(self._store),
                    "ttl_s": ttl,
                },
            )

    def has(self, key: str) -> bool:
        """Check for a live entry, evicting it if it has expired."""

        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False
            if self._is_expired(entry, self._clock()):
                self._evict_single(key)
                return False
            return True

    def delete(self, key: str) -> bool:
        """Remove an entry; return True if one was present."""

        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        """Remove all cached entries and reset counters."""

        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    async def get_or_set(
        self,
        key: str,
        supplier: Supplier,
        ttl_seconds: float | None = None,
    ) -> Any:
        """Return the cached value or compute, store and return it.

        Concurrent misses for the same key are not coalesced: each caller
        that misses runs ``supplier``. A supplier exception propagates and
        nothing is stored.

        Args:
            key: Cache key.
            supplier: Zero-argument callable, sync or async, producing the value.
            ttl_seconds: Lifetime for a freshly computed entry.

        Returns:
            The cached or freshly computed value.
        """

        cached = self._lookup(key)
        if cached is not _MISSING:
            return cached

        value = supplier()
        if inspect.isawaitable(value):
            value = await value

        self.set(key, value, ttl_seconds)
        return value

    def clean_expired(self, now: float | None = None) -> int:
        """Evict every expired entry.

        Args:
            now: Sweep instant; defaults to the cache clock.

        Returns:
            Number of entries removed.
        """

        if now is None:
            now = self._clock()

        with self._lock:
            expired_keys = [k for k, entry in self._store.items() if self._is_expired(entry, now)]
            for key in expired_keys:
                self._evict_single(key)

        if expired_keys:
            logger.debug("cache.clean_expired", extra={"removed": len(expired_keys)})
        return len(expired_keys)

    def get_stats(self) -> dict[str, int | float | None]:
        """Return a diagnostic snapshot without exposing values.

        ``expired`` counts entries past their expiry that have not been
        touched or swept yet.
        """

        now = self._clock()
        with self._lock:
            expired = sum(1 for entry in self._store.values() if self._is_expired(entry, now))
            lookups = self._hits + self._misses
            return {
                "total": len(self._store),
                "active": len(self._store) - expired,
                "expired": expired,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
                "default_ttl_seconds": self._default_ttl,
                "max_entries": self._max_entries,
            }

    def _lookup(self, key: str) -> Any:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                logger.debug("cache.miss", extra={"cache_key": key[:64], "reason": "not_found"})
                return _MISSING

            if self._is_expired(entry, self._clock()):
                self._evict_single(key)
                self._misses += 1
                logger.debug("cache.miss", extra={"cache_key": key[:64], "reason": "expired"})
                return _MISSING

            self._hits += 1
            self._store.move_to_end(key)  # mark as recently used
            logger.debug("cache.hit", extra={"cache_key": key[:64]})
            return entry.value

    def _evict_single(self, key: str) -> None:
        if self._store.pop(key, None) is not None:
            self._evictions += 1

    def _evict_if_over_capacity_locked(self) -> None:
        if self._max_entries is None:
            return

        while len(self._store) > self._max_entries:
            # popitem(last=False) removes the least recently used entry
            self._store.popitem(last=False)
            self._evictions += 1

    @staticmethod
    def _is_expired(entry: CacheEntry, now: float) -> bool:
        return now > entry.expires_at
