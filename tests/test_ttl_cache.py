"""Unit tests for the in-memory TTLCache."""

import asyncio
import threading

import pytest

from app.utils.ttl_cache import TTLCache


def test_set_then_get_returns_value_unchanged() -> None:
    cache = TTLCache(default_ttl_seconds=10)
    payload = {"items": [1, 2, {"nested": True}], "name": "x"}

    cache.set("key", payload)

    assert cache.get("key") == payload


def test_get_missing_returns_default() -> None:
    cache = TTLCache()

    assert cache.get("missing") is None
    assert cache.get("missing", "fallback") == "fallback"


def test_falsy_values_are_cache_hits() -> None:
    cache = TTLCache()
    cache.set("none", None)
    cache.set("zero", 0)

    sentinel = object()
    assert cache.get("none", sentinel) is None
    assert cache.get("zero", sentinel) == 0
    assert cache.has("none") is True


def test_set_overwrites_existing_entry() -> None:
    cache = TTLCache()
    cache.set("k", {"a": 1})
    cache.set("k", {"b": 2})

    assert cache.get("k") == {"b": 2}


def test_get_after_ttl_is_absent_without_sweep(clock) -> None:
    cache = TTLCache(default_ttl_seconds=5, clock=clock)
    cache.set("key", {"data": True})

    clock.advance(5)
    assert cache.get("key") == {"data": True}  # still live at the exact expiry instant

    clock.advance(0.001)
    assert cache.get("key") is None
    stats = cache.get_stats()
    assert stats["total"] == 0
    assert stats["evictions"] == 1


def test_per_entry_ttl_overrides_default(clock) -> None:
    cache = TTLCache(default_ttl_seconds=100, clock=clock)
    cache.set("short", 1, ttl_seconds=1)
    cache.set("long", 2)

    clock.advance(2)

    assert cache.get("short") is None
    assert cache.get("long") == 2


def test_has_applies_expiry_and_evicts(clock) -> None:
    cache = TTLCache(default_ttl_seconds=1, clock=clock)
    cache.set("k", "v")

    assert cache.has("k") is True
    assert "k" in cache

    clock.advance(2)
    assert cache.has("k") is False
    assert len(cache) == 0


def test_delete_reports_presence() -> None:
    cache = TTLCache()
    cache.set("k", "v")

    assert cache.delete("k") is True
    assert cache.delete("k") is False
    assert cache.get("k") is None


def test_clean_expired_removes_exactly_expired_entries(clock) -> None:
    cache = TTLCache(default_ttl_seconds=10, clock=clock)
    cache.set("a", 1, ttl_seconds=1)
    cache.set("b", 2, ttl_seconds=2)
    cache.set("c", 3, ttl_seconds=30)

    clock.advance(5)
    removed = cache.clean_expired()

    assert removed == 2
    assert len(cache) == 1
    assert cache.get("c") == 3


def test_clean_expired_keeps_entry_expiring_exactly_now(clock) -> None:
    cache = TTLCache(default_ttl_seconds=10, clock=clock)
    cache.set("edge", 1)

    assert cache.clean_expired(now=clock() + 10) == 0
    assert cache.clean_expired(now=clock() + 10.5) == 1


def test_get_stats_counts_untouched_expired_entries(clock) -> None:
    cache = TTLCache(default_ttl_seconds=10, clock=clock)
    cache.set("a", 1, ttl_seconds=1)
    cache.set("b", 2)

    clock.advance(3)
    stats = cache.get_stats()

    assert stats["total"] == 2
    assert stats["active"] == 1
    assert stats["expired"] == 1


def test_hit_and_miss_counters() -> None:
    cache = TTLCache()
    cache.get("missing")
    cache.set("k", 1)
    cache.get("k")
    cache.get("k")

    stats = cache.get_stats()
    assert stats["hits"] == 2
    assert stats["misses"] == 1
    assert stats["hit_rate"] == pytest.approx(2 / 3, rel=1e-3)


def test_clear_resets_state() -> None:
    cache = TTLCache()
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")

    cache.clear()

    stats = cache.get_stats()
    assert stats["total"] == 0
    assert stats["hits"] == 0
    assert stats["misses"] == 0
    assert stats["evictions"] == 0


def test_lru_eviction_removes_least_recently_used() -> None:
    cache = TTLCache(default_ttl_seconds=100, max_entries=2)
    cache.set("a", {"v": 1})
    cache.set("b", {"v": 2})

    # Access "a" so that "b" becomes least recently used
    assert cache.get("a") == {"v": 1}

    cache.set("c", {"v": 3})

    assert cache.get("a") == {"v": 1}
    assert cache.get("c") == {"v": 3}
    assert cache.get("b") is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"default_ttl_seconds": 0},
        {"default_ttl_seconds": -1},
        {"max_entries": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        TTLCache(**kwargs)


def test_set_rejects_non_positive_ttl() -> None:
    cache = TTLCache()

    with pytest.raises(ValueError):
        cache.set("k", 1, ttl_seconds=0)


@pytest.mark.asyncio
async def test_get_or_set_calls_supplier_once_within_ttl(clock) -> None:
    cache = TTLCache(clock=clock)
    calls = 0

    async def supplier() -> dict:
        nonlocal calls
        calls += 1
        return {"computed": calls}

    first = await cache.get_or_set("k", supplier, ttl_seconds=1)
    clock.advance(0.001)
    second = await cache.get_or_set("k", supplier, ttl_seconds=1)

    assert first == second == {"computed": 1}
    assert calls == 1


@pytest.mark.asyncio
async def test_get_or_set_recomputes_after_expiry(clock) -> None:
    cache = TTLCache(clock=clock)
    values = iter(["first", "second"])

    assert await cache.get_or_set("k", lambda: next(values), ttl_seconds=1) == "first"
    clock.advance(1.5)
    assert await cache.get_or_set("k", lambda: next(values), ttl_seconds=1) == "second"


@pytest.mark.asyncio
async def test_get_or_set_accepts_sync_supplier() -> None:
    cache = TTLCache()

    assert await cache.get_or_set("k", lambda: 42) == 42
    assert cache.get("k") == 42


@pytest.mark.asyncio
async def test_get_or_set_supplier_failure_leaves_cache_untouched() -> None:
    cache = TTLCache()

    async def failing() -> None:
        raise RuntimeError("upstream down")

    with pytest.raises(RuntimeError, match="upstream down"):
        await cache.get_or_set("k", failing)

    assert cache.has("k") is False
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_concurrent_misses_are_not_coalesced() -> None:
    cache = TTLCache()
    calls = 0
    release = asyncio.Event()

    async def slow_supplier() -> str:
        nonlocal calls
        calls += 1
        await release.wait()
        return "value"

    tasks = [asyncio.create_task(cache.get_or_set("k", slow_supplier)) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*tasks)

    assert results == ["value", "value", "value"]
    assert calls == 3
    assert cache.get("k") == "value"


def test_thread_safety_under_concurrent_sets() -> None:
    cache = TTLCache(default_ttl_seconds=30)
    total_keys = 50

    def _writer(idx: int) -> None:
        cache.set(f"k-{idx}", {"v": idx})

    threads = [threading.Thread(target=_writer, args=(i,)) for i in range(total_keys)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert cache.get_stats()["total"] == total_keys
    assert cache.get("k-0") == {"v": 0}
    assert cache.get("k-49") == {"v": 49}
