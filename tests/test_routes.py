"""Tests for the health, rate limit and cache endpoints."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.routes.health import format_uptime
from app.utils.ttl_cache import TTLCache


@pytest.fixture
def cache(clock) -> TTLCache:
    return TTLCache(default_ttl_seconds=300, clock=clock)


@pytest.fixture
def app(make_app, cache: TTLCache) -> FastAPI:
    return make_app(cache=cache)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


class TestHealth:
    """Health endpoints are public and never rate limited."""

    def test_health_reports_cache_and_limiter_state(self, client: TestClient, cache: TTLCache) -> None:
        cache.set("k", "v")

        resp = client.get("/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["uptime"]["seconds"] >= 0
        assert body["cache"]["total"] == 1
        assert body["rate_limit"]["tracked_clients"] == 0
        assert "X-RateLimit-Limit" not in resp.headers

    def test_liveness(self, client: TestClient) -> None:
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_not_ready_before_startup(self, client: TestClient) -> None:
        resp = client.get("/health/ready")

        assert resp.status_code == 503
        assert resp.json() == {"status": "not_ready"}

    def test_ready_after_startup(self, app: FastAPI) -> None:
        with TestClient(app) as client:
            assert client.get("/health/ready").json() == {"status": "ready"}


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [
        (5, "5s"),
        (65, "1m 5s"),
        (3600, "1h 0m 0s"),
        (90061, "1d 1h 1m 1s"),
    ],
)
def test_format_uptime(seconds: float, expected: str) -> None:
    assert format_uptime(seconds) == expected


class TestRateLimitRoutes:
    def test_policies_listing_is_cached(self, client: TestClient) -> None:
        first = client.get("/v1/rate-limits")
        second = client.get("/v1/rate-limits")

        assert first.status_code == 200
        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        names = [p["name"] for p in first.json()["policies"]]
        assert names == ["general", "auth", "payment"]
        assert first.json()["enabled"] is True

    def test_listing_is_rate_limited_even_on_cache_hits(self, client: TestClient) -> None:
        statuses = [client.get("/v1/rate-limits").status_code for _ in range(4)]

        assert statuses == [200, 200, 200, 429]

    def test_cache_hit_still_reports_quota_headers(self, client: TestClient) -> None:
        client.get("/v1/rate-limits")
        hit = client.get("/v1/rate-limits")

        assert hit.headers["X-Cache"] == "HIT"
        assert hit.headers["X-RateLimit-Remaining"] == "1"

    def test_sweep_requires_api_key(self, client: TestClient) -> None:
        assert client.post("/v1/rate-limits/sweep").status_code == 403

    def test_sweep_reports_removed_clients(self, client: TestClient, valid_api_key_headers: dict) -> None:
        resp = client.post("/v1/rate-limits/sweep", headers=valid_api_key_headers)

        assert resp.status_code == 200
        # The caller's own window is recent, so nothing is old enough to drop.
        assert resp.json() == {"removed": 0}


class TestCacheRoutes:
    def test_stats(self, client: TestClient, cache: TTLCache, valid_api_key_headers: dict) -> None:
        cache.set("a", 1)

        resp = client.get("/v1/cache/stats", headers=valid_api_key_headers)

        assert resp.status_code == 200
        assert resp.json()["total"] == 1
        assert resp.json()["active"] == 1

    def test_requires_api_key(self, client: TestClient) -> None:
        resp = client.get("/v1/cache/stats", headers={"X-API-Key": "wrong"})

        assert resp.status_code == 403

    def test_clean_expired(self, client: TestClient, valid_api_key_headers: dict) -> None:
        resp = client.post("/v1/cache/clean", headers=valid_api_key_headers)

        assert resp.json() == {"removed": 0}

    def test_clear(self, client: TestClient, cache: TTLCache, valid_api_key_headers: dict) -> None:
        cache.set("a", 1)
        cache.set("b", 2)

        resp = client.delete("/v1/cache", headers=valid_api_key_headers)

        assert resp.json() == {"removed": 2}
        assert len(cache) == 0

    def test_delete_single_cached_response(
        self, client: TestClient, cache: TTLCache, valid_api_key_headers: dict
    ) -> None:
        client.get("/v1/rate-limits")
        assert cache.has("GET:/v1/rate-limits")

        resp = client.delete("/v1/cache/GET:/v1/rate-limits", headers=valid_api_key_headers)

        assert resp.status_code == 200
        assert resp.json() == {"removed": 1}
        assert client.get("/v1/rate-limits").headers["X-Cache"] == "MISS"

    def test_delete_unknown_key_is_404(self, client: TestClient, valid_api_key_headers: dict) -> None:
        resp = client.delete("/v1/cache/nope", headers=valid_api_key_headers)

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "cache_key_not_found"

    def test_delete_expired_key_is_404(
        self, client: TestClient, cache: TTLCache, clock, valid_api_key_headers: dict
    ) -> None:
        cache.set("stale", 1, ttl_seconds=5)
        clock.advance(6)

        resp = client.delete("/v1/cache/stale", headers=valid_api_key_headers)

        assert resp.status_code == 404


def test_openapi_marks_public_operations(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    assert schema["paths"]["/health"]["get"]["security"] == []
    assert schema["paths"]["/v1/rate-limits"]["get"]["security"] == []
    assert "429" in schema["paths"]["/v1/cache/stats"]["get"]["responses"]
    assert "ApiKeyAuth" in schema["components"]["securitySchemes"]
