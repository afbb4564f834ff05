"""HTTP response caching for FastAPI endpoints.

Endpoints opt in with the ``cache_response`` decorator. The cache decision
is made before the endpoint runs: a hit is served straight from the shared
``TTLCache`` without calling the endpoint, a miss awaits the endpoint and
stores its JSON payload on the way out. Only GET requests with a 2xx status
are stored.

Every response from a decorated endpoint carries ``X-Cache: HIT`` or
``X-Cache: MISS``.

Usage:
    @router.get("/items")
    @cache_response(ttl_seconds=60)
    async def list_items(request: Request) -> dict:
        ...
"""

from __future__ import annotations

import functools
import inspect
import json
import logging
import re
from typing import Any, Callable, Mapping

from fastapi import Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.utils.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

CACHE_HEADER = "X-Cache"

_MISS = object()
_REPEATED_SLASHES = re.compile(r"/{2,}")

KeyBuilder = Callable[[Request], str]
ShouldCache = Callable[[Request, int], bool]


def normalize_path(path: str) -> str:
    """Collapse repeated slashes and drop a trailing slash (root stays ``/``)."""
    path = _REPEATED_SLASHES.sub("/", path or "/")
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def build_response_cache_key(
    method: str,
    path: str,
    query_params: Mapping[str, str] | None = None,
) -> str:
    """Build the cache key for a request.

    Query parameters are sorted so ``?a=1&b=2`` and ``?b=2&a=1`` share an
    entry.

    Args:
        method: HTTP method.
        path: Request path.
        query_params: Optional query parameters.

    Returns:
        Key of the form ``GET:/path`` or ``GET:/path?a=1&b=2``.
    """

    key = f"{method.upper()}:{normalize_path(path)}"
    if query_params:
        if hasattr(query_params, "multi_items"):
            items = query_params.multi_items()
        else:
            items = list(query_params.items())
        query = "&".join(f"{k}={v}" for k, v in sorted(items))
        key = f"{key}?{query}"
    return key


def default_key_builder(request: Request) -> str:
    return build_response_cache_key(request.method, request.url.path, request.query_params)


def default_should_cache(request: Request, status_code: int) -> bool:
    return request.method == "GET" and 200 <= status_code < 300


def get_response_cache(request: Request) -> TTLCache:
    """Return the cache owned by the running application."""
    return request.app.state.cache


def invalidate_cached_responses(cache: TTLCache, key: str | None = None) -> int:
    """Drop one cached response, or all of them when ``key`` is None.

    Expired entries are not counted.

    Returns:
        Number of live entries removed.
    """

    if key is not None:
        if not cache.has(key):
            return 0
        return int(cache.delete(key))

    cache.clean_expired()
    removed = len(cache)
    cache.clear()
    return removed


async def _call_endpoint(endpoint: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    if inspect.iscoroutinefunction(endpoint):
        return await endpoint(*args, **kwargs)
    return await run_in_threadpool(endpoint, *args, **kwargs)


def _extract_payload(result: Any) -> tuple[Any, int, Response | None]:
    """Split an endpoint result into (payload, status, original response)."""

    if isinstance(result, JSONResponse):
        return json.loads(bytes(result.body)), result.status_code, result
    if isinstance(result, Response):
        return _MISS, result.status_code, result
    return jsonable_encoder(result), 200, None


def cache_response(
    ttl_seconds: float | None = None,
    key_builder: KeyBuilder | None = None,
    should_cache: ShouldCache | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorate an endpoint so its GET responses are served from the cache.

    The decorated endpoint must declare a ``request: Request`` parameter.
    Results are JSON-encoded on the way out, so response_model filtering
    does not apply to decorated endpoints.

    Args:
        ttl_seconds: Entry lifetime; defaults to the cache's default TTL.
        key_builder: Maps a request to a cache key; defaults to method plus
            normalized path and sorted query string.
        should_cache: Decides whether a (request, status) pair is stored.

    Raises:
        TypeError: If the endpoint has no ``request`` parameter.
    """

    build_key = key_builder or default_key_builder
    storable = should_cache or default_should_cache

    def decorator(endpoint: Callable[..., Any]) -> Callable[..., Any]:
        if "request" not in inspect.signature(endpoint).parameters:
            raise TypeError(
                f"{endpoint.__name__} must accept a 'request: Request' parameter to be cached"
            )

        @functools.wraps(endpoint)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            request: Request = kwargs["request"]
            if request.method != "GET":
                return await _call_endpoint(endpoint, *args, **kwargs)

            cache = get_response_cache(request)
            cache_key = build_key(request)

            cached = cache.get(cache_key, _MISS)
            if cached is not _MISS:
                logger.debug("response_cache.hit", extra={"cache_key": cache_key})
                return JSONResponse(content=cached, headers={CACHE_HEADER: "HIT"})

            result = await _call_endpoint(endpoint, *args, **kwargs)
            payload, status_code, response = _extract_payload(result)

            if payload is not _MISS and storable(request, status_code):
                cache.set(cache_key, payload, ttl_seconds)
                logger.debug(
                    "response_cache.store",
                    extra={"cache_key": cache_key, "status_code": status_code},
                )

            if response is None:
                response = JSONResponse(content=payload, status_code=status_code)
            response.headers[CACHE_HEADER] = "MISS"
            return response

        return wrapper

    return decorator
