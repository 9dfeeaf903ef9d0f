"""Fixed-window rate limiting for checkout endpoints (in-memory and Redis)."""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from fastapi import Request

from app.core.config import Settings, get_settings
from app.shared.exceptions import RateLimitException


class RateLimiter(Protocol):
    """Common contract for limiter backends."""

    async def hit(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
        """Count one request; return (allowed, retry_after_seconds)."""

    async def reset(self) -> None:
        """Forget all counters."""


def _window_bounds(now: float, window_seconds: int) -> tuple[int, float]:
    window_index = int(now // window_seconds)
    window_end = (window_index + 1) * window_seconds
    return window_index, window_end


class InMemoryFixedWindowRateLimiter:
    """Per-process limiter counting requests per key and window."""

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._counters: dict[str, tuple[int, int]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock or time.monotonic

    async def hit(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
        now = self._clock()
        window_index, window_end = _window_bounds(now, window_seconds)

        async with self._lock:
            stored_window, count = self._counters.get(key, (window_index, 0))
            if stored_window != window_index:
                count = 0
            if count >= limit:
                return False, max(1, math.ceil(window_end - now))
            self._counters[key] = (window_index, count + 1)
            return True, 0

    async def reset(self) -> None:
        async with self._lock:
            self._counters.clear()


class RedisFixedWindowRateLimiter:
    """Redis limiter shared by all API replicas."""

    def __init__(
        self,
        *,
        redis_url: str,
        namespace: str,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._redis_url = redis_url
        self._namespace = namespace
        self._clock = clock or time.time
        self._client: Any | None = None

    def _client_or_connect(self) -> Any:
        if self._client is None:
            from redis.asyncio import from_url

            self._client = from_url(self._redis_url, encoding="utf-8", decode_responses=True)
        return self._client

    async def hit(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
        client = self._client_or_connect()
        now = self._clock()
        window_index, window_end = _window_bounds(now, window_seconds)
        storage_key = f"{self._namespace}:{key}:{window_index}"

        async with client.pipeline(transaction=True) as pipe:
            pipe.incr(storage_key)
            pipe.expire(storage_key, window_seconds + 1)
            count, _ = await pipe.execute()

        if int(count) > limit:
            return False, max(1, math.ceil(window_end - now))
        return True, 0

    async def reset(self) -> None:
        client = self._client_or_connect()
        async for key in client.scan_iter(match=f"{self._namespace}:*", count=100):
            await client.delete(key)


_rate_limiter: RateLimiter | None = None
_rate_limiter_signature: tuple[str, str | None, str] | None = None


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.checkout_rate_limit_backend == "redis":
        return RedisFixedWindowRateLimiter(
            redis_url=settings.redis_url or "",
            namespace=settings.checkout_rate_limit_redis_namespace,
        )
    return InMemoryFixedWindowRateLimiter()


def get_rate_limiter() -> RateLimiter:
    """Return shared limiter for configured backend."""
    global _rate_limiter, _rate_limiter_signature
    settings = get_settings()
    signature = (
        settings.checkout_rate_limit_backend,
        settings.redis_url,
        settings.checkout_rate_limit_redis_namespace,
    )
    if _rate_limiter is None or _rate_limiter_signature != signature:
        _rate_limiter = build_rate_limiter(settings)
        _rate_limiter_signature = signature
    return _rate_limiter


def resolve_client_ip(request: Request, *, trusted_proxy_ips: tuple[str, ...]) -> str:
    """Client address, honouring X-Forwarded-For only behind trusted proxies."""
    client_ip = request.client.host if request.client and request.client.host else "unknown"
    forwarded_for = request.headers.get("x-forwarded-for")
    if not forwarded_for or client_ip not in trusted_proxy_ips:
        return client_ip
    return forwarded_for.split(",")[0].strip() or client_ip


def checkout_rate_limit(action: str) -> Callable[[Request], Awaitable[None]]:
    """Build dependency limiting booking/payment creation per client."""

    async def dependency(request: Request) -> None:
        settings = get_settings()
        limit = (
            settings.checkout_rate_limit_payment_requests
            if action == "payment"
            else settings.checkout_rate_limit_booking_requests
        )
        client_ip = resolve_client_ip(
            request,
            trusted_proxy_ips=settings.checkout_rate_limit_trusted_proxy_ips,
        )
        allowed, retry_after = await get_rate_limiter().hit(
            f"checkout:{action}:{client_ip}",
            limit=limit,
            window_seconds=settings.checkout_rate_limit_window_seconds,
        )
        if not allowed:
            raise RateLimitException(
                f"Too many {action} requests. Try again in {retry_after} second(s).",
            )

    return dependency
