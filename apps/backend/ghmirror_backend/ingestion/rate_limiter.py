"""Quota aware rate limiting for the GitHub REST and ZenHub APIs"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)

MAX_WAIT_SECONDS: float = 60.0


class QuotaLimiter(ABC):
    """Tracks remaining request quota per resource bucket ("core", "search", "zenhub").

    Clients call acquire() before each request and update() with what the
    response headers report. Unknown buckets are never throttled.
    """

    @abstractmethod
    async def acquire(self, resource: str = "core") -> None:
        ...

    @abstractmethod
    async def update(self, resource: str, remaining: int, reset_at: int) -> None:
        ...

    @abstractmethod
    async def get_remaining(self, resource: str = "core") -> int | None:
        ...


@dataclass
class _Bucket:
    remaining: int
    reset_at: float


class InMemoryQuotaLimiter(QuotaLimiter):
    """Single process limiter; buckets reset lazily once their reset time passes"""

    def __init__(self, reserve: int = 0):
        self._reserve = reserve
        self._buckets: dict[str, _Bucket] = {}
        self._lock = asyncio.Lock()
        self._total_acquired: int = 0

    def _maybe_reset(self, resource: str) -> None:
        """Must be called while holding _lock"""
        bucket = self._buckets.get(resource)
        if bucket and bucket.reset_at > 0 and time.time() >= bucket.reset_at:
            del self._buckets[resource]

    async def acquire(self, resource: str = "core") -> None:
        while True:
            async with self._lock:
                self._maybe_reset(resource)
                bucket = self._buckets.get(resource)
                if bucket is None or bucket.remaining > self._reserve:
                    if bucket is not None:
                        bucket.remaining -= 1
                    self._total_acquired += 1
                    return

                wait_seconds = max(0.0, bucket.reset_at - time.time())
                logger.info(
                    f"Quota for {resource} exhausted, waiting {wait_seconds:.0f}s until reset",
                    extra={"resource": resource, "wait_s": round(wait_seconds, 1)},
                )

            await asyncio.sleep(min(wait_seconds + 1, MAX_WAIT_SECONDS))

    async def update(self, resource: str, remaining: int, reset_at: int) -> None:
        async with self._lock:
            self._buckets[resource] = _Bucket(remaining=remaining, reset_at=float(reset_at))

    async def get_remaining(self, resource: str = "core") -> int | None:
        async with self._lock:
            self._maybe_reset(resource)
            bucket = self._buckets.get(resource)
            return bucket.remaining if bucket else None

    def get_total_acquired(self) -> int:
        return self._total_acquired


class RedisQuotaLimiter(QuotaLimiter):
    """Shares quota between processes using the same token; decrement is atomic in Lua"""

    KEY_PREFIX = "ghmirror:quota:"

    ACQUIRE_SCRIPT = """
    local remaining = redis.call('HGET', KEYS[1], 'remaining')
    local reset_at = tonumber(redis.call('HGET', KEYS[1], 'reset_at') or '0')
    if remaining == false then
        return -1
    end
    if reset_at > 0 and tonumber(ARGV[2]) >= reset_at then
        redis.call('DEL', KEYS[1])
        return -1
    end
    remaining = tonumber(remaining)
    if remaining > tonumber(ARGV[1]) then
        redis.call('HSET', KEYS[1], 'remaining', remaining - 1)
        return -1
    end
    return reset_at
    """

    def __init__(self, redis_client, reserve: int = 0):
        self._redis = redis_client
        self._reserve = reserve

    def _key(self, resource: str) -> str:
        return f"{self.KEY_PREFIX}{resource}"

    async def acquire(self, resource: str = "core") -> None:
        while True:
            reset_at = await self._redis.eval(
                self.ACQUIRE_SCRIPT,
                1,
                self._key(resource),
                str(self._reserve),
                str(int(time.time())),
            )
            if int(reset_at) < 0:
                return

            wait_seconds = max(0.0, int(reset_at) - time.time())
            logger.info(
                f"Shared quota for {resource} exhausted, waiting {wait_seconds:.0f}s until reset",
                extra={"resource": resource, "wait_s": round(wait_seconds, 1)},
            )
            await asyncio.sleep(min(wait_seconds + 1, MAX_WAIT_SECONDS))

    async def update(self, resource: str, remaining: int, reset_at: int) -> None:
        await self._redis.hset(
            self._key(resource),
            mapping={"remaining": remaining, "reset_at": reset_at},
        )

    async def get_remaining(self, resource: str = "core") -> int | None:
        remaining = await self._redis.hget(self._key(resource), "remaining")
        return int(remaining) if remaining is not None else None


def create_quota_limiter(redis_client=None, reserve: int = 0) -> QuotaLimiter:
    """Uses Redis if available; otherwise in memory"""
    if redis_client:
        logger.info("Using Redis-backed quota limiter")
        return RedisQuotaLimiter(redis_client, reserve=reserve)

    logger.info("Using in-memory quota limiter (single process only)")
    return InMemoryQuotaLimiter(reserve=reserve)
