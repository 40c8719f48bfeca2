"""Token-bucket rate limiting.

A bucket holds up to ``capacity`` tokens and refills at ``refill_rate``
tokens per second; each request spends one.  Short bursts are allowed,
the long-run rate is bounded.  Only two numbers are kept per key.

Used on the invitation-token routes, where an unthrottled caller could
walk the token space.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """retry_after is in seconds and 0 when the request was allowed."""

    allowed: bool
    remaining: int
    limit: int
    retry_after: float


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    capacity: int = 30
    refill_rate: float = 0.5


@runtime_checkable
class RateLimiter(Protocol):
    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult: ...
    async def reset(self, key: str) -> None: ...


class InMemoryRateLimiter:
    """Per-process buckets.  Each API replica counts separately."""

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        # key -> (tokens, last_refill)
        self._buckets: dict[str, tuple[float, float]] = {}

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        now = self._clock()
        tokens, last_refill = self._buckets.get(key, (float(config.capacity), now))
        tokens = min(config.capacity, tokens + (now - last_refill) * config.refill_rate)

        if tokens >= 1:
            tokens -= 1
            self._buckets[key] = (tokens, now)
            return RateLimitResult(
                allowed=True,
                remaining=int(tokens),
                limit=config.capacity,
                retry_after=0,
            )

        self._buckets[key] = (tokens, now)
        return RateLimitResult(
            allowed=False,
            remaining=0,
            limit=config.capacity,
            retry_after=(1 - tokens) / config.refill_rate,
        )

    async def reset(self, key: str) -> None:
        self._buckets.pop(key, None)

    def clear(self) -> None:
        self._buckets.clear()


class RedisRateLimiter:
    """Buckets shared by every replica, kept in Redis hashes.

    The read-refill-spend-write cycle runs as one Lua script so two
    replicas cannot both spend the same token.
    """

    # KEYS[1] bucket key; ARGV capacity, refill_rate, now (seconds)
    # returns {allowed, remaining, retry_after_ms}
    _LUA_SCRIPT = """
    local capacity = tonumber(ARGV[1])
    local refill_rate = tonumber(ARGV[2])
    local now = tonumber(ARGV[3])
    local ttl = math.ceil(capacity / refill_rate) + 60

    local bucket = redis.call('HMGET', KEYS[1], 'tokens', 'last_refill')
    local tokens = tonumber(bucket[1]) or capacity
    local last_refill = tonumber(bucket[2]) or now

    tokens = math.min(capacity, tokens + (now - last_refill) * refill_rate)

    local allowed = 0
    local retry_after_ms = 0
    if tokens >= 1 then
        tokens = tokens - 1
        allowed = 1
    else
        retry_after_ms = math.ceil((1 - tokens) / refill_rate * 1000)
    end

    redis.call('HSET', KEYS[1], 'tokens', tokens, 'last_refill', now)
    redis.call('EXPIRE', KEYS[1], ttl)
    return {allowed, math.floor(tokens), retry_after_ms}
    """

    def __init__(self, redis_client, prefix: str = "ratelimit:") -> None:
        self._redis = redis_client
        self._prefix = prefix
        self._script = redis_client.register_script(self._LUA_SCRIPT)

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        allowed, remaining, retry_after_ms = await self._script(
            keys=[self._prefix + key],
            args=[config.capacity, config.refill_rate, time.time()],
        )
        return RateLimitResult(
            allowed=bool(allowed),
            remaining=int(remaining),
            limit=config.capacity,
            retry_after=int(retry_after_ms) / 1000,
        )

    async def reset(self, key: str) -> None:
        await self._redis.delete(self._prefix + key)
