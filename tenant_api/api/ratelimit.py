"""Rate limiting dependency for FastAPI routes.

A dependency rather than middleware: only the routes that declare it are
limited, each with its own bucket size.  Buckets are keyed per route and
per authenticated principal, so one noisy user cannot exhaust another's
budget.

If Redis is configured but failing, requests are allowed through and the
failure is logged; the limiter is a guard, not a dependency the
invitation flow should go down with.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Response, status
from redis.exceptions import RedisError

from tenant_api.api.dependencies import require_principal
from tenant_api.core.metrics import RATE_LIMIT_HITS
from tenant_api.db.redis import redis_pool
from tenant_api.models.principal import Principal
from tenant_api.services.rate_limiter import (
    InMemoryRateLimiter,
    RateLimitConfig,
    RateLimiter,
    RedisRateLimiter,
)

logger = logging.getLogger(__name__)

if redis_pool is not None:
    rate_limiter: RateLimiter = RedisRateLimiter(redis_pool)
else:
    rate_limiter = InMemoryRateLimiter()


def require_rate_limit(route: str, config: RateLimitConfig = RateLimitConfig()):
    """Dependency factory: spend one token from the caller's bucket for *route*.

    Usage::

        @router.post(
            "/invitations/{token}/redeem",
            dependencies=[Depends(require_rate_limit("redeem"))],
        )
    """

    async def _check(
        response: Response,
        principal: Annotated[Principal, Depends(require_principal)],
    ) -> None:
        key = f"{route}:user:{principal.id}"
        try:
            result = await rate_limiter.check(key, config)
        except RedisError:
            logger.exception("Rate limiter unavailable, allowing request route=%s", route)
            return

        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        if result.allowed:
            return

        RATE_LIMIT_HITS.labels(route=route).inc()
        logger.warning("Rate limit exceeded route=%s user=%s", route, principal.id)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"code": "RATE_LIMITED", "message": "Too many requests"},
            headers={
                "Retry-After": str(int(result.retry_after) + 1),
                "X-RateLimit-Limit": str(result.limit),
                "X-RateLimit-Remaining": "0",
            },
        )

    return _check
