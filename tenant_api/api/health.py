"""Liveness and readiness probes.

/health answers "is the process alive" and always returns 200; the body
reports each backing service so a dashboard can show degradation.
/ready answers "should traffic be routed here" and returns 503 when the
database is configured but unreachable.  Redis is not critical: the rate
limiter fails open without it.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from tenant_api.db import engine as db_engine
from tenant_api.db.redis import redis_pool

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_database() -> str:
    if db_engine.engine is None:
        return "not_configured"
    try:
        await db_engine.ping_database()
    except (SQLAlchemyError, OSError):
        logger.warning("Database ping failed", exc_info=True)
        return "degraded"
    return "ok"


async def _check_redis() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except (RedisError, OSError):
        logger.warning("Redis ping failed", exc_info=True)
        return "degraded"
    return "ok"


@router.get("/health")
async def health() -> dict:
    checks = {"database": await _check_database(), "redis": await _check_redis()}
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {
        "status": overall,
        "timestamp": datetime.now(UTC).isoformat(),
        "checks": checks,
    }


@router.get("/ready")
async def ready() -> JSONResponse:
    database = await _check_database()
    if database == "degraded":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "checks": {"database": database}},
        )
    return JSONResponse(content={"status": "ready", "checks": {"database": database}})
