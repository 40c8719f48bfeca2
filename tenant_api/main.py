from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tenant_api.api.errors import register_error_handlers
from tenant_api.api.health import router as health_router
from tenant_api.api.invitations import router as invitations_router
from tenant_api.api.me import router as me_router
from tenant_api.api.metrics_endpoint import router as metrics_router
from tenant_api.api.orgs import router as orgs_router
from tenant_api.api.plans import router as plans_router
from tenant_api.core.config import SETTINGS
from tenant_api.core.logging import setup_logging
from tenant_api.db.engine import lifespan_db
from tenant_api.db.redis import lifespan_redis
from tenant_api.middleware.metrics import MetricsMiddleware
from tenant_api.middleware.request_context import RequestContextMiddleware
from tenant_api.services.identity_client import lifespan_identity

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # nested so teardown runs in reverse order
    async with lifespan_db():
        async with lifespan_redis():
            async with lifespan_identity(app):
                yield


app = FastAPI(
    title="tenant-api",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(SETTINGS.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last added runs first: RequestContext → Metrics → CORS → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

register_error_handlers(app)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(me_router)
app.include_router(invitations_router)
app.include_router(orgs_router)
app.include_router(plans_router)

logger.info(
    "tenant-api started  env=%s log_level=%s port=%d store=%s docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "postgres" if SETTINGS.database_url else "memory",
    "on" if SETTINGS.is_dev else "off",
)
