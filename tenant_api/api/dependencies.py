from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from tenant_api.core.logging import user_id_var
from tenant_api.db import engine as db_engine
from tenant_api.models.principal import Principal
from tenant_api.repos.registry import Repos, in_memory_repos, memory_store, pg_repos
from tenant_api.services.identity_client import IdentityClient
from tenant_api.services.token_verifier import UnauthorizedError, verify_bearer

logger = logging.getLogger(__name__)


def get_identity_client(request: Request) -> IdentityClient:
    """The process-wide identity client created in the app lifespan."""
    return request.app.state.identity_client


async def require_principal(
    request: Request,
    client: Annotated[IdentityClient, Depends(get_identity_client)],
) -> Principal:
    """Resolve the bearer token into a Principal, or answer 401.

    Used as a FastAPI dependency on every endpoint that needs a caller.
    """
    try:
        principal = await verify_bearer(request.headers.get("authorization"), client)
    except UnauthorizedError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "UNAUTHORIZED", "message": exc.message},
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    user_id_var.set(principal.id)
    request.state.principal = principal
    return principal


async def get_repos() -> AsyncGenerator[Repos, None]:
    """Request-scoped repos.

    PostgreSQL when DATABASE_URL is configured (one session per request,
    committed when the handler returns normally); the shared in-memory
    store otherwise.
    """
    if db_engine.async_session_factory is None:
        yield in_memory_repos(memory_store)
        return

    async with db_engine.session_scope() as session:
        yield pg_repos(session)


CurrentPrincipal = Annotated[Principal, Depends(require_principal)]
RequestRepos = Annotated[Repos, Depends(get_repos)]
