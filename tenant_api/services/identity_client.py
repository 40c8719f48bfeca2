"""HTTP client for the hosted identity service.

The identity service owns users and session tokens.  This service never
decodes a token itself; it asks GET {IDENTITY_URL}/auth/v1/user with the
caller's bearer token and the service key, and trusts the answer.

One httpx.AsyncClient is created in the FastAPI lifespan and shared by
every request (connection pooling).  Tests build an IdentityClient over
an httpx.MockTransport instead.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx

from tenant_api.core.config import SETTINGS
from tenant_api.models.principal import Principal

logger = logging.getLogger(__name__)

USER_PATH = "/auth/v1/user"


class IdentityServiceError(Exception):
    """The identity service could not be reached or gave an unusable answer."""


class TokenRejectedError(Exception):
    """The identity service answered, and the answer was "no such session"."""


class IdentityClient:
    def __init__(self, http: httpx.AsyncClient, service_key: str) -> None:
        self._http = http
        self._service_key = service_key

    async def get_user(self, token: str) -> Principal:
        """Resolve a session token into the user it belongs to.

        Raises TokenRejectedError on 401/403, IdentityServiceError on
        transport failures, timeouts, other statuses and malformed bodies.
        """
        try:
            response = await self._http.get(
                USER_PATH,
                headers={
                    "apikey": self._service_key,
                    "Authorization": f"Bearer {token}",
                },
            )
        except httpx.HTTPError as exc:
            raise IdentityServiceError(f"identity request failed: {exc!r}") from exc

        if response.status_code in (401, 403):
            raise TokenRejectedError(f"identity service returned {response.status_code}")
        if response.status_code != 200:
            raise IdentityServiceError(
                f"identity service returned {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise IdentityServiceError("identity response is not JSON") from exc

        user_id = body.get("id") if isinstance(body, dict) else None
        if not user_id:
            raise IdentityServiceError("identity response has no user id")
        return Principal(id=str(user_id), email=body.get("email") or "")

    async def aclose(self) -> None:
        await self._http.aclose()


def build_identity_client(transport: httpx.AsyncBaseTransport | None = None) -> IdentityClient:
    http = httpx.AsyncClient(
        base_url=SETTINGS.identity_url,
        timeout=SETTINGS.identity_timeout_seconds,
        transport=transport,
    )
    return IdentityClient(http, SETTINGS.identity_service_key)


@asynccontextmanager
async def lifespan_identity(app) -> AsyncGenerator[None, None]:
    client = build_identity_client()
    app.state.identity_client = client
    logger.info("Identity client ready: %s", SETTINGS.identity_url)
    try:
        yield
    finally:
        await client.aclose()
        logger.info("Identity client closed")
