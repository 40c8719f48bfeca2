"""Turn an Authorization header into a Principal, or refuse.

Every failure (missing header, wrong scheme, empty token, identity
service says no, identity service unreachable) ends in the same
UnauthorizedError so callers cannot be used as an oracle.  The reason is
only logged and counted.
"""

from __future__ import annotations

import logging

from tenant_api.core.logging import token_fingerprint
from tenant_api.core.metrics import IDENTITY_LOOKUPS
from tenant_api.models.principal import Principal
from tenant_api.services.identity_client import (
    IdentityClient,
    IdentityServiceError,
    TokenRejectedError,
)

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


class UnauthorizedError(Exception):
    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)
        self.message = message


def extract_bearer(authorization: str | None) -> str | None:
    """Return the token part of "Bearer <token>", or None if malformed."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


async def verify_bearer(authorization: str | None, client: IdentityClient) -> Principal:
    token = extract_bearer(authorization)
    if token is None:
        logger.info("Rejected request without a bearer token")
        raise UnauthorizedError()

    try:
        principal = await client.get_user(token)
    except TokenRejectedError as exc:
        IDENTITY_LOOKUPS.labels(result="rejected").inc()
        logger.info("Identity service rejected token=%s: %s", token_fingerprint(token), exc)
        raise UnauthorizedError() from None
    except IdentityServiceError as exc:
        IDENTITY_LOOKUPS.labels(result="error").inc()
        logger.warning(
            "Identity lookup failed for token=%s: %s", token_fingerprint(token), exc
        )
        raise UnauthorizedError() from None

    IDENTITY_LOOKUPS.labels(result="ok").inc()
    logger.debug("Token resolved to user=%s", principal.id)
    return principal
