from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity resolved from a bearer token.

    Built by the token verifier from the identity service's answer and
    handed to endpoints through FastAPI's dependency system.  Lives for
    one request; never written to the store by this service.
    """

    id: str
    email: str
