"""Request context middleware.

Assigns every request an id (the caller's X-Request-ID, or a fresh
UUID), times it, and logs one summary line when it completes.  The id is
stored in request_id_var so every log line emitted while serving the
request carries it (see tenant_api.core.logging).
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from tenant_api.core.logging import request_id_var, user_id_var

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)
        user_id_var.set("-")

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        path = route_path(request)
        logger.info(
            "%s %s → %d (%.1fms)",
            request.method,
            path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response


def route_path(request: Request) -> str:
    """The matched route template (/invitations/{token}), else the raw path.

    Invitation tokens are credentials and must not reach logs or metric
    labels.
    """
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template or request.url.path
