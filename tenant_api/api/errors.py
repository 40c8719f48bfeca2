"""Translate errors into the JSON error body.

Every error response has the same shape::

    {"error": {"code": "NOT_FOUND", "message": "Organization not found."}}

The message is the user-facing one when the error carries it, otherwise
a generic phrase.  Developer messages and causes stay in the log.
"""

from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tenant_api.core.errors import StoreErrorCode, StoreOperationError

logger = logging.getLogger(__name__)

_STATUS_BY_CODE: dict[StoreErrorCode, int] = {
    # the caller is authenticated (401 is decided earlier) but not allowed
    StoreErrorCode.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    StoreErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    StoreErrorCode.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    StoreErrorCode.EXPIRED: status.HTTP_410_GONE,
}


def status_for(exc: StoreOperationError) -> int:
    if exc.conflict:
        return status.HTTP_409_CONFLICT
    return _STATUS_BY_CODE.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def error_body(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


async def store_error_handler(request: Request, exc: StoreOperationError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(
            "%s %s failed: %s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
            extra={"operation": exc.operation, "error_code": exc.code.value},
        )
        message = exc.user_message or "Something went wrong. Please try again."
    else:
        logger.warning(
            "%s: %s",
            exc.code.value,
            exc,
            extra={"operation": exc.operation, "error_code": exc.code.value},
        )
        message = exc.user_message or HTTPStatus(status_code).phrase
    return JSONResponse(status_code=status_code, content=error_body(exc.code.value, message))


async def http_error_handler(
    _request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if isinstance(exc.detail, dict) and "code" in exc.detail:
        body = error_body(exc.detail["code"], exc.detail.get("message", ""))
    else:
        phrase = HTTPStatus(exc.status_code)
        body = error_body(phrase.name, str(exc.detail or phrase.phrase))
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


async def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields = [".".join(str(p) for p in err["loc"][1:]) for err in exc.errors()]
    logger.info("Request validation failed fields=%s", fields)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(
            StoreErrorCode.VALIDATION_FAILED.value,
            "Invalid request: " + ", ".join(f for f in fields if f),
        ),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StoreOperationError, store_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
