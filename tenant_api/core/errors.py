"""Typed error taxonomy for store and workflow failures.

Raw persistence exceptions (SQLAlchemy, asyncpg) never leave the repo
layer: they are wrapped into a StoreOperationError that names the
logical operation, carries a developer message, an optional message that
is safe to show to the end user, one StoreErrorCode, and the original
exception as ``cause``.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError

from tenant_api.core.metrics import STORE_ERRORS

logger = logging.getLogger(__name__)


class StoreErrorCode(str, enum.Enum):
    CREATE_FAILED = "CREATE_FAILED"
    READ_FAILED = "READ_FAILED"
    UPDATE_FAILED = "UPDATE_FAILED"
    DELETE_FAILED = "DELETE_FAILED"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    UNAUTHORIZED = "UNAUTHORIZED"
    EXPIRED = "EXPIRED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class StoreOperationError(Exception):
    def __init__(
        self,
        operation: str,
        message: str,
        user_message: str | None = None,
        code: StoreErrorCode = StoreErrorCode.UNKNOWN_ERROR,
        cause: BaseException | None = None,
        *,
        conflict: bool = False,
    ) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.message = message
        self.user_message = user_message
        self.code = code
        self.cause = cause
        self.conflict = conflict
        if cause is not None:
            self.__cause__ = cause


class OrganizationOperationError(StoreOperationError):
    pass


class InvitationOperationError(StoreOperationError):
    pass


@contextmanager
def translate_store_errors(
    operation: str,
    code: StoreErrorCode,
    user_message: str | None = None,
    *,
    error_cls: type[StoreOperationError] = StoreOperationError,
) -> Iterator[None]:
    """Wrap everything raised inside the block into *error_cls*.

    Typed errors raised deliberately inside the block pass through
    untouched.  A unique/foreign-key violation keeps *code* but is
    flagged ``conflict=True`` so the HTTP layer can answer 409.
    """
    try:
        yield
    except StoreOperationError:
        raise
    except IntegrityError as exc:
        STORE_ERRORS.labels(operation=operation, code=code.value).inc()
        logger.warning("%s violated a store constraint: %s", operation, exc.orig)
        raise error_cls(
            operation,
            "constraint violation",
            user_message,
            code,
            exc,
            conflict=True,
        ) from exc
    except NoResultFound as exc:
        STORE_ERRORS.labels(
            operation=operation, code=StoreErrorCode.NOT_FOUND.value
        ).inc()
        raise error_cls(
            operation, "no matching row", user_message, StoreErrorCode.NOT_FOUND, exc
        ) from exc
    except SQLAlchemyError as exc:
        STORE_ERRORS.labels(operation=operation, code=code.value).inc()
        logger.error("%s failed in the store: %s", operation, exc)
        raise error_cls(operation, str(exc), user_message, code, exc) from exc
    except OSError as exc:
        # asyncpg lets socket errors through unwrapped while connecting
        STORE_ERRORS.labels(operation=operation, code=code.value).inc()
        logger.error("%s could not reach the store: %s", operation, exc)
        raise error_cls(
            operation, f"connection failed: {exc}", user_message, code, exc
        ) from exc
