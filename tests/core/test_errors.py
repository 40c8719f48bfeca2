from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError, NoResultFound, OperationalError

from tenant_api.api.errors import error_body, status_for
from tenant_api.core.errors import (
    InvitationOperationError,
    StoreErrorCode,
    StoreOperationError,
    translate_store_errors,
)


class _UniqueViolation(Exception):
    pass


def test_store_error_carries_its_parts() -> None:
    cause = RuntimeError("socket closed")
    exc = StoreOperationError(
        "Create team",
        "insert failed",
        "Unable to create team.",
        StoreErrorCode.CREATE_FAILED,
        cause,
    )
    assert exc.operation == "Create team"
    assert exc.message == "insert failed"
    assert exc.user_message == "Unable to create team."
    assert exc.code is StoreErrorCode.CREATE_FAILED
    assert exc.cause is cause
    assert exc.__cause__ is cause
    assert str(exc) == "Create team failed: insert failed"
    assert exc.conflict is False


def test_integrity_error_becomes_conflict() -> None:
    orig = _UniqueViolation("duplicate key value violates unique constraint")
    with pytest.raises(InvitationOperationError) as exc_info:
        with translate_store_errors(
            "Invite organization member",
            StoreErrorCode.CREATE_FAILED,
            "Unable to send invitation.",
            error_cls=InvitationOperationError,
        ):
            raise IntegrityError("INSERT INTO invitations", {}, orig)

    exc = exc_info.value
    assert exc.code is StoreErrorCode.CREATE_FAILED
    assert exc.conflict is True
    assert exc.user_message == "Unable to send invitation."
    assert isinstance(exc.cause, IntegrityError)


def test_no_result_becomes_not_found() -> None:
    with pytest.raises(StoreOperationError) as exc_info:
        with translate_store_errors("Get organization", StoreErrorCode.READ_FAILED):
            raise NoResultFound("No row was found when one was required")
    assert exc_info.value.code is StoreErrorCode.NOT_FOUND


def test_other_store_errors_keep_operation_code() -> None:
    with pytest.raises(StoreOperationError) as exc_info:
        with translate_store_errors("Revoke invitation", StoreErrorCode.DELETE_FAILED):
            raise OperationalError("SELECT revoke_invitation(...)", {}, OSError("gone"))
    assert exc_info.value.code is StoreErrorCode.DELETE_FAILED
    assert exc_info.value.conflict is False


@pytest.mark.parametrize(
    "raised",
    [ConnectionRefusedError(111, "Connect call failed"), TimeoutError("timed out")],
)
def test_connection_errors_are_wrapped(raised: OSError) -> None:
    with pytest.raises(InvitationOperationError) as exc_info:
        with translate_store_errors(
            "Process invitation",
            StoreErrorCode.UPDATE_FAILED,
            "Unable to accept invitation.",
            error_cls=InvitationOperationError,
        ):
            raise raised

    exc = exc_info.value
    assert exc.code is StoreErrorCode.UPDATE_FAILED
    assert exc.cause is raised
    assert exc.conflict is False
    assert status_for(exc) == 500


def test_typed_errors_pass_through_untouched() -> None:
    original = InvitationOperationError(
        "Validate invitation token", "expired", code=StoreErrorCode.EXPIRED
    )
    with pytest.raises(InvitationOperationError) as exc_info:
        with translate_store_errors("Validate invitation token", StoreErrorCode.READ_FAILED):
            raise original
    assert exc_info.value is original


def test_unrelated_exceptions_are_not_wrapped() -> None:
    with pytest.raises(KeyError):
        with translate_store_errors("Get organization", StoreErrorCode.READ_FAILED):
            raise KeyError("id")


@pytest.mark.parametrize(
    ("code", "conflict", "expected"),
    [
        (StoreErrorCode.NOT_FOUND, False, 404),
        (StoreErrorCode.UNAUTHORIZED, False, 403),
        (StoreErrorCode.VALIDATION_FAILED, False, 400),
        (StoreErrorCode.EXPIRED, False, 410),
        (StoreErrorCode.CREATE_FAILED, True, 409),
        (StoreErrorCode.DELETE_FAILED, True, 409),
        (StoreErrorCode.CREATE_FAILED, False, 500),
        (StoreErrorCode.READ_FAILED, False, 500),
        (StoreErrorCode.UNKNOWN_ERROR, False, 500),
    ],
)
def test_status_for(code: StoreErrorCode, conflict: bool, expected: int) -> None:
    exc = StoreOperationError("op", "msg", code=code, conflict=conflict)
    assert status_for(exc) == expected


def test_error_body_shape() -> None:
    assert error_body("EXPIRED", "This invitation has expired.") == {
        "error": {"code": "EXPIRED", "message": "This invitation has expired."}
    }
