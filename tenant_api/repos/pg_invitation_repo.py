"""PostgreSQL implementation of InvitationRepo.

Issue, validate, redeem and revoke each call one stored procedure by
name.  The procedures (see the Alembic migration) own the atomicity:
process_invitation locks the invitation row, inserts the membership and
stamps accepted_at in a single transaction.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_api.core.errors import (
    InvitationOperationError,
    StoreErrorCode,
    translate_store_errors,
)
from tenant_api.db.tables import InvitationRow
from tenant_api.models.invitation import Invitation, InvitationRecord
from tenant_api.models.organization import RoleType

_INVITE_ORG_MEMBER = text(
    "SELECT invite_org_member("
    ":p_organization_id, :p_email, :p_org_role, :p_team_role, "
    ":p_invited_by, :p_expires_at, :p_team_id)"
)
_VALIDATE_INVITATION_TOKEN = text("SELECT * FROM validate_invitation_token(:p_token)")
_PROCESS_INVITATION = text("SELECT process_invitation(:p_token, :p_user_id)")
_REVOKE_INVITATION = text("SELECT revoke_invitation(:p_token)")


def _pending_clause(org_id: UUID):
    return (
        (InvitationRow.organization_id == org_id)
        & InvitationRow.accepted_at.is_(None)
        & InvitationRow.revoked_at.is_(None)
        & (InvitationRow.expires_at >= func.now())
    )


class PgInvitationRepo:
    """Satisfies the InvitationRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def invite_org_member(
        self,
        *,
        organization_id: UUID,
        email: str,
        org_role: RoleType,
        team_role: RoleType,
        invited_by: str,
        expires_at: datetime,
        team_id: UUID | None = None,
    ) -> str:
        with translate_store_errors(
            "Invite organization member",
            StoreErrorCode.CREATE_FAILED,
            "Unable to send invitation. Please try again.",
            error_cls=InvitationOperationError,
        ):
            result = await self._session.execute(
                _INVITE_ORG_MEMBER,
                {
                    "p_organization_id": organization_id,
                    "p_email": email,
                    "p_org_role": org_role.value,
                    "p_team_role": team_role.value,
                    "p_invited_by": invited_by,
                    "p_expires_at": expires_at,
                    "p_team_id": team_id,
                },
            )
            token = result.scalar_one_or_none()
        if not token:
            raise InvitationOperationError(
                "Invite organization member",
                "no invitation token returned",
                "Unable to send invitation. Please try again.",
                StoreErrorCode.CREATE_FAILED,
            )
        return token

    async def validate_invitation_token(self, token: str) -> InvitationRecord | None:
        with translate_store_errors(
            "Validate invitation token",
            StoreErrorCode.READ_FAILED,
            "Unable to check invitation. Please try again.",
            error_cls=InvitationOperationError,
        ):
            result = await self._session.execute(
                _VALIDATE_INVITATION_TOKEN, {"p_token": token}
            )
            row = result.mappings().first()
        if row is None:
            return None
        return InvitationRecord(
            invitation=_mapping_to_invitation(token, row),
            organization_name=row["organization_name"],
        )

    async def process_invitation(self, token: str, user_id: str) -> bool:
        with translate_store_errors(
            "Process invitation",
            StoreErrorCode.CREATE_FAILED,
            "Unable to accept invitation. Please try again.",
            error_cls=InvitationOperationError,
        ):
            result = await self._session.execute(
                _PROCESS_INVITATION, {"p_token": token, "p_user_id": user_id}
            )
            return bool(result.scalar_one())

    async def revoke_invitation(self, token: str) -> bool:
        with translate_store_errors(
            "Revoke invitation",
            StoreErrorCode.DELETE_FAILED,
            "Unable to revoke invitation. Please try again.",
            error_cls=InvitationOperationError,
        ):
            result = await self._session.execute(_REVOKE_INVITATION, {"p_token": token})
            return bool(result.scalar_one())

    async def list_pending(self, org_id: UUID) -> list[Invitation]:
        with translate_store_errors(
            "Get organization invitations",
            StoreErrorCode.READ_FAILED,
            "Unable to load invitations. Please refresh the page.",
            error_cls=InvitationOperationError,
        ):
            stmt = (
                select(InvitationRow)
                .where(_pending_clause(org_id))
                .order_by(InvitationRow.created_at)
            )
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_invitation(r) for r in rows]

    async def count_pending(self, org_id: UUID) -> int:
        with translate_store_errors(
            "Count organization invitations",
            StoreErrorCode.READ_FAILED,
            error_cls=InvitationOperationError,
        ):
            stmt = select(func.count(InvitationRow.id)).where(_pending_clause(org_id))
            return (await self._session.execute(stmt)).scalar_one()


def _mapping_to_invitation(token: str, row: Mapping[str, Any]) -> Invitation:
    return Invitation(
        id=row["id"],
        token=token,
        organization_id=row["organization_id"],
        team_id=row["team_id"],
        email=row["email"],
        org_role=RoleType(row["org_role"]),
        team_role=RoleType(row["team_role"]),
        invited_by=row["invited_by"],
        expires_at=row["expires_at"],
        created_at=row["created_at"],
        consumed_at=row["accepted_at"],
        consumed_by=row["accepted_by"],
        revoked_at=row["revoked_at"],
    )


def _row_to_invitation(row: InvitationRow) -> Invitation:
    return Invitation(
        id=row.id,
        token=row.token,
        organization_id=row.organization_id,
        team_id=row.team_id,
        email=row.email,
        org_role=RoleType(row.org_role),
        team_role=RoleType(row.team_role),
        invited_by=row.invited_by,
        expires_at=row.expires_at,
        created_at=row.created_at,
        consumed_at=row.accepted_at,
        consumed_by=row.accepted_by,
        revoked_at=row.revoked_at,
    )
