from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID, uuid4

from tenant_api.models.organization import RoleType


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    CONSUMED = "consumed"
    REVOKED = "revoked"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class Invitation:
    """A single-use, time-bounded grant of organization membership.

    Only the consumed/revoked transitions are ever written.  Expiry is a
    read-time comparison against ``expires_at``.
    """

    id: UUID
    token: str
    organization_id: UUID
    email: str
    org_role: RoleType
    team_role: RoleType
    invited_by: str
    expires_at: datetime
    team_id: UUID | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    consumed_at: datetime | None = None
    consumed_by: str | None = None
    revoked_at: datetime | None = None

    @staticmethod
    def new(
        *,
        token: str,
        organization_id: UUID,
        email: str,
        org_role: RoleType,
        team_role: RoleType,
        invited_by: str,
        expires_at: datetime,
        team_id: UUID | None = None,
    ) -> Invitation:
        return Invitation(
            id=uuid4(),
            token=token,
            organization_id=organization_id,
            email=email,
            org_role=org_role,
            team_role=team_role,
            invited_by=invited_by,
            expires_at=expires_at,
            team_id=team_id,
        )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def status(self, now: datetime) -> InvitationStatus:
        if self.revoked_at is not None:
            return InvitationStatus.REVOKED
        if self.consumed_at is not None:
            return InvitationStatus.CONSUMED
        if self.is_expired(now):
            return InvitationStatus.EXPIRED
        return InvitationStatus.PENDING

    def is_pending(self, now: datetime) -> bool:
        return self.status(now) is InvitationStatus.PENDING


@dataclass(frozen=True, slots=True)
class InvitationDetails:
    """What a prospective member is shown before accepting an invitation."""

    invitation_id: UUID
    organization_id: UUID
    organization_name: str
    email: str
    org_role: RoleType
    team_role: RoleType
    expires_at: datetime
    team_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class InvitationRecord:
    """An invitation row joined with its organization's name."""

    invitation: Invitation
    organization_name: str
