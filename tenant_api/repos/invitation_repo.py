from __future__ import annotations

import secrets
from dataclasses import replace
from datetime import datetime
from typing import Protocol
from uuid import UUID

from tenant_api.core.errors import InvitationOperationError, StoreErrorCode
from tenant_api.models.invitation import Invitation, InvitationRecord
from tenant_api.models.organization import Membership, RoleType
from tenant_api.repos.memory import InMemoryStore
from tenant_api.repos.org_membership_repo import insert_membership

# 32 random bytes, URL-safe: long enough that guessing is hopeless.
TOKEN_BYTES = 32


class InvitationRepo(Protocol):
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
    ) -> str: ...
    async def validate_invitation_token(self, token: str) -> InvitationRecord | None: ...
    async def process_invitation(self, token: str, user_id: str) -> bool: ...
    async def revoke_invitation(self, token: str) -> bool: ...
    async def list_pending(self, org_id: UUID) -> list[Invitation]: ...
    async def count_pending(self, org_id: UUID) -> int: ...


class InMemoryInvitationRepo:
    """Mirrors the invitation stored procedures against an InMemoryStore."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

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
        if organization_id not in self._store.organizations:
            raise InvitationOperationError(
                "Invite organization member",
                f"organization {organization_id} does not exist",
                "Unable to send invitation. Please try again.",
                StoreErrorCode.CREATE_FAILED,
                conflict=True,
            )
        token = secrets.token_urlsafe(TOKEN_BYTES)
        self._store.invitations[token] = Invitation.new(
            token=token,
            organization_id=organization_id,
            email=email,
            org_role=org_role,
            team_role=team_role,
            invited_by=invited_by,
            expires_at=expires_at,
            team_id=team_id,
        )
        return token

    async def validate_invitation_token(self, token: str) -> InvitationRecord | None:
        invitation = self._store.invitations.get(token)
        if invitation is None:
            return None
        org = self._store.organizations.get(invitation.organization_id)
        if org is None:
            return None
        return InvitationRecord(invitation=invitation, organization_name=org.name)

    async def process_invitation(self, token: str, user_id: str) -> bool:
        """Consume a pending invitation and create the membership it grants.

        Check, insert and mark happen without yielding, so concurrent
        callers on the same token see exactly one success.  A duplicate
        membership raises and leaves the invitation pending.
        """
        invitation = self._store.invitations.get(token)
        now = self._store.clock()
        if invitation is None or not invitation.is_pending(now):
            return False

        membership = Membership.new(
            organization_id=invitation.organization_id,
            user_id=user_id,
            org_role=invitation.org_role,
            team_id=invitation.team_id,
            team_role=invitation.team_role if invitation.team_id else None,
        )
        insert_membership(self._store, membership, "Process invitation")
        self._store.invitations[token] = replace(
            invitation, consumed_at=now, consumed_by=user_id
        )
        return True

    async def revoke_invitation(self, token: str) -> bool:
        invitation = self._store.invitations.get(token)
        now = self._store.clock()
        if invitation is None or not invitation.is_pending(now):
            return False
        self._store.invitations[token] = replace(invitation, revoked_at=now)
        return True

    async def list_pending(self, org_id: UUID) -> list[Invitation]:
        now = self._store.clock()
        pending = [
            i
            for i in self._store.invitations.values()
            if i.organization_id == org_id and i.is_pending(now)
        ]
        return sorted(pending, key=lambda i: i.created_at)

    async def count_pending(self, org_id: UUID) -> int:
        return len(await self.list_pending(org_id))
