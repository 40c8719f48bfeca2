"""Invitation endpoints.

The token in the path is a bearer credential for joining an
organization: it is rate limited per caller on the validate and redeem
routes and never logged in full.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from tenant_api.api.dependencies import CurrentPrincipal, RequestRepos
from tenant_api.api.ratelimit import require_rate_limit
from tenant_api.core.errors import InvitationOperationError, StoreErrorCode
from tenant_api.models.invitation import Invitation, InvitationDetails
from tenant_api.services import invitation_service, organization_service, plan_gate

router = APIRouter(tags=["invitations"])


# --- Pydantic schemas ---


class InvitationCreateIn(BaseModel):
    organization_id: UUID
    email: str
    org_role: str = "member"
    team_role: str = "member"
    team_id: UUID | None = None
    expires_at: datetime | None = None


class InvitationCreatedOut(BaseModel):
    token: str
    expires_at: datetime


class InvitationDetailsOut(BaseModel):
    invitation_id: UUID
    organization_id: UUID
    organization_name: str
    team_id: UUID | None
    email: str
    org_role: str
    team_role: str
    expires_at: datetime

    @classmethod
    def from_details(cls, d: InvitationDetails) -> InvitationDetailsOut:
        return cls(
            invitation_id=d.invitation_id,
            organization_id=d.organization_id,
            organization_name=d.organization_name,
            team_id=d.team_id,
            email=d.email,
            org_role=d.org_role.value,
            team_role=d.team_role.value,
            expires_at=d.expires_at,
        )


class RedeemOut(BaseModel):
    redeemed: bool
    organization_id: UUID


class PendingInvitationOut(BaseModel):
    id: UUID
    email: str
    org_role: str
    team_role: str
    team_id: UUID | None
    invited_by: str
    expires_at: datetime
    created_at: datetime

    @classmethod
    def from_invitation(cls, i: Invitation) -> PendingInvitationOut:
        return cls(
            id=i.id,
            email=i.email,
            org_role=i.org_role.value,
            team_role=i.team_role.value,
            team_id=i.team_id,
            invited_by=i.invited_by,
            expires_at=i.expires_at,
            created_at=i.created_at,
        )


_INVALID_INVITATION = "invalid invitation"


# --- Endpoints ---


@router.post(
    "/invitations",
    response_model=InvitationCreatedOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_invitation(
    body: InvitationCreateIn,
    principal: CurrentPrincipal,
    repos: RequestRepos,
) -> InvitationCreatedOut:
    """Invite someone into an organization.  Organization admins only."""
    await organization_service.require_admin(repos, body.organization_id, principal.id)

    plan = await repos.plans.get_for_organization(body.organization_id)
    if plan is not None:
        used = await organization_service.member_count_with_pending(
            repos, body.organization_id
        )
        if plan_gate.seats_available(plan, used) == 0:
            raise InvitationOperationError(
                "Invite organization member",
                f"plan {plan.name!r} allows {plan.max_team_members} members, {used} in use",
                "Your plan's team member limit has been reached.",
                StoreErrorCode.VALIDATION_FAILED,
            )

    token, expires_at = await invitation_service.issue_invitation(
        repos,
        organization_id=body.organization_id,
        email=body.email,
        org_role=body.org_role,
        team_role=body.team_role,
        invited_by=principal.id,
        expires_at=body.expires_at,
        team_id=body.team_id,
    )
    return InvitationCreatedOut(token=token, expires_at=expires_at)


@router.get(
    "/invitations/{token}",
    response_model=InvitationDetailsOut,
    dependencies=[Depends(require_rate_limit("validate_invitation"))],
)
async def get_invitation(
    token: str,
    _principal: CurrentPrincipal,
    repos: RequestRepos,
) -> InvitationDetailsOut:
    details = await invitation_service.validate_token(repos, token)
    return InvitationDetailsOut.from_details(details)


@router.post(
    "/invitations/{token}/redeem",
    response_model=RedeemOut,
    dependencies=[Depends(require_rate_limit("redeem_invitation"))],
)
async def redeem_invitation(
    token: str,
    principal: CurrentPrincipal,
    repos: RequestRepos,
) -> RedeemOut:
    """Join the invitation's organization as the calling user."""
    if not await invitation_service.redeem(repos, token, principal.id):
        raise InvitationOperationError(
            "Process invitation",
            "invitation is unknown, expired, revoked or already used",
            _INVALID_INVITATION,
            StoreErrorCode.NOT_FOUND,
        )
    invitation = await invitation_service.get_invitation(repos, token)
    if invitation is None:
        raise InvitationOperationError(
            "Process invitation",
            "redeemed invitation disappeared",
            code=StoreErrorCode.READ_FAILED,
        )
    return RedeemOut(redeemed=True, organization_id=invitation.organization_id)


@router.delete("/invitations/{token}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_invitation(
    token: str,
    principal: CurrentPrincipal,
    repos: RequestRepos,
) -> Response:
    """Withdraw a pending invitation.  Admins of its organization only."""
    invitation = await invitation_service.get_invitation(repos, token)
    if invitation is None:
        raise InvitationOperationError(
            "Revoke invitation",
            "no such invitation",
            _INVALID_INVITATION,
            StoreErrorCode.NOT_FOUND,
        )
    await organization_service.require_admin(
        repos, invitation.organization_id, principal.id
    )

    if not await invitation_service.revoke(repos, token):
        raise InvitationOperationError(
            "Revoke invitation",
            f"invitation {invitation.id} is not pending",
            "This invitation is no longer pending.",
            StoreErrorCode.DELETE_FAILED,
            conflict=True,
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/orgs/{org_id}/invitations",
    response_model=list[PendingInvitationOut],
)
async def list_org_invitations(
    org_id: UUID,
    principal: CurrentPrincipal,
    repos: RequestRepos,
) -> list[PendingInvitationOut]:
    await organization_service.require_admin(repos, org_id, principal.id)
    pending = await invitation_service.list_pending(repos, org_id)
    return [PendingInvitationOut.from_invitation(i) for i in pending]

