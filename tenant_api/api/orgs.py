"""Organization endpoints.

Onboarding (create an organization with its default team), membership
and team management, and the organization's subscription plan.  Any
member can read; changes need the organization admin role.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field

from tenant_api.api.dependencies import CurrentPrincipal, RequestRepos
from tenant_api.api.plans import PlanOut
from tenant_api.core.errors import OrganizationOperationError, StoreErrorCode
from tenant_api.models.organization import Membership, Organization, Team
from tenant_api.models.subscription_plan import SubscriptionPlan
from tenant_api.repos.registry import Repos
from tenant_api.services import organization_service, plan_gate

router = APIRouter(prefix="/orgs", tags=["orgs"])


# --- Pydantic schemas ---


class OrgCreateIn(BaseModel):
    name: str
    billing_email: str
    team_name: str
    role_type: str
    goals: list[str] = Field(default_factory=list)
    team_website: str | None = None
    referral_source: str | None = None


class OrgOut(BaseModel):
    id: UUID
    name: str
    billing_email: str
    subscription_plan_id: UUID | None
    created_at: datetime

    @classmethod
    def from_org(cls, org: Organization) -> OrgOut:
        return cls(
            id=org.id,
            name=org.name,
            billing_email=org.billing_email,
            subscription_plan_id=org.subscription_plan_id,
            created_at=org.created_at,
        )


class OrgUpdateIn(BaseModel):
    name: str | None = None
    billing_email: str | None = None


class TeamIn(BaseModel):
    name: str
    website: str | None = None


class TeamUpdateIn(BaseModel):
    name: str | None = None
    website: str | None = None


class TeamOut(BaseModel):
    id: UUID
    organization_id: UUID
    name: str
    website: str | None

    @classmethod
    def from_team(cls, team: Team) -> TeamOut:
        return cls(
            id=team.id,
            organization_id=team.organization_id,
            name=team.name,
            website=team.website,
        )


class OrgCreatedOut(BaseModel):
    organization: OrgOut
    team: TeamOut


class MemberOut(BaseModel):
    user_id: str
    org_role: str
    team_id: UUID | None
    team_role: str | None

    @classmethod
    def from_membership(cls, m: Membership) -> MemberOut:
        return cls(
            user_id=m.user_id,
            org_role=m.org_role.value,
            team_id=m.team_id,
            team_role=m.team_role.value if m.team_role else None,
        )


class MemberRoleIn(BaseModel):
    org_role: str


class OrgPlanOut(BaseModel):
    plan: PlanOut
    members: int
    seats_available: int | None


class OrgPlanIn(BaseModel):
    plan_id: UUID


# --- Endpoints ---


@router.post("", response_model=OrgCreatedOut, status_code=status.HTTP_201_CREATED)
async def create_org(
    body: OrgCreateIn,
    principal: CurrentPrincipal,
    repos: RequestRepos,
) -> OrgCreatedOut:
    """Create an organization and its first team.  The caller becomes admin of both."""
    profile = organization_service.build_profile(
        body.role_type, body.goals, body.referral_source, body.team_website
    )
    org, team = await organization_service.create_organization(
        repos,
        name=body.name,
        billing_email=body.billing_email,
        user_id=principal.id,
        team_name=body.team_name,
        profile=profile,
    )
    return OrgCreatedOut(organization=OrgOut.from_org(org), team=TeamOut.from_team(team))


@router.get("", response_model=list[OrgOut])
async def list_orgs(principal: CurrentPrincipal, repos: RequestRepos) -> list[OrgOut]:
    orgs = await organization_service.list_organizations(repos, principal.id)
    return [OrgOut.from_org(o) for o in orgs]


@router.get("/{org_id}", response_model=OrgOut)
async def get_org(org_id: UUID, principal: CurrentPrincipal, repos: RequestRepos) -> OrgOut:
    await organization_service.require_member(repos, org_id, principal.id)
    return OrgOut.from_org(await organization_service.get_organization(repos, org_id))


@router.patch("/{org_id}", response_model=OrgOut)
async def update_org(
    org_id: UUID,
    body: OrgUpdateIn,
    principal: CurrentPrincipal,
    repos: RequestRepos,
) -> OrgOut:
    await organization_service.require_admin(repos, org_id, principal.id)
    org = await organization_service.update_organization(
        repos, org_id, name=body.name, billing_email=body.billing_email
    )
    return OrgOut.from_org(org)


@router.delete("/{org_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_org(
    org_id: UUID, principal: CurrentPrincipal, repos: RequestRepos
) -> Response:
    """Delete the organization and everything in it.  Admins only."""
    await organization_service.require_admin(repos, org_id, principal.id)
    await organization_service.delete_organization(repos, org_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{org_id}/members", response_model=list[MemberOut])
async def list_members(
    org_id: UUID, principal: CurrentPrincipal, repos: RequestRepos
) -> list[MemberOut]:
    await organization_service.require_member(repos, org_id, principal.id)
    members = await organization_service.list_members(repos, org_id)
    return [MemberOut.from_membership(m) for m in members]


@router.delete("/{org_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    org_id: UUID,
    user_id: str,
    principal: CurrentPrincipal,
    repos: RequestRepos,
) -> Response:
    """Remove a member.  Admins may remove anyone; members may leave."""
    if user_id == principal.id:
        await organization_service.require_member(repos, org_id, principal.id)
    else:
        await organization_service.require_admin(repos, org_id, principal.id)
    await organization_service.remove_member(repos, org_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{org_id}/members/{user_id}", response_model=list[MemberOut])
async def change_member_role(
    org_id: UUID,
    user_id: str,
    body: MemberRoleIn,
    principal: CurrentPrincipal,
    repos: RequestRepos,
) -> list[MemberOut]:
    await organization_service.require_admin(repos, org_id, principal.id)
    updated = await organization_service.change_member_role(
        repos, org_id, user_id, body.org_role
    )
    return [MemberOut.from_membership(m) for m in updated]


@router.get("/{org_id}/teams", response_model=list[TeamOut])
async def list_teams(
    org_id: UUID, principal: CurrentPrincipal, repos: RequestRepos
) -> list[TeamOut]:
    await organization_service.require_member(repos, org_id, principal.id)
    teams = await organization_service.list_teams(repos, org_id)
    return [TeamOut.from_team(t) for t in teams]


@router.post("/{org_id}/teams", response_model=TeamOut, status_code=status.HTTP_201_CREATED)
async def create_team(
    org_id: UUID,
    body: TeamIn,
    principal: CurrentPrincipal,
    repos: RequestRepos,
) -> TeamOut:
    await organization_service.require_admin(repos, org_id, principal.id)
    team = await organization_service.create_team(repos, org_id, body.name, body.website)
    return TeamOut.from_team(team)


@router.patch("/{org_id}/teams/{team_id}", response_model=TeamOut)
async def update_team(
    org_id: UUID,
    team_id: UUID,
    body: TeamUpdateIn,
    principal: CurrentPrincipal,
    repos: RequestRepos,
) -> TeamOut:
    await organization_service.require_admin(repos, org_id, principal.id)
    team = await organization_service.update_team(
        repos, org_id, team_id, name=body.name, website=body.website
    )
    return TeamOut.from_team(team)


@router.delete("/{org_id}/teams/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_team(
    org_id: UUID,
    team_id: UUID,
    principal: CurrentPrincipal,
    repos: RequestRepos,
) -> Response:
    await organization_service.require_admin(repos, org_id, principal.id)
    await organization_service.delete_team(repos, org_id, team_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


async def _plan_summary(repos: Repos, org_id: UUID, plan: SubscriptionPlan) -> OrgPlanOut:
    members = await repos.memberships.count_members(org_id)
    used = await organization_service.member_count_with_pending(repos, org_id)
    return OrgPlanOut(
        plan=PlanOut.from_plan(plan),
        members=members,
        seats_available=plan_gate.seats_available(plan, used),
    )


@router.get("/{org_id}/plan", response_model=OrgPlanOut)
async def get_org_plan(
    org_id: UUID, principal: CurrentPrincipal, repos: RequestRepos
) -> OrgPlanOut:
    await organization_service.require_member(repos, org_id, principal.id)
    plan = await repos.plans.get_for_organization(org_id)
    if plan is None:
        raise OrganizationOperationError(
            "Get organization plan",
            f"organization {org_id} has no subscription plan",
            "This organization has no subscription plan.",
            StoreErrorCode.NOT_FOUND,
        )
    return await _plan_summary(repos, org_id, plan)


@router.put("/{org_id}/plan", response_model=OrgPlanOut)
async def set_org_plan(
    org_id: UUID,
    body: OrgPlanIn,
    principal: CurrentPrincipal,
    repos: RequestRepos,
) -> OrgPlanOut:
    """Switch the organization to another active plan.  Admins only."""
    await organization_service.require_admin(repos, org_id, principal.id)
    plan = await organization_service.assign_plan(repos, org_id, body.plan_id)
    return await _plan_summary(repos, org_id, plan)
