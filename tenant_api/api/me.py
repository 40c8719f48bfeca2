from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from tenant_api.api.dependencies import CurrentPrincipal, RequestRepos

router = APIRouter(tags=["me"])


class MembershipOut(BaseModel):
    organization_id: UUID
    org_role: str
    team_id: UUID | None
    team_role: str | None


class MeOut(BaseModel):
    id: str
    email: str
    memberships: list[MembershipOut]


@router.get("/me", response_model=MeOut)
async def me(principal: CurrentPrincipal, repos: RequestRepos) -> MeOut:
    """The caller as the identity service knows them, plus where they belong."""
    memberships = await repos.memberships.list_by_user(principal.id)
    return MeOut(
        id=principal.id,
        email=principal.email,
        memberships=[
            MembershipOut(
                organization_id=m.organization_id,
                org_role=m.org_role.value,
                team_id=m.team_id,
                team_role=m.team_role.value if m.team_role else None,
            )
            for m in memberships
        ],
    )
