from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID, uuid4

from tenant_api.core.errors import OrganizationOperationError, StoreErrorCode
from tenant_api.models.organization import (
    Membership,
    OnboardingProfile,
    Organization,
    Role,
    RoleScope,
    RoleType,
    Team,
)
from tenant_api.repos.memory import InMemoryStore
from tenant_api.repos.org_membership_repo import insert_membership


class OrgRepo(Protocol):
    async def create_organization(
        self,
        *,
        name: str,
        billing_email: str,
        user_id: str,
        team_name: str,
        profile: OnboardingProfile,
    ) -> tuple[Organization, Team]: ...
    async def get_by_id(self, org_id: UUID) -> Organization | None: ...
    async def list_for_user(self, user_id: str) -> list[Organization]: ...
    async def update(
        self,
        org_id: UUID,
        *,
        name: str | None = None,
        billing_email: str | None = None,
    ) -> Organization | None: ...
    async def delete(self, org_id: UUID) -> bool: ...
    async def get_team(self, team_id: UUID) -> Team | None: ...
    async def list_teams(self, org_id: UUID) -> list[Team]: ...
    async def create_team(self, team: Team) -> None: ...
    async def update_team(
        self,
        team_id: UUID,
        *,
        name: str | None = None,
        website: str | None = None,
    ) -> Team | None: ...
    async def delete_team(self, team_id: UUID) -> bool: ...
    async def set_subscription_plan(
        self, org_id: UUID, plan_id: UUID | None
    ) -> Organization | None: ...
    async def get_or_create_role(self, scope: RoleScope, role_type: RoleType) -> Role: ...


class InMemoryOrgRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def create_organization(
        self,
        *,
        name: str,
        billing_email: str,
        user_id: str,
        team_name: str,
        profile: OnboardingProfile,
    ) -> tuple[Organization, Team]:
        org = Organization.new(name=name, billing_email=billing_email)
        team = Team.new(
            organization_id=org.id, name=team_name, website=profile.team_website
        )
        owner = Membership.new(
            organization_id=org.id,
            user_id=user_id,
            org_role=RoleType.ADMIN,
            team_id=team.id,
            team_role=RoleType.ADMIN,
        )
        self._ensure_role(RoleScope.ORGANIZATION, RoleType.ADMIN)
        self._ensure_role(RoleScope.TEAM, RoleType.ADMIN)

        # no await between these writes: the four rows appear together
        self._store.organizations[org.id] = org
        self._store.teams[team.id] = team
        insert_membership(self._store, owner, "Create organization")
        self._store.profiles[org.id] = profile
        return org, team

    async def get_by_id(self, org_id: UUID) -> Organization | None:
        return self._store.organizations.get(org_id)

    async def list_for_user(self, user_id: str) -> list[Organization]:
        org_ids = {
            m.organization_id
            for m in self._store.memberships.values()
            if m.user_id == user_id
        }
        return [o for o in self._store.organizations.values() if o.id in org_ids]

    async def update(
        self,
        org_id: UUID,
        *,
        name: str | None = None,
        billing_email: str | None = None,
    ) -> Organization | None:
        org = self._store.organizations.get(org_id)
        if org is None:
            return None
        if name is not None:
            org = replace(org, name=name)
        if billing_email is not None:
            org = replace(org, billing_email=billing_email)
        self._store.organizations[org_id] = org
        return org

    async def delete(self, org_id: UUID) -> bool:
        if self._store.organizations.pop(org_id, None) is None:
            return False
        # mirror ON DELETE CASCADE
        self._store.profiles.pop(org_id, None)
        for team_id in [t.id for t in self._store.teams.values() if t.organization_id == org_id]:
            del self._store.teams[team_id]
        for key in [k for k, m in self._store.memberships.items() if m.organization_id == org_id]:
            del self._store.memberships[key]
        for token in [
            t for t, i in self._store.invitations.items() if i.organization_id == org_id
        ]:
            del self._store.invitations[token]
        return True

    async def get_team(self, team_id: UUID) -> Team | None:
        return self._store.teams.get(team_id)

    async def list_teams(self, org_id: UUID) -> list[Team]:
        return [t for t in self._store.teams.values() if t.organization_id == org_id]

    async def create_team(self, team: Team) -> None:
        if team.organization_id not in self._store.organizations:
            raise OrganizationOperationError(
                "Create team",
                f"organization {team.organization_id} does not exist",
                "Unable to create team. Please try again.",
                StoreErrorCode.CREATE_FAILED,
                conflict=True,
            )
        self._store.teams[team.id] = team

    async def update_team(
        self,
        team_id: UUID,
        *,
        name: str | None = None,
        website: str | None = None,
    ) -> Team | None:
        team = self._store.teams.get(team_id)
        if team is None:
            return None
        if name is not None:
            team = replace(team, name=name)
        if website is not None:
            team = replace(team, website=website or None)
        self._store.teams[team_id] = team
        return team

    async def delete_team(self, team_id: UUID) -> bool:
        if self._store.teams.pop(team_id, None) is None:
            return False
        # team-scoped memberships and invitations go with the team
        for key in [k for k, m in self._store.memberships.items() if m.team_id == team_id]:
            del self._store.memberships[key]
        for token in [t for t, i in self._store.invitations.items() if i.team_id == team_id]:
            del self._store.invitations[token]
        return True

    async def set_subscription_plan(
        self, org_id: UUID, plan_id: UUID | None
    ) -> Organization | None:
        org = self._store.organizations.get(org_id)
        if org is None:
            return None
        if plan_id is not None and plan_id not in self._store.plans:
            raise OrganizationOperationError(
                "Update organization plan",
                f"subscription plan {plan_id} does not exist",
                "Unable to change plan. Please try again.",
                StoreErrorCode.UPDATE_FAILED,
                conflict=True,
            )
        org = replace(org, subscription_plan_id=plan_id)
        self._store.organizations[org_id] = org
        return org

    async def get_or_create_role(self, scope: RoleScope, role_type: RoleType) -> Role:
        return self._ensure_role(scope, role_type)

    def _ensure_role(self, scope: RoleScope, role_type: RoleType) -> Role:
        key = (scope.value, role_type.value)
        role = self._store.roles.get(key)
        if role is None:
            role = Role(id=uuid4(), scope=scope, type=role_type)
            self._store.roles[key] = role
        return role
