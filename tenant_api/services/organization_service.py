from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from tenant_api.core.errors import (
    OrganizationOperationError,
    StoreErrorCode,
)
from tenant_api.models.organization import (
    Membership,
    OnboardingProfile,
    OnboardingRole,
    Organization,
    OrganizationGoal,
    ReferralSource,
    RoleType,
    Team,
)
from tenant_api.models.subscription_plan import SubscriptionPlan
from tenant_api.repos.registry import Repos
from tenant_api.services.invitation_service import normalize_email

logger = logging.getLogger(__name__)


def _validation_error(operation: str, message: str, user_message: str) -> OrganizationOperationError:
    return OrganizationOperationError(
        operation, message, user_message, StoreErrorCode.VALIDATION_FAILED
    )


def _admins(members: Iterable[Membership]) -> set[str]:
    return {m.user_id for m in members if m.org_role is RoleType.ADMIN}


def build_profile(
    role_type: str,
    goals: Iterable[str] = (),
    referral_source: str | None = None,
    team_website: str | None = None,
) -> OnboardingProfile:
    operation = "Create organization"
    try:
        return OnboardingProfile(
            role_type=OnboardingRole(role_type),
            goals=tuple(OrganizationGoal(g) for g in goals),
            referral_source=ReferralSource(referral_source) if referral_source else None,
            team_website=(team_website or "").strip() or None,
        )
    except ValueError as exc:
        raise _validation_error(
            operation, str(exc), "Please check your onboarding answers."
        ) from None


async def create_organization(
    repos: Repos,
    *,
    name: str,
    billing_email: str,
    user_id: str,
    team_name: str,
    profile: OnboardingProfile,
) -> tuple[Organization, Team]:
    """Create an organization with its default team; the creator becomes admin of both."""
    operation = "Create organization"
    name = name.strip()
    team_name = team_name.strip()
    if not name:
        raise _validation_error(operation, "name is blank", "Organization name is required.")
    if not team_name:
        raise _validation_error(operation, "team name is blank", "Team name is required.")
    billing_email = normalize_email(
        billing_email, operation=operation, error_cls=OrganizationOperationError
    )

    org, team = await repos.orgs.create_organization(
        name=name,
        billing_email=billing_email,
        user_id=user_id,
        team_name=team_name,
        profile=profile,
    )
    logger.info("Organization created id=%s team=%s owner=%s", org.id, team.id, user_id)
    return org, team


async def list_organizations(repos: Repos, user_id: str) -> list[Organization]:
    return await repos.orgs.list_for_user(user_id)


async def get_organization(repos: Repos, org_id: UUID) -> Organization:
    org = await repos.orgs.get_by_id(org_id)
    if org is None:
        raise OrganizationOperationError(
            "Get organization",
            f"organization {org_id} not found",
            "Organization not found.",
            StoreErrorCode.NOT_FOUND,
        )
    return org


async def require_member(repos: Repos, org_id: UUID, user_id: str) -> list[Membership]:
    """The caller's memberships in *org_id*; UNAUTHORIZED when there are none."""
    await get_organization(repos, org_id)
    memberships = await repos.memberships.list_for_user_in_org(org_id, user_id)
    if not memberships:
        logger.warning("Access denied: user=%s not a member of org=%s", user_id, org_id)
        raise OrganizationOperationError(
            "Check organization membership",
            f"user={user_id} is not a member of org={org_id}",
            "You are not a member of this organization.",
            StoreErrorCode.UNAUTHORIZED,
        )
    return memberships


async def require_admin(repos: Repos, org_id: UUID, user_id: str) -> None:
    memberships = await require_member(repos, org_id, user_id)
    if not any(m.org_role is RoleType.ADMIN for m in memberships):
        logger.warning("Access denied: user=%s not an admin of org=%s", user_id, org_id)
        raise OrganizationOperationError(
            "Check organization role",
            f"user={user_id} is not an admin of org={org_id}",
            "Only organization admins can do this.",
            StoreErrorCode.UNAUTHORIZED,
        )


async def list_members(repos: Repos, org_id: UUID) -> list[Membership]:
    return await repos.memberships.list_by_org(org_id)


async def remove_member(repos: Repos, org_id: UUID, user_id: str) -> None:
    """Delete every membership *user_id* holds in *org_id*.

    The last organization admin cannot be removed; that would leave an
    organization nobody can manage.
    """
    operation = "Remove organization member"
    members = await repos.memberships.list_by_org(org_id)
    target = [m for m in members if m.user_id == user_id]
    if not target:
        raise OrganizationOperationError(
            operation,
            f"user={user_id} is not a member of org={org_id}",
            "Member not found.",
            StoreErrorCode.NOT_FOUND,
        )

    if _admins(members) == {user_id}:
        raise _validation_error(
            operation,
            f"user={user_id} is the last admin of org={org_id}",
            "An organization needs at least one admin.",
        )

    await repos.memberships.remove(org_id, user_id)
    logger.info("Member removed org=%s user=%s", org_id, user_id)


async def list_teams(repos: Repos, org_id: UUID) -> list[Team]:
    return await repos.orgs.list_teams(org_id)


async def create_team(
    repos: Repos, org_id: UUID, name: str, website: str | None = None
) -> Team:
    name = name.strip()
    if not name:
        raise _validation_error("Create team", "team name is blank", "Team name is required.")
    team = Team.new(organization_id=org_id, name=name, website=(website or "").strip() or None)
    await repos.orgs.create_team(team)
    logger.info("Team created org=%s team=%s", org_id, team.id)
    return team


async def update_organization(
    repos: Repos,
    org_id: UUID,
    *,
    name: str | None = None,
    billing_email: str | None = None,
) -> Organization:
    operation = "Update organization"
    if name is not None:
        name = name.strip()
        if not name:
            raise _validation_error(operation, "name is blank", "Organization name is required.")
    if billing_email is not None:
        billing_email = normalize_email(
            billing_email, operation=operation, error_cls=OrganizationOperationError
        )

    org = await repos.orgs.update(org_id, name=name, billing_email=billing_email)
    if org is None:
        raise OrganizationOperationError(
            operation, f"organization {org_id} not found", "Organization not found.",
            StoreErrorCode.NOT_FOUND,
        )
    logger.info("Organization updated id=%s", org_id)
    return org


async def delete_organization(repos: Repos, org_id: UUID) -> None:
    """Delete the organization with its teams, memberships and invitations."""
    if not await repos.orgs.delete(org_id):
        raise OrganizationOperationError(
            "Delete organization",
            f"organization {org_id} not found",
            "Organization not found.",
            StoreErrorCode.NOT_FOUND,
        )
    logger.info("Organization deleted id=%s", org_id)


async def change_member_role(
    repos: Repos, org_id: UUID, user_id: str, role: RoleType | str
) -> list[Membership]:
    """Set the organization role on every membership *user_id* holds in *org_id*.

    Demoting the last admin is refused, as in remove_member().
    """
    operation = "Update member role"
    try:
        role = RoleType(role)
    except ValueError:
        raise _validation_error(
            operation, f"unknown role {role!r}", "Please choose a valid role."
        ) from None

    members = await repos.memberships.list_by_org(org_id)
    if not any(m.user_id == user_id for m in members):
        raise OrganizationOperationError(
            operation,
            f"user={user_id} is not a member of org={org_id}",
            "Member not found.",
            StoreErrorCode.NOT_FOUND,
        )
    if role is not RoleType.ADMIN and _admins(members) == {user_id}:
        raise _validation_error(
            operation,
            f"user={user_id} is the last admin of org={org_id}",
            "An organization needs at least one admin.",
        )

    updated = await repos.memberships.update_org_role(org_id, user_id, role)
    logger.info("Member role changed org=%s user=%s role=%s", org_id, user_id, role.value)
    return updated


async def get_team(repos: Repos, org_id: UUID, team_id: UUID) -> Team:
    team = await repos.orgs.get_team(team_id)
    if team is None or team.organization_id != org_id:
        raise OrganizationOperationError(
            "Get team",
            f"team {team_id} is not part of organization {org_id}",
            "Team not found.",
            StoreErrorCode.NOT_FOUND,
        )
    return team


async def update_team(
    repos: Repos,
    org_id: UUID,
    team_id: UUID,
    *,
    name: str | None = None,
    website: str | None = None,
) -> Team:
    await get_team(repos, org_id, team_id)
    if name is not None:
        name = name.strip()
        if not name:
            raise _validation_error("Update team", "team name is blank", "Team name is required.")
    if website is not None:
        website = website.strip()

    team = await repos.orgs.update_team(team_id, name=name, website=website)
    if team is None:
        raise OrganizationOperationError(
            "Update team", f"team {team_id} disappeared", "Team not found.",
            StoreErrorCode.NOT_FOUND,
        )
    logger.info("Team updated org=%s team=%s", org_id, team_id)
    return team


async def delete_team(repos: Repos, org_id: UUID, team_id: UUID) -> None:
    """Delete a team; memberships scoped to it go too.

    Refused when every remaining admin holds the admin role only through
    memberships in this team.
    """
    await get_team(repos, org_id, team_id)
    members = await repos.memberships.list_by_org(org_id)
    if not _admins(m for m in members if m.team_id != team_id):
        raise _validation_error(
            "Delete team",
            f"deleting team {team_id} would leave org={org_id} without an admin",
            "An organization needs at least one admin.",
        )
    await repos.orgs.delete_team(team_id)
    logger.info("Team deleted org=%s team=%s", org_id, team_id)


async def assign_plan(repos: Repos, org_id: UUID, plan_id: UUID) -> SubscriptionPlan:
    """Point the organization at an active subscription plan."""
    operation = "Update organization plan"
    plan = await repos.plans.get_by_id(plan_id)
    if plan is None or not plan.is_active:
        raise OrganizationOperationError(
            operation,
            f"plan {plan_id} is unknown or inactive",
            "Subscription plan not found.",
            StoreErrorCode.NOT_FOUND,
        )
    if await repos.orgs.set_subscription_plan(org_id, plan.id) is None:
        raise OrganizationOperationError(
            operation, f"organization {org_id} not found", "Organization not found.",
            StoreErrorCode.NOT_FOUND,
        )
    logger.info("Organization plan changed org=%s plan=%s", org_id, plan.id)
    return plan


async def member_count_with_pending(repos: Repos, org_id: UUID) -> int:
    """Seats in use for plan limits: members plus pending invitations."""
    members = await repos.memberships.count_members(org_id)
    pending = await repos.invitations.count_pending(org_id)
    return members + pending

