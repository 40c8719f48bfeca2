from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID, uuid4


class RoleScope(str, enum.Enum):
    ORGANIZATION = "organization"
    TEAM = "team"


class RoleType(str, enum.Enum):
    ADMIN = "admin"
    MEMBER = "member"


class OnboardingRole(str, enum.Enum):
    FREELANCE_MARKETER = "freelance_marketer"
    MARKETING_AGENCY_OWNER = "marketing_agency_owner"
    MARKETING_AGENCY_EMPLOYEE = "marketing_agency_employee"
    IN_HOUSE_MARKETER = "in_house_marketer"
    SMALL_BUSINESS_OWNER = "small_business_owner"
    OTHER = "other"


class OrganizationGoal(str, enum.Enum):
    PUBLISH_MULTIPLE_PLATFORMS = "publish_multiple_platforms"
    MANAGE_MULTIPLE_BRANDS = "manage_multiple_brands"
    IMPLEMENT_COLLABORATION = "implement_collaboration"
    APPROVAL_WORKFLOW = "approval_workflow"
    VISUAL_PLANNING = "visual_planning"
    AUTOMATE_CONTENT = "automate_content"
    OTHER = "other"


class ReferralSource(str, enum.Enum):
    GOOGLE_SEARCH = "google_search"
    FRIEND_COLLEAGUE = "friend_colleague"
    INFLUENCER = "influencer"
    NEWSLETTER = "newsletter"
    ADS = "ads"
    COMMUNITY = "community"
    PODCAST = "podcast"
    CANT_REMEMBER = "cant_remember"


@dataclass(frozen=True, slots=True)
class Role:
    id: UUID
    scope: RoleScope
    type: RoleType


@dataclass(frozen=True, slots=True)
class Organization:
    id: UUID
    name: str
    billing_email: str
    subscription_plan_id: UUID | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @staticmethod
    def new(
        *, name: str, billing_email: str, subscription_plan_id: UUID | None = None
    ) -> Organization:
        return Organization(
            id=uuid4(),
            name=name,
            billing_email=billing_email,
            subscription_plan_id=subscription_plan_id,
        )


@dataclass(frozen=True, slots=True)
class Team:
    id: UUID
    organization_id: UUID
    name: str
    website: str | None = None

    @staticmethod
    def new(*, organization_id: UUID, name: str, website: str | None = None) -> Team:
        return Team(id=uuid4(), organization_id=organization_id, name=name, website=website)


@dataclass(frozen=True, slots=True)
class OnboardingProfile:
    """Answers collected by the sign-up flow alongside the org name."""

    role_type: OnboardingRole
    goals: tuple[OrganizationGoal, ...] = ()
    referral_source: ReferralSource | None = None
    team_website: str | None = None


@dataclass(frozen=True, slots=True)
class Membership:
    """Grants one user a role in an organization, optionally scoped to a team.

    At most one row exists per (user_id, organization_id, team_id).
    """

    id: UUID
    organization_id: UUID
    user_id: str
    org_role: RoleType
    team_id: UUID | None = None
    team_role: RoleType | None = None

    @staticmethod
    def new(
        *,
        organization_id: UUID,
        user_id: str,
        org_role: RoleType,
        team_id: UUID | None = None,
        team_role: RoleType | None = None,
    ) -> Membership:
        return Membership(
            id=uuid4(),
            organization_id=organization_id,
            user_id=user_id,
            org_role=org_role,
            team_id=team_id,
            team_role=team_role,
        )

    @property
    def key(self) -> tuple[str, UUID, UUID | None]:
        return (self.user_id, self.organization_id, self.team_id)
