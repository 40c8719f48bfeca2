"""Process-local stand-in for the relational store.

Used when DATABASE_URL is not configured (local dev, tests).  All tables
live in one InMemoryStore so multi-table operations (create an org with
its default team and owner, redeem an invitation into a membership) can
be applied as a unit: each such operation runs to completion without
awaiting, so no other coroutine can observe or interleave a half-applied
change.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from uuid import UUID

from tenant_api.models.invitation import Invitation
from tenant_api.models.organization import (
    Membership,
    OnboardingProfile,
    Organization,
    Role,
    Team,
)
from tenant_api.models.subscription_plan import SubscriptionPlan


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryStore:
    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self.clock = clock
        self.organizations: dict[UUID, Organization] = {}
        self.profiles: dict[UUID, OnboardingProfile] = {}
        self.teams: dict[UUID, Team] = {}
        self.roles: dict[tuple[str, str], Role] = {}
        self.memberships: dict[tuple[str, UUID, UUID | None], Membership] = {}
        self.invitations: dict[str, Invitation] = {}
        self.plans: dict[UUID, SubscriptionPlan] = {}

    def clear(self) -> None:
        self.organizations.clear()
        self.profiles.clear()
        self.teams.clear()
        self.roles.clear()
        self.memberships.clear()
        self.invitations.clear()
        self.plans.clear()
