"""Bundles the four repos a request handler needs.

One Repos value per request: PostgreSQL repos sharing one session (so a
handler's writes commit or roll back together), or views over the
process-wide InMemoryStore when no database is configured.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from tenant_api.repos.invitation_repo import InMemoryInvitationRepo, InvitationRepo
from tenant_api.repos.memory import InMemoryStore
from tenant_api.repos.org_membership_repo import (
    InMemoryOrgMembershipRepo,
    OrgMembershipRepo,
)
from tenant_api.repos.org_repo import InMemoryOrgRepo, OrgRepo
from tenant_api.repos.pg_invitation_repo import PgInvitationRepo
from tenant_api.repos.pg_org_membership_repo import PgOrgMembershipRepo
from tenant_api.repos.pg_org_repo import PgOrgRepo
from tenant_api.repos.pg_subscription_plan_repo import PgSubscriptionPlanRepo
from tenant_api.repos.subscription_plan_repo import (
    InMemorySubscriptionPlanRepo,
    SubscriptionPlanRepo,
)


@dataclass(frozen=True, slots=True)
class Repos:
    orgs: OrgRepo
    memberships: OrgMembershipRepo
    invitations: InvitationRepo
    plans: SubscriptionPlanRepo


def in_memory_repos(store: InMemoryStore) -> Repos:
    return Repos(
        orgs=InMemoryOrgRepo(store),
        memberships=InMemoryOrgMembershipRepo(store),
        invitations=InMemoryInvitationRepo(store),
        plans=InMemorySubscriptionPlanRepo(store),
    )


def pg_repos(session: AsyncSession) -> Repos:
    return Repos(
        orgs=PgOrgRepo(session),
        memberships=PgOrgMembershipRepo(session),
        invitations=PgInvitationRepo(session),
        plans=PgSubscriptionPlanRepo(session),
    )


# Backs every request when DATABASE_URL is unset.
memory_store = InMemoryStore()
