from __future__ import annotations

import asyncio
import os
from collections.abc import Iterator
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from uuid import UUID

# Settings are read at import time; pin a hermetic environment first.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("IDENTITY_URL", "https://identity.test")
os.environ.setdefault("IDENTITY_SERVICE_KEY", "test-service-key")
os.environ.pop("DATABASE_URL", None)
os.environ.pop("REDIS_URL", None)

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from tenant_api.api.dependencies import get_identity_client  # noqa: E402
from tenant_api.api.ratelimit import rate_limiter  # noqa: E402
from tenant_api.main import app  # noqa: E402
from tenant_api.models.invitation import Invitation  # noqa: E402
from tenant_api.models.organization import (  # noqa: E402
    Membership,
    OnboardingProfile,
    OnboardingRole,
    Organization,
    RoleType,
    Team,
)
from tenant_api.models.principal import Principal  # noqa: E402
from tenant_api.models.subscription_plan import PlanType, SubscriptionPlan  # noqa: E402
from tenant_api.repos.registry import Repos, in_memory_repos, memory_store  # noqa: E402
from tenant_api.services.identity_client import (  # noqa: E402
    USER_PATH,
    IdentityClient,
)

SERVICE_KEY = "test-service-key"

ALICE = Principal(id="user-alice", email="alice@example.com")
BOB = Principal(id="user-bob", email="bob@example.com")
CAROL = Principal(id="user-carol", email="carol@example.com")


def session_token(user: Principal) -> str:
    return f"sess-{user.id}-4f9a1c2e7b"


def auth(user: Principal) -> dict[str, str]:
    return {"Authorization": f"Bearer {session_token(user)}"}


class FakeIdentityService:
    """Stands in for GET /auth/v1/user on the hosted identity service."""

    def __init__(self, users: list[Principal]) -> None:
        self.users = {session_token(u): u for u in users}
        self.calls = 0
        self.fail: httpx.HTTPError | None = None
        self.status_override: int | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        if self.status_override is not None:
            return httpx.Response(self.status_override, json={"msg": "boom"})
        if request.url.path != USER_PATH or request.headers.get("apikey") != SERVICE_KEY:
            return httpx.Response(401, json={"msg": "invalid api key"})

        header = request.headers.get("authorization", "")
        user = self.users.get(header.removeprefix("Bearer "))
        if user is None:
            return httpx.Response(401, json={"msg": "invalid JWT"})
        return httpx.Response(200, json={"id": user.id, "email": user.email, "aud": "authenticated"})

    def client(self) -> IdentityClient:
        http = httpx.AsyncClient(
            base_url="https://identity.test", transport=httpx.MockTransport(self.handler)
        )
        return IdentityClient(http, SERVICE_KEY)


@pytest.fixture(autouse=True)
def reset_store() -> None:
    memory_store.clear()


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Clear rate limit buckets between tests so limits don't bleed."""
    if hasattr(rate_limiter, "clear"):
        rate_limiter.clear()  # type: ignore[union-attr]


@pytest.fixture
def identity() -> FakeIdentityService:
    return FakeIdentityService([ALICE, BOB, CAROL])


@pytest.fixture
def client(identity: FakeIdentityService) -> Iterator[TestClient]:
    identity_client = identity.client()
    app.dependency_overrides[get_identity_client] = lambda: identity_client
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Store helpers (in-memory store shared with the app)
# ---------------------------------------------------------------------------


def run(coro):
    return asyncio.run(coro)


def repos() -> Repos:
    return in_memory_repos(memory_store)


def create_test_org(
    owner: Principal = ALICE, name: str = "Acme Marketing"
) -> tuple[Organization, Team]:
    """Onboard an organization; *owner* becomes its admin."""
    return run(
        repos().orgs.create_organization(
            name=name,
            billing_email=f"billing@{name.split()[0].lower()}.example",
            user_id=owner.id,
            team_name="Core",
            profile=OnboardingProfile(role_type=OnboardingRole.MARKETING_AGENCY_OWNER),
        )
    )


def add_test_member(
    org_id: UUID,
    user: Principal,
    org_role: RoleType = RoleType.MEMBER,
    team_id: UUID | None = None,
) -> Membership:
    m = Membership.new(
        organization_id=org_id,
        user_id=user.id,
        org_role=org_role,
        team_id=team_id,
        team_role=RoleType.MEMBER if team_id else None,
    )
    run(repos().memberships.add(m))
    return m


def attach_plan(org_id: UUID, **kwargs) -> SubscriptionPlan:
    """Create a plan and make it the organization's subscription."""
    fields = {"name": "Agency", "type": PlanType.AGENCY, "monthly_credits": 500}
    fields.update(kwargs)
    plan = SubscriptionPlan.new(**fields)
    memory_store.plans[plan.id] = plan
    org = memory_store.organizations[org_id]
    memory_store.organizations[org_id] = replace(org, subscription_plan_id=plan.id)
    return plan


def seed_invitation(
    org_id: UUID,
    *,
    token: str = "inv-token-0123456789abcdef",
    email: str = "new.hire@example.com",
    expires_in: timedelta = timedelta(days=7),
    invited_by: str = ALICE.id,
    **kwargs,
) -> Invitation:
    """Insert an invitation directly, bypassing Issue's validation."""
    invitation = Invitation.new(
        token=token,
        organization_id=org_id,
        email=email,
        org_role=RoleType.MEMBER,
        team_role=RoleType.MEMBER,
        invited_by=invited_by,
        expires_at=datetime.now(UTC) + expires_in,
    )
    if kwargs:
        invitation = replace(invitation, **kwargs)
    memory_store.invitations[token] = invitation
    return invitation
