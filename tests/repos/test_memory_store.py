"""Tests for the in-memory repos that back local runs and the API tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from tenant_api.core.errors import StoreOperationError
from tenant_api.models.organization import (
    Membership,
    OnboardingProfile,
    OnboardingRole,
    RoleScope,
    RoleType,
    Team,
)
from tenant_api.models.subscription_plan import PlanType, SubscriptionPlan
from tenant_api.repos.invitation_repo import InMemoryInvitationRepo
from tenant_api.repos.memory import InMemoryStore
from tenant_api.repos.registry import in_memory_repos, memory_store
from tests.conftest import (
    ALICE,
    BOB,
    add_test_member,
    attach_plan,
    create_test_org,
    repos,
    run,
    seed_invitation,
)


def test_create_organization_writes_all_rows() -> None:
    org, team = create_test_org()
    assert memory_store.organizations[org.id] == org
    assert memory_store.teams[team.id] == team
    assert (ALICE.id, org.id, team.id) in memory_store.memberships
    assert ("organization", "admin") in memory_store.roles
    assert ("team", "admin") in memory_store.roles


def test_roles_are_shared() -> None:
    r = repos()
    first = run(r.orgs.get_or_create_role(RoleScope.TEAM, RoleType.MEMBER))
    second = run(r.orgs.get_or_create_role(RoleScope.TEAM, RoleType.MEMBER))
    assert first.id == second.id


def test_membership_is_unique_per_user_org_team() -> None:
    org, team = create_test_org()
    add_test_member(org.id, BOB)
    add_test_member(org.id, BOB, team_id=team.id)
    with pytest.raises(StoreOperationError) as exc_info:
        add_test_member(org.id, BOB)
    assert exc_info.value.conflict is True


def test_membership_requires_existing_org() -> None:
    m = Membership.new(organization_id=uuid4(), user_id=BOB.id, org_role=RoleType.MEMBER)
    with pytest.raises(StoreOperationError) as exc_info:
        run(repos().memberships.add(m))
    assert exc_info.value.conflict is True


def test_update_org_role_touches_every_row_of_user() -> None:
    org, team = create_test_org()
    add_test_member(org.id, BOB)
    add_test_member(org.id, BOB, team_id=team.id)
    updated = run(repos().memberships.update_org_role(org.id, BOB.id, RoleType.ADMIN))
    assert len(updated) == 2
    rows = run(repos().memberships.list_for_user_in_org(org.id, BOB.id))
    assert {m.org_role for m in rows} == {RoleType.ADMIN}


def test_count_members_is_distinct_users() -> None:
    org, team = create_test_org()
    add_test_member(org.id, BOB)
    add_test_member(org.id, BOB, team_id=team.id)
    assert run(repos().memberships.count_members(org.id)) == 2


def test_remove_reports_whether_anything_was_deleted() -> None:
    org, _ = create_test_org()
    add_test_member(org.id, BOB)
    assert run(repos().memberships.remove(org.id, BOB.id)) is True
    assert run(repos().memberships.remove(org.id, BOB.id)) is False


def test_update_organization() -> None:
    org, _ = create_test_org()
    updated = run(repos().orgs.update(org.id, name="Acme Global"))
    assert updated is not None
    assert updated.name == "Acme Global"
    assert updated.billing_email == org.billing_email
    assert run(repos().orgs.update(uuid4(), name="x")) is None


def test_delete_organization_cascades() -> None:
    org, team = create_test_org()
    add_test_member(org.id, BOB)
    seed_invitation(org.id)

    assert run(repos().orgs.delete(org.id)) is True

    assert team.id not in memory_store.teams
    assert memory_store.memberships == {}
    assert memory_store.invitations == {}
    assert run(repos().orgs.delete(org.id)) is False


def test_update_team() -> None:
    org, team = create_test_org()
    updated = run(repos().orgs.update_team(team.id, website="https://acme.example"))
    assert updated is not None
    assert updated.name == "Core"
    assert updated.website == "https://acme.example"
    assert run(repos().orgs.update_team(team.id, website="")).website is None
    assert run(repos().orgs.update_team(uuid4(), name="x")) is None


def test_delete_team_takes_its_memberships_and_invitations() -> None:
    org, _ = create_test_org()
    design = Team.new(organization_id=org.id, name="Design")
    run(repos().orgs.create_team(design))
    add_test_member(org.id, BOB, team_id=design.id)
    add_test_member(org.id, BOB)
    seed_invitation(org.id, team_id=design.id)

    assert run(repos().orgs.delete_team(design.id)) is True

    assert design.id not in memory_store.teams
    bob = run(repos().memberships.list_for_user_in_org(org.id, BOB.id))
    assert [m.team_id for m in bob] == [None]
    assert memory_store.invitations == {}
    assert run(repos().orgs.delete_team(design.id)) is False


def test_set_subscription_plan() -> None:
    org, _ = create_test_org()
    plan = SubscriptionPlan.new(name="Solo", type=PlanType.INDIVIDUAL, monthly_credits=50)
    memory_store.plans[plan.id] = plan

    assert run(repos().orgs.set_subscription_plan(org.id, plan.id)).subscription_plan_id == plan.id
    assert run(repos().plans.get_for_organization(org.id)) == plan
    assert run(repos().orgs.set_subscription_plan(org.id, None)).subscription_plan_id is None
    assert run(repos().orgs.set_subscription_plan(uuid4(), plan.id)) is None
    with pytest.raises(StoreOperationError) as exc_info:
        run(repos().orgs.set_subscription_plan(org.id, uuid4()))
    assert exc_info.value.conflict is True


def test_create_team_requires_existing_org() -> None:
    with pytest.raises(StoreOperationError):
        run(repos().orgs.create_team(Team.new(organization_id=uuid4(), name="Ghost")))


def test_invite_requires_existing_org() -> None:
    with pytest.raises(StoreOperationError) as exc_info:
        run(
            repos().invitations.invite_org_member(
                organization_id=uuid4(),
                email="x@example.com",
                org_role=RoleType.MEMBER,
                team_role=RoleType.MEMBER,
                invited_by=ALICE.id,
                expires_at=datetime.now(UTC) + timedelta(days=1),
            )
        )
    assert exc_info.value.conflict is True


def test_validate_invitation_token_joins_org_name() -> None:
    org, _ = create_test_org(name="Northwind Media")
    inv = seed_invitation(org.id)
    record = run(repos().invitations.validate_invitation_token(inv.token))
    assert record is not None
    assert record.invitation == inv
    assert record.organization_name == "Northwind Media"
    assert run(repos().invitations.validate_invitation_token("missing")) is None


def test_store_clock_drives_expiry() -> None:
    now = datetime(2026, 1, 1, tzinfo=UTC)
    store = InMemoryStore(clock=lambda: now)
    r = in_memory_repos(store)
    org, _ = run(
        r.orgs.create_organization(
            name="Clockwork",
            billing_email="billing@clockwork.example",
            user_id=ALICE.id,
            team_name="Core",
            profile=OnboardingProfile(role_type=OnboardingRole.OTHER),
        )
    )
    token = run(
        r.invitations.invite_org_member(
            organization_id=org.id,
            email="late@example.com",
            org_role=RoleType.MEMBER,
            team_role=RoleType.MEMBER,
            invited_by=ALICE.id,
            expires_at=now - timedelta(seconds=1),
        )
    )
    assert run(InMemoryInvitationRepo(store).process_invitation(token, BOB.id)) is False
    assert run(r.invitations.revoke_invitation(token)) is False


def test_plan_lookups() -> None:
    org, _ = create_test_org()
    plan = attach_plan(org.id, stripe_price_id="price_agency_monthly")
    individual = SubscriptionPlan.new(
        name="Solo", type=PlanType.INDIVIDUAL, monthly_credits=50
    )
    memory_store.plans[individual.id] = individual
    r = repos()

    assert run(r.plans.get_for_organization(org.id)) == plan
    assert run(r.plans.get_by_stripe_price("price_agency_monthly")) == plan
    assert run(r.plans.get_by_stripe_price("price_unknown")) is None
    assert run(r.plans.list_active(PlanType.INDIVIDUAL)) == [individual]
    assert len(run(r.plans.list_active())) == 2
