from __future__ import annotations

from dataclasses import replace
from uuid import uuid4

import pytest

from tenant_api.core.errors import OrganizationOperationError, StoreErrorCode
from tenant_api.models.organization import (
    OnboardingRole,
    OrganizationGoal,
    ReferralSource,
    RoleType,
)
from tenant_api.models.subscription_plan import PlanType, SubscriptionPlan
from tenant_api.repos.registry import memory_store
from tenant_api.services import organization_service
from tests.conftest import (
    ALICE,
    BOB,
    CAROL,
    add_test_member,
    create_test_org,
    repos,
    run,
    seed_invitation,
)


def _profile(**kwargs):
    fields = {"role_type": "marketing_agency_owner"}
    fields.update(kwargs)
    return organization_service.build_profile(**fields)


# ---- onboarding profile ----


def test_build_profile_parses_enums() -> None:
    profile = _profile(
        goals=["visual_planning", "approval_workflow"],
        referral_source="podcast",
        team_website="  https://acme.example  ",
    )
    assert profile.role_type is OnboardingRole.MARKETING_AGENCY_OWNER
    assert profile.goals == (
        OrganizationGoal.VISUAL_PLANNING,
        OrganizationGoal.APPROVAL_WORKFLOW,
    )
    assert profile.referral_source is ReferralSource.PODCAST
    assert profile.team_website == "https://acme.example"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"role_type": "astronaut"},
        {"goals": ["world_domination"]},
        {"referral_source": "carrier_pigeon"},
    ],
)
def test_build_profile_rejects_unknown_values(kwargs: dict) -> None:
    with pytest.raises(OrganizationOperationError) as exc_info:
        _profile(**kwargs)
    assert exc_info.value.code is StoreErrorCode.VALIDATION_FAILED


# ---- create ----


def test_create_organization_makes_creator_admin() -> None:
    org, team = run(
        organization_service.create_organization(
            repos(),
            name="  Bright Ideas ",
            billing_email="Billing@Bright.Example",
            user_id=CAROL.id,
            team_name="Studio",
            profile=_profile(),
        )
    )
    assert org.name == "Bright Ideas"
    assert org.billing_email == "billing@bright.example"
    assert team.organization_id == org.id

    (membership,) = run(repos().memberships.list_for_user_in_org(org.id, CAROL.id))
    assert membership.org_role is RoleType.ADMIN
    assert membership.team_id == team.id
    assert membership.team_role is RoleType.ADMIN
    assert memory_store.profiles[org.id].role_type is OnboardingRole.MARKETING_AGENCY_OWNER


@pytest.mark.parametrize(
    ("name", "team_name", "billing_email"),
    [
        ("   ", "Studio", "billing@x.example"),
        ("Bright", "", "billing@x.example"),
        ("Bright", "Studio", "not-an-email"),
    ],
)
def test_create_organization_validation(name: str, team_name: str, billing_email: str) -> None:
    with pytest.raises(OrganizationOperationError) as exc_info:
        run(
            organization_service.create_organization(
                repos(),
                name=name,
                billing_email=billing_email,
                user_id=CAROL.id,
                team_name=team_name,
                profile=_profile(),
            )
        )
    assert exc_info.value.code is StoreErrorCode.VALIDATION_FAILED
    assert memory_store.organizations == {}


# ---- access checks ----


def test_require_member_unknown_org_is_not_found() -> None:
    with pytest.raises(OrganizationOperationError) as exc_info:
        run(organization_service.require_member(repos(), uuid4(), ALICE.id))
    assert exc_info.value.code is StoreErrorCode.NOT_FOUND


def test_require_member_outsider_is_unauthorized() -> None:
    org, _ = create_test_org()
    with pytest.raises(OrganizationOperationError) as exc_info:
        run(organization_service.require_member(repos(), org.id, BOB.id))
    assert exc_info.value.code is StoreErrorCode.UNAUTHORIZED


def test_require_admin_member_is_unauthorized() -> None:
    org, _ = create_test_org()
    add_test_member(org.id, BOB)
    run(organization_service.require_member(repos(), org.id, BOB.id))
    with pytest.raises(OrganizationOperationError) as exc_info:
        run(organization_service.require_admin(repos(), org.id, BOB.id))
    assert exc_info.value.code is StoreErrorCode.UNAUTHORIZED


def test_list_organizations_only_returns_own() -> None:
    mine, _ = create_test_org()
    create_test_org(owner=BOB, name="Bob Works")
    orgs = run(organization_service.list_organizations(repos(), ALICE.id))
    assert [o.id for o in orgs] == [mine.id]


# ---- members ----


def test_remove_member() -> None:
    org, _ = create_test_org()
    add_test_member(org.id, BOB)
    run(organization_service.remove_member(repos(), org.id, BOB.id))
    assert run(repos().memberships.list_for_user_in_org(org.id, BOB.id)) == []


def test_remove_unknown_member_is_not_found() -> None:
    org, _ = create_test_org()
    with pytest.raises(OrganizationOperationError) as exc_info:
        run(organization_service.remove_member(repos(), org.id, BOB.id))
    assert exc_info.value.code is StoreErrorCode.NOT_FOUND


def test_last_admin_cannot_be_removed() -> None:
    org, _ = create_test_org()
    with pytest.raises(OrganizationOperationError) as exc_info:
        run(organization_service.remove_member(repos(), org.id, ALICE.id))
    assert exc_info.value.code is StoreErrorCode.VALIDATION_FAILED


def test_admin_can_leave_when_another_admin_remains() -> None:
    org, _ = create_test_org()
    add_test_member(org.id, BOB, org_role=RoleType.ADMIN)
    run(organization_service.remove_member(repos(), org.id, ALICE.id))
    assert run(repos().memberships.list_for_user_in_org(org.id, ALICE.id)) == []


# ---- teams and seats ----


def test_create_team() -> None:
    org, _ = create_test_org()
    team = run(organization_service.create_team(repos(), org.id, " Design ", ""))
    assert team.name == "Design"
    assert team.website is None
    names = sorted(t.name for t in run(organization_service.list_teams(repos(), org.id)))
    assert names == ["Core", "Design"]


def test_create_team_blank_name() -> None:
    org, _ = create_test_org()
    with pytest.raises(OrganizationOperationError) as exc_info:
        run(organization_service.create_team(repos(), org.id, "  "))
    assert exc_info.value.code is StoreErrorCode.VALIDATION_FAILED


def test_member_count_with_pending_counts_users_once() -> None:
    org, team = create_test_org()
    add_test_member(org.id, BOB)
    add_test_member(org.id, BOB, team_id=team.id)
    seed_invitation(org.id)
    assert run(organization_service.member_count_with_pending(repos(), org.id)) == 3


# ---- organization, role and team changes ----


def test_update_organization_normalizes_fields() -> None:
    org, _ = create_test_org()
    updated = run(
        organization_service.update_organization(
            repos(), org.id, name="  Acme Global ", billing_email=" Finance@Acme.Example "
        )
    )
    assert updated.name == "Acme Global"
    assert updated.billing_email == "finance@acme.example"


@pytest.mark.parametrize(
    "kwargs",
    [{"name": "   "}, {"billing_email": "not-an-email"}],
)
def test_update_organization_validation(kwargs: dict) -> None:
    org, _ = create_test_org()
    with pytest.raises(OrganizationOperationError) as exc_info:
        run(organization_service.update_organization(repos(), org.id, **kwargs))
    assert exc_info.value.code is StoreErrorCode.VALIDATION_FAILED
    assert memory_store.organizations[org.id] == org


def test_delete_unknown_organization_is_not_found() -> None:
    with pytest.raises(OrganizationOperationError) as exc_info:
        run(organization_service.delete_organization(repos(), uuid4()))
    assert exc_info.value.code is StoreErrorCode.NOT_FOUND


def test_change_member_role_promotes() -> None:
    org, team = create_test_org()
    add_test_member(org.id, BOB)
    add_test_member(org.id, BOB, team_id=team.id)

    updated = run(organization_service.change_member_role(repos(), org.id, BOB.id, "admin"))

    assert [m.org_role for m in updated] == [RoleType.ADMIN, RoleType.ADMIN]


def test_last_admin_cannot_be_demoted() -> None:
    org, _ = create_test_org()
    with pytest.raises(OrganizationOperationError) as exc_info:
        run(organization_service.change_member_role(repos(), org.id, ALICE.id, RoleType.MEMBER))
    assert exc_info.value.code is StoreErrorCode.VALIDATION_FAILED


def test_admin_can_be_demoted_when_another_admin_remains() -> None:
    org, _ = create_test_org()
    add_test_member(org.id, BOB, org_role=RoleType.ADMIN)
    run(organization_service.change_member_role(repos(), org.id, ALICE.id, "member"))
    (alice,) = run(repos().memberships.list_for_user_in_org(org.id, ALICE.id))
    assert alice.org_role is RoleType.MEMBER


@pytest.mark.parametrize(
    ("user_id", "role", "code"),
    [
        (BOB.id, "admin", StoreErrorCode.NOT_FOUND),
        (ALICE.id, "owner", StoreErrorCode.VALIDATION_FAILED),
    ],
)
def test_change_member_role_rejections(user_id: str, role: str, code: StoreErrorCode) -> None:
    org, _ = create_test_org()
    with pytest.raises(OrganizationOperationError) as exc_info:
        run(organization_service.change_member_role(repos(), org.id, user_id, role))
    assert exc_info.value.code is code


def test_update_team() -> None:
    org, team = create_test_org()
    updated = run(
        organization_service.update_team(repos(), org.id, team.id, name=" Studio ")
    )
    assert updated.name == "Studio"


def test_team_of_another_org_is_not_found() -> None:
    org, _ = create_test_org()
    _, other_team = create_test_org(owner=BOB, name="Bob Works")
    for call in (
        organization_service.update_team(repos(), org.id, other_team.id, name="Mine"),
        organization_service.delete_team(repos(), org.id, other_team.id),
    ):
        with pytest.raises(OrganizationOperationError) as exc_info:
            run(call)
        assert exc_info.value.code is StoreErrorCode.NOT_FOUND
    assert memory_store.teams[other_team.id] == other_team


def test_delete_team() -> None:
    org, _ = create_test_org()
    design = run(organization_service.create_team(repos(), org.id, "Design"))
    add_test_member(org.id, BOB, team_id=design.id)

    run(organization_service.delete_team(repos(), org.id, design.id))

    assert [t.name for t in run(organization_service.list_teams(repos(), org.id))] == ["Core"]
    assert run(repos().memberships.list_for_user_in_org(org.id, BOB.id)) == []


def test_delete_team_holding_every_admin_is_refused() -> None:
    org, team = create_test_org()
    with pytest.raises(OrganizationOperationError) as exc_info:
        run(organization_service.delete_team(repos(), org.id, team.id))
    assert exc_info.value.code is StoreErrorCode.VALIDATION_FAILED
    assert team.id in memory_store.teams


# ---- plan assignment ----


def test_assign_plan() -> None:
    org, _ = create_test_org()
    plan = SubscriptionPlan.new(name="Agency", type=PlanType.AGENCY, monthly_credits=500)
    memory_store.plans[plan.id] = plan

    assert run(organization_service.assign_plan(repos(), org.id, plan.id)) == plan
    assert memory_store.organizations[org.id].subscription_plan_id == plan.id


def test_assign_inactive_or_unknown_plan_is_not_found() -> None:
    org, _ = create_test_org()
    retired = SubscriptionPlan.new(name="Legacy", type=PlanType.INDIVIDUAL, monthly_credits=10)
    memory_store.plans[retired.id] = replace(retired, is_active=False)
    for plan_id in (retired.id, uuid4()):
        with pytest.raises(OrganizationOperationError) as exc_info:
            run(organization_service.assign_plan(repos(), org.id, plan_id))
        assert exc_info.value.code is StoreErrorCode.NOT_FOUND
    assert memory_store.organizations[org.id].subscription_plan_id is None
