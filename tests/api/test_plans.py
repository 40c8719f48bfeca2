from __future__ import annotations

from dataclasses import replace
from uuid import uuid4

from fastapi.testclient import TestClient

from tenant_api.models.subscription_plan import PlanType, SubscriptionPlan
from tenant_api.repos.registry import memory_store
from tests.conftest import ALICE, auth


def _seed(**kwargs) -> SubscriptionPlan:
    plan = SubscriptionPlan.new(**kwargs)
    memory_store.plans[plan.id] = plan
    return plan


def test_list_plans_filters_by_type(client: TestClient) -> None:
    agency = _seed(name="Agency", type=PlanType.AGENCY, monthly_credits=500, max_clients=25)
    _seed(name="Solo", type=PlanType.INDIVIDUAL, monthly_credits=50)

    resp = client.get("/plans", params={"type": "agency"}, headers=auth(ALICE))

    assert resp.status_code == 200
    (plan,) = resp.json()
    assert plan["id"] == str(agency.id)
    assert plan["max_clients"] == 25
    assert plan["max_team_members"] is None
    assert plan["is_agency"] is True


def test_list_plans_hides_inactive(client: TestClient) -> None:
    plan = _seed(name="Legacy", type=PlanType.INDIVIDUAL, monthly_credits=10)
    memory_store.plans[plan.id] = replace(plan, is_active=False)
    assert client.get("/plans", headers=auth(ALICE)).json() == []


def test_unknown_plan_type_is_400(client: TestClient) -> None:
    resp = client.get("/plans", params={"type": "enterprise"}, headers=auth(ALICE))
    assert resp.status_code == 400


def test_get_plan(client: TestClient) -> None:
    plan = _seed(
        name="Solo",
        type=PlanType.INDIVIDUAL,
        monthly_credits=50,
        features={"ai_captions": True, "white_label": False},
    )
    resp = client.get(f"/plans/{plan.id}", headers=auth(ALICE))
    assert resp.status_code == 200
    assert resp.json()["features"] == {"ai_captions": True, "white_label": False}
    assert resp.json()["is_agency"] is False


def test_get_unknown_plan(client: TestClient) -> None:
    resp = client.get(f"/plans/{uuid4()}", headers=auth(ALICE))
    assert resp.status_code == 404


def test_plans_require_auth(client: TestClient) -> None:
    assert client.get("/plans").status_code == 401
