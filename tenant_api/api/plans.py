"""Subscription plan catalogue (read-only)."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from tenant_api.api.dependencies import CurrentPrincipal, RequestRepos
from tenant_api.core.errors import StoreErrorCode, StoreOperationError
from tenant_api.models.subscription_plan import PlanType, SubscriptionPlan
from tenant_api.services import plan_gate

router = APIRouter(prefix="/plans", tags=["plans"])


class PlanOut(BaseModel):
    id: UUID
    name: str
    type: str
    monthly_credits: int
    max_clients: int | None
    max_team_members: int | None
    features: dict[str, bool]
    is_agency: bool

    @classmethod
    def from_plan(cls, plan: SubscriptionPlan) -> PlanOut:
        return cls(
            id=plan.id,
            name=plan.name,
            type=plan.type.value,
            monthly_credits=plan_gate.monthly_credits(plan),
            max_clients=plan_gate.max_clients(plan),
            max_team_members=plan_gate.max_team_members(plan),
            features={k: plan_gate.has_feature(plan, k) for k in plan.features},
            is_agency=plan_gate.is_agency_plan(plan),
        )


@router.get("", response_model=list[PlanOut])
async def list_plans(
    _principal: CurrentPrincipal,
    repos: RequestRepos,
    type: PlanType | None = None,
) -> list[PlanOut]:
    plans = await repos.plans.list_active(type)
    return [PlanOut.from_plan(p) for p in plans]


@router.get("/{plan_id}", response_model=PlanOut)
async def get_plan(plan_id: UUID, _principal: CurrentPrincipal, repos: RequestRepos) -> PlanOut:
    plan = await repos.plans.get_by_id(plan_id)
    if plan is None:
        raise StoreOperationError(
            "Get subscription plan",
            f"plan {plan_id} not found",
            "Plan not found.",
            StoreErrorCode.NOT_FOUND,
        )
    return PlanOut.from_plan(plan)
