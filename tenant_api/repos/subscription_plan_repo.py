from __future__ import annotations

from typing import Protocol
from uuid import UUID

from tenant_api.models.subscription_plan import PlanType, SubscriptionPlan
from tenant_api.repos.memory import InMemoryStore


class SubscriptionPlanRepo(Protocol):
    async def get_by_id(self, plan_id: UUID) -> SubscriptionPlan | None: ...
    async def get_by_stripe_price(
        self, stripe_price_id: str
    ) -> SubscriptionPlan | None: ...
    async def list_active(
        self, plan_type: PlanType | None = None
    ) -> list[SubscriptionPlan]: ...
    async def get_for_organization(self, org_id: UUID) -> SubscriptionPlan | None: ...


class InMemorySubscriptionPlanRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def add(self, plan: SubscriptionPlan) -> None:
        """Seed a plan (plans are managed outside this service)."""
        self._store.plans[plan.id] = plan

    async def get_by_id(self, plan_id: UUID) -> SubscriptionPlan | None:
        return self._store.plans.get(plan_id)

    async def get_by_stripe_price(self, stripe_price_id: str) -> SubscriptionPlan | None:
        for plan in self._store.plans.values():
            if plan.stripe_price_id == stripe_price_id:
                return plan
        return None

    async def list_active(
        self, plan_type: PlanType | None = None
    ) -> list[SubscriptionPlan]:
        return [
            p
            for p in self._store.plans.values()
            if p.is_active and (plan_type is None or p.type is plan_type)
        ]

    async def get_for_organization(self, org_id: UUID) -> SubscriptionPlan | None:
        """The plan the organization points at; assigned with PUT /orgs/{id}/plan."""
        org = self._store.organizations.get(org_id)
        if org is None or org.subscription_plan_id is None:
            return None
        return self._store.plans.get(org.subscription_plan_id)
