"""PostgreSQL implementation of SubscriptionPlanRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_api.core.errors import StoreErrorCode, translate_store_errors
from tenant_api.db.tables import OrganizationRow, SubscriptionPlanRow
from tenant_api.models.subscription_plan import PlanType, SubscriptionPlan

_USER_MESSAGE = "Unable to load subscription plans. Please refresh the page."


class PgSubscriptionPlanRepo:
    """Satisfies the SubscriptionPlanRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, plan_id: UUID) -> SubscriptionPlan | None:
        stmt = select(SubscriptionPlanRow).where(SubscriptionPlanRow.id == plan_id)
        return await self._one("Get subscription plan", stmt)

    async def get_by_stripe_price(self, stripe_price_id: str) -> SubscriptionPlan | None:
        stmt = select(SubscriptionPlanRow).where(
            SubscriptionPlanRow.stripe_price_id == stripe_price_id
        )
        return await self._one("Get subscription plan by price", stmt)

    async def list_active(
        self, plan_type: PlanType | None = None
    ) -> list[SubscriptionPlan]:
        stmt = select(SubscriptionPlanRow).where(SubscriptionPlanRow.is_active.is_(True))
        if plan_type is not None:
            stmt = stmt.where(SubscriptionPlanRow.type == plan_type.value)
        stmt = stmt.order_by(SubscriptionPlanRow.monthly_credits)
        with translate_store_errors(
            "Get subscription plans", StoreErrorCode.READ_FAILED, _USER_MESSAGE
        ):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_plan(r) for r in rows]

    async def get_for_organization(self, org_id: UUID) -> SubscriptionPlan | None:
        stmt = (
            select(SubscriptionPlanRow)
            .join(
                OrganizationRow,
                OrganizationRow.subscription_plan_id == SubscriptionPlanRow.id,
            )
            .where(OrganizationRow.id == org_id)
        )
        return await self._one("Get organization plan", stmt)

    async def _one(self, operation: str, stmt) -> SubscriptionPlan | None:
        with translate_store_errors(operation, StoreErrorCode.READ_FAILED, _USER_MESSAGE):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_plan(row) if row is not None else None


def _row_to_plan(row: SubscriptionPlanRow) -> SubscriptionPlan:
    return SubscriptionPlan(
        id=row.id,
        name=row.name,
        type=PlanType(row.type),
        monthly_credits=row.monthly_credits,
        max_clients=row.max_clients,
        max_team_members=row.max_team_members,
        features=dict(row.features or {}),
        stripe_price_id=row.stripe_price_id,
        is_active=row.is_active,
    )
