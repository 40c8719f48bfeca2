from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from uuid import UUID, uuid4


class PlanType(str, enum.Enum):
    INDIVIDUAL = "individual"
    AGENCY = "agency"


@dataclass(frozen=True, slots=True)
class SubscriptionPlan:
    id: UUID
    name: str
    type: PlanType
    monthly_credits: int
    max_clients: int | None = None  # None = unlimited
    max_team_members: int | None = None  # None = unlimited
    features: Mapping[str, bool] = field(default_factory=dict)
    stripe_price_id: str | None = None
    is_active: bool = True

    @staticmethod
    def new(
        *,
        name: str,
        type: PlanType,
        monthly_credits: int,
        max_clients: int | None = None,
        max_team_members: int | None = None,
        features: Mapping[str, bool] | None = None,
        stripe_price_id: str | None = None,
    ) -> SubscriptionPlan:
        return SubscriptionPlan(
            id=uuid4(),
            name=name,
            type=type,
            monthly_credits=monthly_credits,
            max_clients=max_clients,
            max_team_members=max_team_members,
            features=dict(features or {}),
            stripe_price_id=stripe_price_id,
        )
