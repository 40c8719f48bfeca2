"""Feature and limit questions over a subscription plan.

Pure functions, no I/O.  Enforcement (refusing an invitation when the
seat limit is reached, hiding an agency-only feature) is the caller's
job; this module only answers questions about the plan value.
"""

from __future__ import annotations

from tenant_api.models.subscription_plan import PlanType, SubscriptionPlan


def has_feature(plan: SubscriptionPlan, key: str) -> bool:
    """True only when the plan explicitly enables *key*.

    Missing keys, falsy values and non-boolean junk from the JSON column
    all read as False.
    """
    features = plan.features or {}
    return features.get(key) is True


def monthly_credits(plan: SubscriptionPlan) -> int:
    return plan.monthly_credits


def max_clients(plan: SubscriptionPlan) -> int | None:
    return plan.max_clients


def max_team_members(plan: SubscriptionPlan) -> int | None:
    return plan.max_team_members


def is_agency_plan(plan: SubscriptionPlan) -> bool:
    return plan.type is PlanType.AGENCY


def seats_available(plan: SubscriptionPlan, used: int) -> int | None:
    """Remaining team-member seats, or None when the plan is unlimited."""
    limit = plan.max_team_members
    if limit is None:
        return None
    return max(limit - used, 0)
