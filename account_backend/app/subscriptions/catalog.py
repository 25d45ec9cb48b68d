"""Static catalog of plan presets offered in the upgrade screens."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

from .models import BillingInterval, PlanType


class PlanKey(str, Enum):
    """Identifiers for the purchasable plan presets."""

    PREMIUM_MONTHLY = "premium_monthly"
    PREMIUM_YEARLY = "premium_yearly"
    FAMILY_MONTHLY = "family_monthly"
    FAMILY_YEARLY = "family_yearly"
    STUDENT_MONTHLY = "student_monthly"


@dataclass(frozen=True)
class PlanDefinition:
    """Describes a plan preset used to build new subscriptions."""

    key: PlanKey
    display_name: str
    plan_type: PlanType
    price: float
    interval: BillingInterval
    features: Tuple[str, ...]
    currency: str = "₹"


_PREMIUM_FEATURES = (
    "Unlimited music streaming",
    "High quality audio (320kbps)",
    "No advertisements",
    "Offline listening",
    "Premium playlists",
)

_FAMILY_FEATURES = (
    "Everything in Premium",
    "Up to 6 family members",
    "Individual profiles",
    "Parental controls",
    "Family mix playlists",
    "Shared favorites",
)

PLAN_CATALOG: Dict[PlanKey, PlanDefinition] = {
    PlanKey.PREMIUM_MONTHLY: PlanDefinition(
        key=PlanKey.PREMIUM_MONTHLY,
        display_name="Premium Monthly",
        plan_type=PlanType.PREMIUM,
        price=199,
        interval=BillingInterval.MONTH,
        features=_PREMIUM_FEATURES,
    ),
    PlanKey.PREMIUM_YEARLY: PlanDefinition(
        key=PlanKey.PREMIUM_YEARLY,
        display_name="Premium Yearly",
        plan_type=PlanType.PREMIUM,
        price=1990,
        interval=BillingInterval.YEAR,
        features=_PREMIUM_FEATURES,
    ),
    PlanKey.FAMILY_MONTHLY: PlanDefinition(
        key=PlanKey.FAMILY_MONTHLY,
        display_name="Family Monthly",
        plan_type=PlanType.FAMILY,
        price=299,
        interval=BillingInterval.MONTH,
        features=_FAMILY_FEATURES,
    ),
    PlanKey.FAMILY_YEARLY: PlanDefinition(
        key=PlanKey.FAMILY_YEARLY,
        display_name="Family Yearly",
        plan_type=PlanType.FAMILY,
        price=2990,
        interval=BillingInterval.YEAR,
        features=_FAMILY_FEATURES,
    ),
    PlanKey.STUDENT_MONTHLY: PlanDefinition(
        key=PlanKey.STUDENT_MONTHLY,
        display_name="Student Monthly",
        plan_type=PlanType.STUDENT,
        price=99,
        interval=BillingInterval.MONTH,
        features=(
            "Unlimited music streaming",
            "No advertisements",
            "Offline listening",
        ),
    ),
}


def get_plan_definition(plan_key: PlanKey) -> PlanDefinition:
    """Return a plan definition, raising if unsupported."""

    try:
        return PLAN_CATALOG[PlanKey(plan_key)]
    except (KeyError, ValueError) as exc:
        raise KeyError(f"Unknown plan key: {plan_key}") from exc


__all__ = ["PLAN_CATALOG", "PlanDefinition", "PlanKey", "get_plan_definition"]
