"""
Subscription plan tiers and their monthly update limits.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class PlanLimits:
    """Per-period caps; None means unlimited."""

    price: Optional[int]
    compare_at: Optional[int]

    @property
    def is_unlimited(self) -> bool:
        return self.price is None and self.compare_at is None


FREE_LIMITS = PlanLimits(price=30, compare_at=30)

# Matched in order against the lower-cased plan name
PLAN_TIERS: List[Tuple[str, PlanLimits]] = [
    ("starter", PlanLimits(price=300, compare_at=300)),
    ("growth", PlanLimits(price=None, compare_at=None)),
]


def get_plan_limits(plan_name: Optional[str]) -> PlanLimits:
    """Limits for a plan; unknown or missing plans get the free tier."""
    if not plan_name:
        return FREE_LIMITS

    lower_plan = plan_name.lower()
    for marker, limits in PLAN_TIERS:
        if marker in lower_plan:
            return limits

    return FREE_LIMITS
