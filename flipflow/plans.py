"""
Plan configuration constants for subscription plan limits.

Not persisted: the table is compiled into the application and mirrors the
``profiles_plan_check`` constraint on the server.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class PlanType(str, Enum):
    FREE = 'free'
    PREMIUM = 'premium'


@dataclass(frozen=True)
class PlanConfig:
    max_flipbooks: float  # math.inf = unlimited
    display_name: str


PLAN_LIMITS = {
    PlanType.FREE: PlanConfig(max_flipbooks=3, display_name='Free Plan'),
    PlanType.PREMIUM: PlanConfig(max_flipbooks=math.inf, display_name='Premium Plan'),
}


def normalize_plan(value: Optional[Union[str, PlanType]]) -> PlanType:
    """Resolve a stored plan value, falling back to the most restrictive tier."""
    if not value:
        return PlanType.FREE
    try:
        return PlanType(value)
    except ValueError:
        return PlanType.FREE


def get_plan_config(plan) -> PlanConfig:
    return PLAN_LIMITS[normalize_plan(plan)]


def is_unlimited_plan(plan) -> bool:
    return get_plan_config(plan).max_flipbooks == math.inf


def can_create_flipbook(plan, current_count: int) -> bool:
    return current_count < get_plan_config(plan).max_flipbooks


def get_remaining_flipbooks(plan, current_count: int) -> float:
    config = get_plan_config(plan)
    if config.max_flipbooks == math.inf:
        return math.inf
    return max(0, int(config.max_flipbooks) - current_count)
