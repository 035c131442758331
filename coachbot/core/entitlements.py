"""
Plan tiers and the capability limits each one grants.

`max_subjects == 0` routes a user into the single persistent thread instead of
multiple named subjects.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, Optional

from coachbot.core.errors import EntitlementError, ErrorCode


class Plan(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    ELITE = "elite"


PAID_PLANS = (Plan.STARTER, Plan.PRO, Plan.ELITE)


@dataclass(frozen=True)
class Entitlements:
    daily_message_limit: Optional[int]  # None means unlimited
    max_subjects: int
    can_use_modes: bool
    can_use_persistent_memory: bool

    def to_dict(self) -> dict:
        return asdict(self)


PLAN_ENTITLEMENTS: Dict[Plan, Entitlements] = {
    Plan.FREE: Entitlements(
        daily_message_limit=10,
        max_subjects=0,
        can_use_modes=False,
        can_use_persistent_memory=True,
    ),
    Plan.STARTER: Entitlements(
        daily_message_limit=None,
        max_subjects=0,
        can_use_modes=False,
        can_use_persistent_memory=True,
    ),
    Plan.PRO: Entitlements(
        daily_message_limit=None,
        max_subjects=20,
        can_use_modes=True,
        can_use_persistent_memory=True,
    ),
    Plan.ELITE: Entitlements(
        daily_message_limit=None,
        max_subjects=100,
        can_use_modes=True,
        can_use_persistent_memory=True,
    ),
}


def coerce_plan(value) -> Plan:
    """Map any stored or supplied value onto a Plan, degrading to free."""
    if isinstance(value, Plan):
        return value
    if isinstance(value, str):
        try:
            return Plan(value.strip().lower())
        except ValueError:
            return Plan.FREE
    return Plan.FREE


def get_entitlements(plan) -> Entitlements:
    return PLAN_ENTITLEMENTS[coerce_plan(plan)]


def assert_entitlement(condition: bool, code: ErrorCode, message: str) -> None:
    if not condition:
        raise EntitlementError(code, message)
