"""
Referral stage machine and referrer ladder.

invited -> activated -> converted
   \\           \\
    +-> blocked  +-> blocked

converted and blocked are terminal.
"""
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from tutorapi.core.exceptions import ConflictError


class ReferralStage(str, Enum):
    INVITED = "invited"
    ACTIVATED = "activated"
    CONVERTED = "converted"
    BLOCKED = "blocked"


ALLOWED_TRANSITIONS: Dict[ReferralStage, FrozenSet[ReferralStage]] = {
    ReferralStage.INVITED: frozenset({ReferralStage.ACTIVATED, ReferralStage.BLOCKED}),
    ReferralStage.ACTIVATED: frozenset({ReferralStage.CONVERTED, ReferralStage.BLOCKED}),
    ReferralStage.CONVERTED: frozenset(),
    ReferralStage.BLOCKED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    try:
        return ReferralStage(target) in ALLOWED_TRANSITIONS[ReferralStage(current)]
    except ValueError:
        return False


def ensure_transition(current: str, target: str) -> None:
    """Raise ConflictError when `current -> target` is not allowed."""
    if not can_transition(current, target):
        raise ConflictError(
            f"Referral cannot move from '{current}' to '{target}'",
            details=f"stage={current}",
        )


# ============================================================
# Referrer ladder
# ============================================================

POINTS_PER_ACTIVATION = 10
POINTS_PER_CONVERSION = 50
CONVERSIONS_PER_FREE_MONTH = 3

# (minimum converted referrals, tier, one-off bonus days)
TIER_LADDER: List[Tuple[int, str, int]] = [
    (0, "beginner", 0),
    (1, "advocate", 7),
    (3, "promoter", 14),
    (5, "ambassador", 30),
    (10, "legend", 60),
]

TIER_ORDER = [tier for _, tier, _ in TIER_LADDER]


def tier_for(converted: int) -> str:
    """Highest tier whose threshold `converted` reaches."""
    current = TIER_LADDER[0][1]
    for threshold, tier, _ in TIER_LADDER:
        if converted >= threshold:
            current = tier
    return current


def tier_bonus_days(tier: str) -> int:
    for _, name, bonus in TIER_LADDER:
        if name == tier:
            return bonus
    return 0


def tiers_unlocked(previous_tier: Optional[str], new_tier: str) -> List[str]:
    """Tiers passed when moving from previous_tier up to new_tier (exclusive/inclusive)."""
    start = TIER_ORDER.index(previous_tier) if previous_tier in TIER_ORDER else 0
    end = TIER_ORDER.index(new_tier)
    return TIER_ORDER[start + 1:end + 1]


def referral_points(activated: int, converted: int) -> int:
    """Points earned; `activated` counts activated and converted referrals."""
    return POINTS_PER_ACTIVATION * activated + POINTS_PER_CONVERSION * converted
