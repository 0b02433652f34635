"""
Referral Risk Scoring - trust score for an activating referral.

The score runs 0..100 and higher means MORE trustworthy. It decides how
the referrer's activation reward is released:
- >= 85 : released immediately
- 70-84 : held, auto-released after 48 hours
- < 70  : held for manual review in the admin panel
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple

from tutorapi.core.logging_config import get_logger

logger = get_logger(__name__)

BASE_SCORE = 50
AUTO_RELEASE_THRESHOLD = 85
DELAYED_RELEASE_THRESHOLD = 70
DELAYED_RELEASE_HOURS = 48


class RewardDecision(str, Enum):
    """How an activation reward is released."""
    RELEASE_NOW = "release_now"
    RELEASE_DELAYED = "release_delayed"
    MANUAL_REVIEW = "manual_review"


@dataclass
class RiskSignals:
    """Fraud signals gathered for one invited user."""
    phone_verified: bool = False
    phone_is_voip: bool = False
    ip_is_vpn: bool = False
    device_is_duplicate: bool = False
    onboarding_completed: bool = False
    learning_minutes: int = 0
    shared_ip_referrals: int = 0  # other referrals of the same referrer from the same IP


@dataclass
class RiskAssessment:
    """Score plus the (factor, delta) pairs that produced it."""
    score: int
    factors: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def decision(self) -> RewardDecision:
        return decide_reward(self.score)

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "decision": self.decision.value,
            "factors": [{"factor": name, "delta": delta} for name, delta in self.factors],
        }


def assess_risk(signals: RiskSignals) -> RiskAssessment:
    """
    Score the signals of an invited user.

    Args:
        signals: Fraud signals for the invitee

    Returns:
        RiskAssessment with the clamped score and contributing factors
    """
    factors: List[Tuple[str, int]] = []

    if signals.phone_verified:
        factors.append(("phone_verified", 25))
    if signals.phone_is_voip:
        factors.append(("phone_is_voip", -20))
    if signals.ip_is_vpn:
        factors.append(("ip_is_vpn", -15))
    if signals.device_is_duplicate:
        factors.append(("device_is_duplicate", -30))
    if signals.onboarding_completed:
        factors.append(("onboarding_completed", 15))

    learning_bonus = min(max(signals.learning_minutes, 0), 60) // 6
    if learning_bonus:
        factors.append(("learning_minutes", learning_bonus))

    if signals.shared_ip_referrals > 0:
        factors.append(("shared_ip", -min(10 * signals.shared_ip_referrals, 30)))

    score = BASE_SCORE + sum(delta for _, delta in factors)
    score = max(0, min(100, score))

    logger.debug(f"Risk score {score} from factors {factors}")
    return RiskAssessment(score=score, factors=factors)


def calculate_risk_score(signals: RiskSignals) -> int:
    """Shortcut returning only the 0..100 score."""
    return assess_risk(signals).score


def decide_reward(score: int) -> RewardDecision:
    """Map a trust score to the reward release policy."""
    if score >= AUTO_RELEASE_THRESHOLD:
        return RewardDecision.RELEASE_NOW
    if score >= DELAYED_RELEASE_THRESHOLD:
        return RewardDecision.RELEASE_DELAYED
    return RewardDecision.MANUAL_REVIEW
