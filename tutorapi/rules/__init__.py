"""
Rules module - Pure decision logic with no I/O.

This module provides:
- risk.py             : Referral fraud-risk scoring and reward release policy
- referral_stages.py  : Referral stage machine, points and tier ladder
- tokens.py           : Plan tiers and token-limit arithmetic
- adaptation.py       : Adaptive difficulty and learning orchestration decisions
- insights.py         : Tutor chat insights extraction
"""
from tutorapi.rules.risk import RiskSignals, RiskAssessment, RewardDecision, assess_risk, calculate_risk_score
from tutorapi.rules.referral_stages import ReferralStage, can_transition, ensure_transition, tier_for
from tutorapi.rules.tokens import PlanType, TokenStatus, plan_for_price

__all__ = [
    "RiskSignals",
    "RiskAssessment",
    "RewardDecision",
    "assess_risk",
    "calculate_risk_score",
    "ReferralStage",
    "can_transition",
    "ensure_transition",
    "tier_for",
    "PlanType",
    "TokenStatus",
    "plan_for_price",
]
