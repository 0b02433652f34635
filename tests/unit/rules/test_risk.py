"""Unit tests for referral risk scoring."""

from tutorapi.rules.risk import (
    BASE_SCORE,
    RewardDecision,
    RiskSignals,
    assess_risk,
    calculate_risk_score,
    decide_reward,
)


def test_no_signals_scores_base() -> None:
    """An invitee with no signals keeps the neutral base score."""
    assessment = assess_risk(RiskSignals())

    assert assessment.score == BASE_SCORE
    assert assessment.factors == []
    assert assessment.decision == RewardDecision.MANUAL_REVIEW


def test_verified_active_invitee_is_released_now() -> None:
    """Phone, onboarding and an hour of learning push the score above 85."""
    signals = RiskSignals(phone_verified=True, onboarding_completed=True, learning_minutes=60)

    assessment = assess_risk(signals)

    assert assessment.score == 50 + 25 + 15 + 10
    assert assessment.decision == RewardDecision.RELEASE_NOW


def test_learning_bonus_is_capped_at_sixty_minutes() -> None:
    """Learning beyond an hour earns no extra points."""
    assert calculate_risk_score(RiskSignals(learning_minutes=600)) == BASE_SCORE + 10
    assert calculate_risk_score(RiskSignals(learning_minutes=5)) == BASE_SCORE


def test_negative_signals_are_listed_as_factors() -> None:
    """Each fraud signal subtracts its weight and shows up in the factors."""
    signals = RiskSignals(
        phone_verified=True,
        phone_is_voip=True,
        ip_is_vpn=True,
        device_is_duplicate=True,
    )

    assessment = assess_risk(signals)
    factors = dict(assessment.factors)

    assert factors == {
        "phone_verified": 25,
        "phone_is_voip": -20,
        "ip_is_vpn": -15,
        "device_is_duplicate": -30,
    }
    assert assessment.score == 10


def test_score_is_clamped_to_zero() -> None:
    """Many bad signals never produce a negative score."""
    signals = RiskSignals(
        phone_is_voip=True,
        ip_is_vpn=True,
        device_is_duplicate=True,
        shared_ip_referrals=5,
    )

    assert calculate_risk_score(signals) == 0


def test_shared_ip_penalty_is_capped() -> None:
    """Shared IP costs 10 per referral up to 30."""
    assert dict(assess_risk(RiskSignals(shared_ip_referrals=2)).factors)["shared_ip"] == -20
    assert dict(assess_risk(RiskSignals(shared_ip_referrals=9)).factors)["shared_ip"] == -30


def test_decide_reward_thresholds() -> None:
    """85 and above releases now, 70-84 delays, lower goes to review."""
    assert decide_reward(100) == RewardDecision.RELEASE_NOW
    assert decide_reward(85) == RewardDecision.RELEASE_NOW
    assert decide_reward(84) == RewardDecision.RELEASE_DELAYED
    assert decide_reward(70) == RewardDecision.RELEASE_DELAYED
    assert decide_reward(69) == RewardDecision.MANUAL_REVIEW


def test_assessment_to_dict_shape() -> None:
    """The serialized assessment carries score, decision and factors."""
    data = assess_risk(RiskSignals(phone_verified=True, ip_is_vpn=True)).to_dict()

    assert data == {
        "score": 60,
        "decision": "manual_review",
        "factors": [
            {"factor": "phone_verified", "delta": 25},
            {"factor": "ip_is_vpn", "delta": -15},
        ],
    }
