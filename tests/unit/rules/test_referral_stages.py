"""Unit tests for the referral stage machine and referrer ladder."""

import pytest

from tutorapi.core.exceptions import ConflictError
from tutorapi.rules.referral_stages import (
    can_transition,
    ensure_transition,
    referral_points,
    tier_bonus_days,
    tier_for,
    tiers_unlocked,
)


@pytest.mark.parametrize(
    "current,target",
    [
        ("invited", "activated"),
        ("invited", "blocked"),
        ("activated", "converted"),
        ("activated", "blocked"),
    ],
)
def test_allowed_transitions(current: str, target: str) -> None:
    """Forward moves and blocking from open stages are allowed."""
    assert can_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        ("invited", "converted"),
        ("activated", "invited"),
        ("converted", "blocked"),
        ("blocked", "activated"),
        ("invited", "unknown"),
    ],
)
def test_rejected_transitions(current: str, target: str) -> None:
    """Skipping stages, going back or leaving a terminal stage is rejected."""
    assert not can_transition(current, target)


def test_ensure_transition_raises_conflict() -> None:
    """ensure_transition maps a rejected move to a 409 error."""
    with pytest.raises(ConflictError) as excinfo:
        ensure_transition("converted", "blocked")

    assert excinfo.value.status_code == 409


def test_tier_for_thresholds() -> None:
    """Tiers follow the number of converted referrals."""
    assert tier_for(0) == "beginner"
    assert tier_for(1) == "advocate"
    assert tier_for(4) == "promoter"
    assert tier_for(5) == "ambassador"
    assert tier_for(25) == "legend"


def test_tiers_unlocked_lists_every_passed_tier() -> None:
    """Jumping several tiers at once unlocks each one in between."""
    assert tiers_unlocked("beginner", "ambassador") == ["advocate", "promoter", "ambassador"]
    assert tiers_unlocked("promoter", "promoter") == []
    assert tiers_unlocked(None, "advocate") == ["advocate"]


def test_tier_bonus_days() -> None:
    assert tier_bonus_days("beginner") == 0
    assert tier_bonus_days("legend") == 60
    assert tier_bonus_days("nonexistent") == 0


def test_referral_points() -> None:
    """Activations earn 10 points and conversions 50 on top."""
    assert referral_points(0, 0) == 0
    assert referral_points(3, 1) == 80
