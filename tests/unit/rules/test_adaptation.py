"""Unit tests for adaptive learning decisions."""

from datetime import datetime

import pytest

from tutorapi.core.exceptions import ValidationError
from tutorapi.rules.adaptation import (
    ContentSource,
    LearningContext,
    NextAction,
    adaptation_reason,
    calculate_adaptive_difficulty,
    calculate_optimal_difficulty,
    default_profile_fields,
    determine_next_action,
    engagement_metrics,
    feedback_message,
    select_ai_model,
    select_content_source,
    select_explanation_style,
    spaced_repetition_hint,
)


def _profile(**overrides) -> dict:
    profile = default_profile_fields()
    profile.update({"difficulty_multiplier": 1.0, "learning_velocity": 1.0,
                    "preferred_explanation_style": "detailed"})
    profile.update(overrides)
    return profile


def test_learning_context_from_camel_case() -> None:
    ctx = LearningContext.from_dict({
        "sessionType": "diagnostic",
        "currentSkill": "quadratics",
        "isCorrect": True,
        "responseTime": 1200,
        "confidence": 0.9,
        "hintsUsed": 1,
    })

    assert ctx.session_type == "diagnostic"
    assert ctx.current_skill == "quadratics"
    assert ctx.is_correct is True
    assert ctx.response_time == 1200
    assert ctx.hints_used == 1


def test_learning_context_defaults_to_mixed() -> None:
    assert LearningContext.from_dict({}).session_type == "mixed"


def test_learning_context_rejects_wrong_types() -> None:
    with pytest.raises(ValidationError) as excinfo:
        LearningContext.from_dict({"responseTime": "fast"})
    assert excinfo.value.field == "responseTime"

    with pytest.raises(ValidationError):
        LearningContext.from_dict({"confidence": -0.5})
    with pytest.raises(ValidationError):
        LearningContext.from_dict({"responseTime": True})
    with pytest.raises(ValidationError):
        LearningContext.from_dict({"currentSkill": 7})


def test_learning_context_coerces_numbers() -> None:
    ctx = LearningContext.from_dict({"responseTime": "1200.7", "confidence": "0.9", "taskCompleted": True,
                                     "newConcepts": ["delta"]})

    assert ctx.response_time == 1200
    assert ctx.confidence == 0.9
    assert ctx.task_completed is True
    assert ctx.new_concepts == ["delta"]


def test_optimal_difficulty_uses_skill_mastery_and_range() -> None:
    """Mastery level is scaled and clamped into the optimal range."""
    profile = _profile(skill_mastery_map={"fractions": {"level": 9}})

    assert calculate_optimal_difficulty(profile, "fractions") == 7
    assert calculate_optimal_difficulty(profile, "unknown") == 5

    slow = _profile(learning_velocity=0.5)
    assert calculate_optimal_difficulty(slow) == 3


def test_select_ai_model() -> None:
    """Fast responders get the small model, slow or detail-seeking learners the big one."""
    assert select_ai_model(_profile(response_patterns={"avg_response_time": 10000})) == "gpt-4o-mini"
    assert select_ai_model(_profile(response_patterns={"avg_response_time": 40000})) == "gpt-4o"
    assert select_ai_model(_profile(
        response_patterns={"avg_response_time": 40000},
        preferred_explanation_style="concise",
        learning_velocity=1.2,
    )) == "gpt-4o-mini"


def test_adaptive_difficulty_without_answer_keeps_current() -> None:
    profile = _profile(current_learning_context={"current_difficulty": 6})

    assert calculate_adaptive_difficulty(LearningContext(), profile) == 6


def test_adaptive_difficulty_rewards_fast_confident_answers() -> None:
    """Correct + fast + confident adds 2 on top of the default 5."""
    ctx = LearningContext(is_correct=True, response_time=5000, confidence=0.9)

    assert calculate_adaptive_difficulty(ctx, _profile()) == 7


def test_adaptive_difficulty_lowers_after_slow_wrong_answer() -> None:
    ctx = LearningContext(is_correct=False, response_time=60000, confidence=0.2)
    profile = _profile(current_learning_context={"current_difficulty": 2})

    assert calculate_adaptive_difficulty(ctx, profile) == 1


def test_determine_next_action() -> None:
    assert determine_next_action(LearningContext(is_correct=False, hints_used=0)) == NextAction.REVIEW
    assert determine_next_action(LearningContext(is_correct=True, confidence=0.95)) == NextAction.ADVANCE
    assert determine_next_action(LearningContext(is_correct=False, hints_used=2)) == NextAction.CONTINUE
    assert determine_next_action(LearningContext(is_correct=True, confidence=0.5)) == NextAction.CONTINUE


def test_select_content_source() -> None:
    assert select_content_source(LearningContext(session_type="diagnostic")) == ContentSource.DATABASE_CONTENT
    assert select_content_source(LearningContext(session_type="ai_chat")) == ContentSource.AI_GENERATION
    assert select_content_source(LearningContext(session_type="study_learn")) == ContentSource.TASK_GENERATOR


def test_balanced_style_is_served_as_detailed() -> None:
    assert select_explanation_style({"preferred_explanation_style": "balanced"}) == "detailed"
    assert select_explanation_style({"preferred_explanation_style": "visual"}) == "visual"


def test_feedback_is_localized() -> None:
    correct = LearningContext(is_correct=True)

    assert feedback_message(correct, "pl").startswith("Świetnie")
    assert feedback_message(correct, "en").startswith("Great")
    assert adaptation_reason(LearningContext(), "en").startswith("starting")


def test_engagement_metrics() -> None:
    assert engagement_metrics(0, 0) == {"engagement_score": 0.5, "learning_momentum": 0.75}
    assert engagement_metrics(4, 4) == {"engagement_score": 1.0, "learning_momentum": 1.5}
    assert engagement_metrics(10, 0)["engagement_score"] == 0.1


def test_spaced_repetition_interval_follows_mastery() -> None:
    now = datetime(2025, 1, 1, 12)

    assert spaced_repetition_hint(8, now)["intervalHours"] == 48
    hint = spaced_repetition_hint(3, now)
    assert hint["intervalHours"] == 24
    assert hint["nextReviewAt"] == "2025-01-02T12:00:00"
