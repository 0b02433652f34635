"""
Adaptive learning decisions.

Pure functions over a learner profile (as a dict, the shape stored in
`universal_learner_profiles`) and the learning context posted by the
frontend. The unified learning service composes them into a decision.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from tutorapi.core.exceptions import ValidationError
from tutorapi.core.i18n import translate

DEFAULT_DIFFICULTY = 5
DEFAULT_AVG_RESPONSE_MS = 30000


class SessionType(str, Enum):
    AI_CHAT = "ai_chat"
    STUDY_LEARN = "study_learn"
    DIAGNOSTIC = "diagnostic"
    MIXED = "mixed"


class NextAction(str, Enum):
    CONTINUE = "continue"
    REVIEW = "review"
    ADVANCE = "advance"


class ContentSource(str, Enum):
    AI_GENERATION = "ai_generation"
    DATABASE_CONTENT = "database_content"
    TASK_GENERATOR = "task_generator"


def _invalid(key: str, expected: str) -> ValidationError:
    return ValidationError(f"{key} must be {expected}", field=key)


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None or isinstance(value, str):
        return value
    raise _invalid(key, "a string")


def _optional_bool(data: Dict[str, Any], key: str) -> Optional[bool]:
    value = data.get(key)
    if value is None or isinstance(value, bool):
        return value
    raise _invalid(key, "true or false")


def _optional_number(data: Dict[str, Any], key: str, integer: bool = False) -> Optional[float]:
    """Non-negative finite number; numeric strings are accepted."""
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise _invalid(key, "a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise _invalid(key, "a number") from None
    if not math.isfinite(number) or number < 0:
        raise _invalid(key, "a non-negative number")
    return int(number) if integer else number


def _string_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise _invalid(key, "a list of strings")
    return value


@dataclass
class LearningContext:
    """
    Per-request learning signals; every field is optional.

    `from_dict` reads the camelCase context posted by the frontend and
    raises ValidationError on values of the wrong type.
    """
    session_type: str = SessionType.MIXED.value
    current_skill: Optional[str] = None
    department: Optional[str] = None
    is_correct: Optional[bool] = None
    response_time: Optional[int] = None  # ms
    confidence: Optional[float] = None
    hints_used: Optional[int] = None
    task_completed: bool = False
    new_concepts: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearningContext":
        return cls(
            session_type=_optional_str(data, "sessionType") or SessionType.MIXED.value,
            current_skill=_optional_str(data, "currentSkill"),
            department=_optional_str(data, "department"),
            is_correct=_optional_bool(data, "isCorrect"),
            response_time=_optional_number(data, "responseTime", integer=True),
            confidence=_optional_number(data, "confidence"),
            hints_used=_optional_number(data, "hintsUsed", integer=True),
            task_completed=bool(_optional_bool(data, "taskCompleted")),
            new_concepts=_string_list(data, "newConcepts"),
        )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _avg_response_time(profile: Dict[str, Any]) -> Optional[float]:
    patterns = profile.get("response_patterns") or {}
    return patterns.get("avg_response_time")


def calculate_optimal_difficulty(profile: Dict[str, Any], skill_id: Optional[str] = None) -> int:
    """
    Starting difficulty for a new session.

    Skill mastery level (default 5) scaled by the profile's difficulty
    multiplier and learning velocity, clamped into the profile's optimal
    difficulty range.
    """
    base = float(DEFAULT_DIFFICULTY)

    mastery_map = profile.get("skill_mastery_map") or {}
    if skill_id and mastery_map.get(skill_id):
        level = mastery_map[skill_id].get("level") or DEFAULT_DIFFICULTY
        base = _clamp(level, 1, 10)

    base *= profile.get("difficulty_multiplier") or 1.0
    base *= profile.get("learning_velocity") or 1.0

    difficulty_range = profile.get("optimal_difficulty_range") or {}
    low = difficulty_range.get("min") or 1
    high = difficulty_range.get("max") or 10

    return int(_clamp(round(base), low, high))


def select_ai_model(profile: Dict[str, Any]) -> str:
    """Pick the tutor model tier from the learner's pace and style."""
    avg_time = _avg_response_time(profile)
    if avg_time is not None and avg_time < 20000:
        return "gpt-4o-mini"
    velocity = profile.get("learning_velocity")
    if profile.get("preferred_explanation_style") == "detailed" or (velocity is not None and velocity < 0.8):
        return "gpt-4o"
    return "gpt-4o-mini"


def calculate_adaptive_difficulty(context: LearningContext, profile: Dict[str, Any]) -> int:
    """Adjust the current difficulty after an answer."""
    current = (profile.get("current_learning_context") or {}).get("current_difficulty") or DEFAULT_DIFFICULTY

    if context.is_correct is None:
        return current

    adjustment = 1.0 if context.is_correct else -1.0

    if context.response_time:
        avg_time = _avg_response_time(profile) or DEFAULT_AVG_RESPONSE_MS
        if context.response_time < avg_time * 0.7:
            adjustment += 0.5
        if context.response_time > avg_time * 1.5:
            adjustment -= 0.5

    if context.confidence:
        if context.confidence > 0.8 and context.is_correct:
            adjustment += 0.5
        if context.confidence < 0.4:
            adjustment -= 0.5

    return int(round(_clamp(current + adjustment, 1, 10)))


def determine_next_action(context: LearningContext) -> NextAction:
    if not context.is_correct and context.hints_used == 0:
        return NextAction.REVIEW
    if context.is_correct and context.confidence and context.confidence > 0.8:
        return NextAction.ADVANCE
    return NextAction.CONTINUE


def select_content_source(context: LearningContext) -> ContentSource:
    if context.session_type == SessionType.DIAGNOSTIC.value:
        return ContentSource.DATABASE_CONTENT
    if context.session_type == SessionType.AI_CHAT.value:
        return ContentSource.AI_GENERATION
    return ContentSource.TASK_GENERATOR


def select_explanation_style(profile: Dict[str, Any]) -> str:
    style = profile.get("preferred_explanation_style") or "detailed"
    return "detailed" if style == "balanced" else style


def _outcome_key(context: LearningContext) -> str:
    if context.is_correct is True:
        return "correct"
    if context.is_correct is False:
        return "incorrect"
    return "start"


def feedback_message(context: LearningContext, language: str = "pl") -> str:
    return translate(f"feedback_{_outcome_key(context)}", language)


def adaptation_reason(context: LearningContext, language: str = "pl") -> str:
    return translate(f"reason_{_outcome_key(context)}", language)


def engagement_metrics(tasks_completed: int, correct_answers: int) -> Dict[str, float]:
    """Engagement follows accuracy; momentum scales engagement by 1.5."""
    accuracy = correct_answers / tasks_completed if tasks_completed > 0 else 0.5
    engagement = _clamp(accuracy, 0.1, 1.0)
    momentum = _clamp(engagement * 1.5, 0.5, 2.0)
    return {"engagement_score": engagement, "learning_momentum": momentum}


def next_review_interval(mastery_level: float) -> timedelta:
    """Spaced repetition: well-mastered skills come back after two days."""
    return timedelta(hours=48 if mastery_level > 5 else 24)


def spaced_repetition_hint(mastery_level: float, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    interval = next_review_interval(mastery_level)
    return {
        "nextReviewAt": (now + interval).isoformat(),
        "masteryLevel": mastery_level,
        "intervalHours": int(interval.total_seconds() // 3600),
    }


def default_profile_fields() -> Dict[str, Any]:
    """JSON defaults of a freshly created learner profile."""
    return {
        "diagnostic_summary": {},
        "learning_style": {"visual": 0.33, "auditory": 0.33, "kinesthetic": 0.33},
        "response_patterns": {"avg_response_time": DEFAULT_AVG_RESPONSE_MS, "confidence_pattern": "moderate"},
        "error_patterns": {},
        "skill_mastery_map": {},
        "micro_skill_strengths": {},
        "prerequisite_gaps": {},
        "optimal_difficulty_range": {"min": 3, "max": 7},
        "engagement_triggers": {"variety": True, "progress_feedback": True},
        "current_learning_context": {},
        "last_interaction_summary": {},
        "next_recommended_action": {"type": "diagnostic", "priority": "high"},
    }
