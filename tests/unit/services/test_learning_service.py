"""Unit tests for the unified learning orchestrator."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import text

from tutorapi.core.exceptions import DatabaseUnavailableError, NotFoundError, ValidationError
from tutorapi.core.retry import ErrorHandler
from tutorapi.database.models import AppErrorLog, LearnerProfile, UnifiedLearningSession
from tutorapi.services.learning_service import LearningService


def test_get_profile_creates_defaults(session) -> None:
    result = LearningService(session).handle("kid", "get_profile", {})

    profile = result["profile"]
    assert profile["user_id"] == "kid"
    assert profile["optimal_difficulty_range"] == {"min": 3, "max": 7}
    assert session.query(LearnerProfile).count() == 1

    LearningService(session).handle("kid", "get_profile", {})
    assert session.query(LearnerProfile).count() == 1


def test_unknown_action(session) -> None:
    with pytest.raises(ValidationError):
        LearningService(session).handle("kid", "time_travel", {})


def test_start_session_uses_optimal_difficulty(session) -> None:
    service = LearningService(session)
    profile = service.get_or_create_profile("kid")
    profile.skill_mastery_map = {"fractions": {"level": 6}}
    session.flush()

    result = service.handle("kid", "start_session", {"sessionType": "study_learn", "currentSkill": "fractions"})

    assert result["initialDifficulty"] == 6
    learning_session = session.get(UnifiedLearningSession, result["sessionId"])
    assert learning_session.session_type == "study_learn"
    assert learning_session.skill_focus == "fractions"
    assert learning_session.ai_model_used == "gpt-4o"


def test_update_session_accumulates_metrics(session) -> None:
    service = LearningService(session)
    session_id = service.handle("kid", "start_session", {})["sessionId"]

    service.handle("kid", "update_session", {
        "sessionId": session_id, "taskCompleted": True, "isCorrect": True,
        "responseTime": 12000, "hintsUsed": 1, "newConcepts": ["delta"],
    })
    result = service.handle("kid", "update_session", {
        "sessionId": session_id, "taskCompleted": True, "isCorrect": False, "responseTime": 8000,
    })

    learning_session = session.get(UnifiedLearningSession, session_id)
    assert learning_session.tasks_completed == 2
    assert learning_session.correct_answers == 1
    assert learning_session.total_response_time_ms == 20000
    assert learning_session.hints_used == 1
    assert learning_session.concepts_learned == ["delta"]
    assert result["updates"]["engagement_score"] == 0.5
    assert result["updates"]["learning_momentum"] == 0.75


def test_sessions_are_private(session) -> None:
    service = LearningService(session)
    session_id = service.handle("kid", "start_session", {})["sessionId"]

    with pytest.raises(NotFoundError):
        service.handle("other-kid", "update_session", {"sessionId": session_id, "taskCompleted": True})
    with pytest.raises(ValidationError):
        service.handle("kid", "complete_session", {})


def test_complete_session_updates_profile_once(session) -> None:
    service = LearningService(session)
    session_id = service.handle("kid", "start_session", {})["sessionId"]
    learning_session = session.get(UnifiedLearningSession, session_id)
    learning_session.started_at = datetime.utcnow() - timedelta(minutes=25)
    learning_session.concepts_learned = ["delta", "vieta"]
    service.handle("kid", "update_session", {"sessionId": session_id, "taskCompleted": True, "responseTime": 10000})

    assert service.handle("kid", "complete_session", {"sessionId": session_id}) == {"success": True}
    assert service.handle("kid", "complete_session", {"sessionId": session_id}) == {"success": True}

    profile = service.get_or_create_profile("kid")
    assert profile.sessions_completed == 1
    assert profile.total_learning_time_minutes == 25
    assert profile.concepts_mastered == 2
    assert profile.response_patterns["avg_response_time"] == 10000
    assert profile.current_learning_context["last_session_id"] == session_id
    assert learning_session.completed_at is not None


def test_orchestrate_returns_decision_and_persists_difficulty(session) -> None:
    service = LearningService(session)

    result = service.handle("kid", "orchestrate", {
        "sessionType": "ai_chat", "isCorrect": True, "confidence": 0.9, "responseTime": 5000,
    }, language="en")

    decision = result["decision"]
    assert decision["newDifficulty"] == 7
    assert decision["recommendedAction"] == "advance"
    assert decision["contentSource"] == "ai_generation"
    assert decision["explanationStyle"] == "detailed"
    assert decision["feedbackMessage"] == "Great! Keep up the good work."
    assert decision["spacedRepetition"]["intervalHours"] == 48

    profile = service.get_or_create_profile("kid")
    assert profile.current_learning_context["current_difficulty"] == 7

    follow_up = service.handle("kid", "orchestrate", {"isCorrect": False, "hintsUsed": 0})
    assert follow_up["decision"]["newDifficulty"] == 6
    assert follow_up["decision"]["recommendedAction"] == "review"


def _service_with_failing_profile_load(session, failures: int = 10) -> LearningService:
    service = LearningService(session, ErrorHandler(max_attempts=3, sleep=lambda _: None))
    load = service._fetch_or_create_profile
    calls = []

    def _flaky(user_id):
        calls.append(user_id)
        if len(calls) <= failures:
            session.execute(text("SELECT * FROM missing_table"))
        return load(user_id)

    service._fetch_or_create_profile = _flaky
    return service


def test_get_profile_falls_back_to_unsaved_defaults(session) -> None:
    service = _service_with_failing_profile_load(session)

    profile = service.handle("kid", "get_profile", {})["profile"]

    assert profile["user_id"] == "kid"
    assert profile["optimal_difficulty_range"] == {"min": 3, "max": 7}
    assert session.query(LearnerProfile).count() == 0
    assert session.query(AppErrorLog).filter_by(location="unified_learning_profile").count() == 3


def test_orchestrate_answers_from_default_profile(session) -> None:
    service = _service_with_failing_profile_load(session)

    decision = service.handle("kid", "orchestrate", {"isCorrect": True})["decision"]

    assert decision["newDifficulty"] == 6
    assert session.query(LearnerProfile).count() == 0


def test_start_session_needs_a_stored_profile(session) -> None:
    service = _service_with_failing_profile_load(session)

    with pytest.raises(DatabaseUnavailableError) as excinfo:
        service.handle("kid", "start_session", {})

    assert excinfo.value.status_code == 503
    assert session.query(UnifiedLearningSession).count() == 0


def test_profile_load_recovers_after_one_failure(session) -> None:
    service = _service_with_failing_profile_load(session, failures=1)

    result = service.handle("kid", "start_session", {})

    assert result["initialDifficulty"] == 5
    assert session.query(LearnerProfile).filter_by(user_id="kid").count() == 1
    assert session.query(AppErrorLog).count() == 1


@pytest.mark.parametrize("context, field", [
    ({"responseTime": "fast"}, "responseTime"),
    ({"hintsUsed": [1]}, "hintsUsed"),
    ({"isCorrect": "yes"}, "isCorrect"),
    ({"newConcepts": "delta"}, "newConcepts"),
    ({"taskCompleted": 1}, "taskCompleted"),
])
def test_update_session_rejects_malformed_context(session, context, field) -> None:
    service = LearningService(session)
    session_id = service.handle("kid", "start_session", {})["sessionId"]

    with pytest.raises(ValidationError) as excinfo:
        service.handle("kid", "update_session", {"sessionId": session_id, **context})

    assert excinfo.value.field == field
    assert session.get(UnifiedLearningSession, session_id).tasks_completed == 0


def test_update_session_accepts_numeric_strings(session) -> None:
    service = LearningService(session)
    session_id = service.handle("kid", "start_session", {})["sessionId"]

    service.handle("kid", "update_session", {"sessionId": session_id, "responseTime": "1500", "hintsUsed": 2.0})

    learning_session = session.get(UnifiedLearningSession, session_id)
    assert learning_session.total_response_time_ms == 1500
    assert learning_session.hints_used == 2


def test_orchestrate_rejects_text_confidence(session) -> None:
    with pytest.raises(ValidationError) as excinfo:
        LearningService(session).handle("kid", "orchestrate", {"isCorrect": True, "confidence": "high"})

    assert excinfo.value.field == "confidence"
    assert session.query(LearnerProfile).count() == 0
