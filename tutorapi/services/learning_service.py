"""
Unified Learning Service - one learner model shared by chat, lessons and
diagnostics.

Actions of /unified-learning:
- get_profile      : get or create the universal learner profile
- start_session    : open a unified learning session at an adaptive difficulty
- update_session   : accumulate task metrics on an open session
- complete_session : close a session and roll its metrics into the profile
- orchestrate      : decide the next difficulty, action and content source
"""
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from tutorapi.core.exceptions import DatabaseUnavailableError, NotFoundError, ValidationError
from tutorapi.core.logging_config import LoggerMixin, log_step
from tutorapi.core.retry import ErrorHandler
from tutorapi.database.models import LearnerProfile, UnifiedLearningSession
from tutorapi.rules.adaptation import (
    LearningContext,
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

TAG = "UNIFIED-LEARNING"


class LearningService(LoggerMixin):
    """Learning orchestrator over the unified learner tables."""

    def __init__(self, session: Session, error_handler: Optional[ErrorHandler] = None):
        self.session = session
        self.error_handler = error_handler or ErrorHandler()
        self._actions: Dict[str, Callable[[str, Dict[str, Any], str], Dict[str, Any]]] = {
            "get_profile": self._get_profile_action,
            "start_session": self.start_session,
            "update_session": self.update_session,
            "complete_session": self.complete_session,
            "orchestrate": self.orchestrate,
        }

    def handle(self, user_id: str, action: str, context: Dict[str, Any], language: str = "pl") -> Dict[str, Any]:
        """Dispatch an action; unknown actions raise ValidationError."""
        handler = self._actions.get(action)
        if handler is None:
            raise ValidationError(f"Unknown action: {action}", field="action")

        log_step(self.logger, TAG, f"Processing {action}", user_id=user_id)
        return handler(user_id, context or {}, language)

    # ============================================================
    # Profile
    # ============================================================

    def _fetch_or_create_profile(self, user_id: str) -> LearnerProfile:
        profile = self.session.query(LearnerProfile).filter_by(user_id=user_id).first()
        if profile is None:
            profile = LearnerProfile(user_id=user_id, **default_profile_fields())
            self.session.add(profile)
            self.session.flush()
            log_step(self.logger, TAG, "Created learner profile", user_id=user_id)
        return profile

    def _default_profile(self, user_id: str) -> LearnerProfile:
        """Unsaved default profile for read-only answers while the database fails."""
        log_step(self.logger, TAG, "Using default learner profile", user_id=user_id)
        return LearnerProfile(user_id=user_id, **default_profile_fields())

    def _profile_unavailable(self, user_id: str) -> LearnerProfile:
        raise DatabaseUnavailableError("Learner profile could not be loaded", context="learner_profile")

    def get_or_create_profile(self, user_id: str, read_only: bool = False) -> LearnerProfile:
        """
        Load the learner profile, creating it on first use.

        Each attempt runs in a savepoint and is retried with backoff. After
        the last failure read-only callers get an unsaved default profile;
        writers get DatabaseUnavailableError.
        """
        fallback = self._default_profile if read_only else self._profile_unavailable
        return self.error_handler.handle_with_retry(
            lambda: self._fetch_or_create_profile(user_id),
            lambda: fallback(user_id),
            "unified_learning_profile",
            savepoint=self.session,
        )

    def _get_profile_action(self, user_id: str, context: Dict[str, Any], language: str) -> Dict[str, Any]:
        return {"profile": self.get_or_create_profile(user_id, read_only=True).to_dict()}

    def _own_session(self, user_id: str, session_id: Optional[str]) -> UnifiedLearningSession:
        if not session_id:
            raise ValidationError("Session ID is required", field="sessionId")
        if not isinstance(session_id, str):
            raise ValidationError("sessionId must be a string", field="sessionId")
        learning_session = self.session.get(UnifiedLearningSession, session_id)
        if learning_session is None or learning_session.user_id != user_id:
            raise NotFoundError("Learning session not found")
        return learning_session

    # ============================================================
    # Sessions
    # ============================================================

    def start_session(self, user_id: str, context: Dict[str, Any], language: str = "pl") -> Dict[str, Any]:
        ctx = LearningContext.from_dict(context)
        profile = self.get_or_create_profile(user_id)
        profile_data = profile.to_dict()

        difficulty = calculate_optimal_difficulty(profile_data, ctx.current_skill)
        learning_session = UnifiedLearningSession(
            user_id=user_id,
            profile_id=profile.id,
            session_type=ctx.session_type,
            skill_focus=ctx.current_skill,
            department=ctx.department or "mathematics",
            difficulty_level=difficulty,
            ai_model_used=select_ai_model(profile_data),
            explanation_style_used=profile.preferred_explanation_style,
            engagement_score=0.5,
            learning_momentum=1.0,
            concepts_learned=[],
        )
        self.session.add(learning_session)
        self.session.flush()

        log_step(self.logger, TAG, "Session started",
                 session_id=learning_session.id, difficulty=difficulty, model=learning_session.ai_model_used)
        return {"sessionId": learning_session.id, "initialDifficulty": difficulty}

    def update_session(self, user_id: str, context: Dict[str, Any], language: str = "pl") -> Dict[str, Any]:
        learning_session = self._own_session(user_id, context.get("sessionId"))
        ctx = LearningContext.from_dict(context)
        updates: Dict[str, Any] = {}

        if ctx.task_completed:
            updates["tasks_completed"] = learning_session.tasks_completed + 1
        if ctx.is_correct is True:
            updates["correct_answers"] = learning_session.correct_answers + 1
        if ctx.response_time:
            updates["total_response_time_ms"] = learning_session.total_response_time_ms + ctx.response_time
        if ctx.hints_used:
            updates["hints_used"] = learning_session.hints_used + ctx.hints_used
        if ctx.new_concepts:
            updates["concepts_learned"] = list(learning_session.concepts_learned or []) + ctx.new_concepts

        tasks = updates.get("tasks_completed", learning_session.tasks_completed)
        correct = updates.get("correct_answers", learning_session.correct_answers)
        updates.update(engagement_metrics(tasks, correct))

        for field, value in updates.items():
            setattr(learning_session, field, value)
        learning_session.updated_at = datetime.utcnow()
        self.session.flush()

        return {"success": True, "updates": updates}

    def complete_session(self, user_id: str, context: Dict[str, Any], language: str = "pl") -> Dict[str, Any]:
        """Close the session and fold its metrics into the learner profile."""
        learning_session = self._own_session(user_id, context.get("sessionId"))
        if learning_session.completed_at is not None:
            return {"success": True}

        now = datetime.utcnow()
        learning_session.completed_at = now
        learning_session.updated_at = now

        profile = self.get_or_create_profile(user_id)
        sessions_done = (profile.sessions_completed or 0) + 1
        minutes = max(0, int((now - learning_session.started_at).total_seconds() // 60))

        profile.sessions_completed = sessions_done
        profile.total_learning_time_minutes = (profile.total_learning_time_minutes or 0) + minutes
        profile.concepts_mastered = (profile.concepts_mastered or 0) + len(learning_session.concepts_learned or [])

        if learning_session.tasks_completed > 0:
            session_avg = learning_session.total_response_time_ms / learning_session.tasks_completed
            patterns = dict(profile.response_patterns or {})
            previous = patterns.get("avg_response_time", session_avg)
            patterns["avg_response_time"] = round((previous * (sessions_done - 1) + session_avg) / sessions_done)
            profile.response_patterns = patterns

        profile.current_learning_context = {
            **(profile.current_learning_context or {}),
            "current_difficulty": learning_session.difficulty_level,
            "last_session_id": learning_session.id,
        }
        profile.last_interaction_summary = {
            "session_type": learning_session.session_type,
            "tasks_completed": learning_session.tasks_completed,
            "correct_answers": learning_session.correct_answers,
            "completed_at": now.isoformat(),
        }
        self.session.flush()

        log_step(self.logger, TAG, "Session completed",
                 session_id=learning_session.id, minutes=minutes, sessions_completed=sessions_done)
        return {"success": True}

    # ============================================================
    # Orchestration
    # ============================================================

    def orchestrate(self, user_id: str, context: Dict[str, Any], language: str = "pl") -> Dict[str, Any]:
        ctx = LearningContext.from_dict(context)
        profile = self.get_or_create_profile(user_id, read_only=True)
        profile_data = profile.to_dict()

        new_difficulty = calculate_adaptive_difficulty(ctx, profile_data)

        mastery_map = profile_data.get("skill_mastery_map") or {}
        skill_entry = mastery_map.get(ctx.current_skill) if ctx.current_skill else None
        mastery_level = (skill_entry or {}).get("level") or new_difficulty

        decision = {
            "newDifficulty": new_difficulty,
            "recommendedAction": determine_next_action(ctx).value,
            "contentSource": select_content_source(ctx).value,
            "explanationStyle": select_explanation_style(profile_data),
            "feedbackMessage": feedback_message(ctx, language),
            "adaptationReason": adaptation_reason(ctx, language),
            "spacedRepetition": spaced_repetition_hint(mastery_level),
        }

        profile.current_learning_context = {
            **(profile.current_learning_context or {}),
            "current_difficulty": new_difficulty,
        }
        self.session.flush()

        return {"decision": decision}
