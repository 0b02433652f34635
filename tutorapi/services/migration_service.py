"""
Migration Service - moves legacy learner data into the unified tables.

Actions of /system-migration:
- migrate_profiles       : profiles.learner_profile -> universal_learner_profiles
- migrate_sessions       : recent study_sessions -> unified_learning_sessions
- sync_content_structure : fill skills.content_structure
- status                 : migrated/total counts for the admin panel

Every action is idempotent: already migrated rows are skipped.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from tutorapi.core.exceptions import ValidationError
from tutorapi.core.logging_config import LoggerMixin, log_step
from tutorapi.database.models import LearnerProfile, Profile, Skill, StudySession, UnifiedLearningSession
from tutorapi.rules.adaptation import DEFAULT_AVG_RESPONSE_MS, default_profile_fields

TAG = "SYSTEM-MIGRATION"

SESSION_WINDOW_DAYS = 30
SESSION_BATCH = 100
SKILL_BATCH = 50

DEFAULT_CONTENT_STRUCTURE = {
    "theory": {"sections": []},
    "examples": {"solved": []},
    "practiceExercises": [],
}


class MigrationService(LoggerMixin):
    """One-off data migrations run from the admin panel."""

    def __init__(self, session: Session):
        self.session = session
        self._actions = {
            "migrate_profiles": self.migrate_profiles,
            "migrate_sessions": self.migrate_sessions,
            "sync_content_structure": self.sync_content_structure,
            "status": self.status,
        }

    def handle(self, action: str) -> Dict[str, Any]:
        handler = self._actions.get(action)
        if handler is None:
            raise ValidationError(f"Unknown migration action: {action}", field="action")
        log_step(self.logger, TAG, f"Running {action}")
        return handler()

    def migrate_profiles(self) -> Dict[str, Any]:
        profiles = self.session.query(Profile).all()
        migrated_users = {
            user_id for (user_id,) in self.session.query(LearnerProfile.user_id).all()
        }

        migrated = 0
        for profile in profiles:
            if profile.user_id in migrated_users:
                continue

            legacy = profile.learner_profile or {}
            fields = default_profile_fields()
            fields.update({
                "diagnostic_summary": legacy.get("diagnostic_data") or {},
                "learning_style": legacy.get("learning_style") or fields["learning_style"],
                "response_patterns": legacy.get("performance_patterns") or fields["response_patterns"],
                "micro_skill_strengths": legacy.get("strength_areas") or {},
                "prerequisite_gaps": legacy.get("struggle_areas") or {},
                "optimal_difficulty_range": {"min": legacy.get("preferred_difficulty") or 3, "max": 7},
            })

            self.session.add(LearnerProfile(
                user_id=profile.user_id,
                class_level=legacy.get("class_level") or 1,
                track=legacy.get("track") or "basic",
                **fields,
            ))
            migrated_users.add(profile.user_id)
            migrated += 1

        self.session.flush()
        log_step(self.logger, TAG, "Profiles migrated", migrated=migrated, total=len(profiles))
        return {"success": True, "migrated": migrated, "total": len(profiles)}

    def _profile_for(self, user_id: str) -> LearnerProfile:
        profile = self.session.query(LearnerProfile).filter_by(user_id=user_id).first()
        if profile is None:
            profile = LearnerProfile(user_id=user_id, **default_profile_fields())
            self.session.add(profile)
            self.session.flush()
        return profile

    def migrate_sessions(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.utcnow()
        since = now - timedelta(days=SESSION_WINDOW_DAYS)
        sessions = (
            self.session.query(StudySession)
            .filter(StudySession.created_at >= since)
            .order_by(StudySession.created_at.asc())
            .limit(SESSION_BATCH)
            .all()
        )

        migrated = 0
        for study in sessions:
            exists = (
                self.session.query(UnifiedLearningSession.id)
                .filter_by(user_id=study.user_id, started_at=study.started_at)
                .first()
            )
            if exists:
                continue

            profile = self._profile_for(study.user_id)
            steps = study.completed_steps or 0
            strikes = study.pseudo_activity_strikes or 0
            accuracy = (steps - strikes) / steps if steps > 0 else 0

            self.session.add(UnifiedLearningSession(
                user_id=study.user_id,
                profile_id=profile.id,
                session_type=study.session_type or "study_learn",
                skill_focus=study.skill_id,
                department="mathematics",
                difficulty_level=5,
                tasks_completed=steps,
                correct_answers=round(steps * accuracy),
                total_response_time_ms=(study.average_response_time_ms or DEFAULT_AVG_RESPONSE_MS) * (steps or 1),
                hints_used=study.hints_used or 0,
                difficulty_adjustments=[],
                engagement_score=study.mastery_score if study.mastery_score is not None else 0.5,
                frustration_incidents=strikes,
                learning_momentum=1.0,
                ai_model_used=study.ai_model_used or "gpt-4o-mini",
                total_tokens_used=study.total_tokens_used or 0,
                explanation_style_used="detailed",
                learning_path=[],
                context_switches=0,
                concepts_learned=[],
                misconceptions_addressed=[],
                next_session_recommendations={},
                started_at=study.started_at,
                completed_at=study.completed_at,
            ))
            self.session.flush()
            migrated += 1

        log_step(self.logger, TAG, "Sessions migrated", migrated=migrated, total=len(sessions))
        return {"success": True, "migrated": migrated, "total": len(sessions)}

    def sync_content_structure(self) -> Dict[str, Any]:
        skills = (
            self.session.query(Skill)
            .filter(Skill.content_structure.is_(None))
            .limit(SKILL_BATCH)
            .all()
        )

        for skill in skills:
            skill.content_structure = dict(skill.content_data) if skill.content_data else dict(DEFAULT_CONTENT_STRUCTURE)

        self.session.flush()
        log_step(self.logger, TAG, "Content structure synced", updated=len(skills))
        return {"success": True, "updated": len(skills), "total": len(skills)}

    def status(self) -> Dict[str, Any]:
        def count(query) -> int:
            return query.scalar() or 0

        return {
            "success": True,
            "profiles": {
                "migrated": count(self.session.query(func.count(LearnerProfile.id))),
                "total": count(self.session.query(func.count(Profile.user_id))),
            },
            "sessions": {
                "migrated": count(self.session.query(func.count(UnifiedLearningSession.id))),
                "total": count(self.session.query(func.count(StudySession.id))),
            },
            "content": {
                "migrated": count(
                    self.session.query(func.count(Skill.id)).filter(Skill.content_structure.isnot(None))
                ),
                "total": count(self.session.query(func.count(Skill.id))),
            },
        }
