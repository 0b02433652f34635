"""
Database Models - SQLAlchemy ORM models for the tables the handlers touch.

Tables are grouped by the handler family that owns them:
- accounts      : profiles, user_roles
- referrals     : referral_codes, referrals, referral_events, rewards,
                  user_referral_stats, rewards_catalog, reward_claims,
                  admin_actions_log
- billing       : user_subscriptions, token_usage_logs
- learning      : chat_logs, user_lesson_progress, study_sessions, skills,
                  universal_learner_profiles, unified_learning_sessions
- observability : app_error_logs, app_event_logs, page_analytics,
                  user_session_analytics

JSON columns are not mutation-tracked: always assign a new dict/list
instead of editing the loaded value in place.
"""
import uuid
from datetime import date, datetime
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class SerializableMixin:
    """Adds a column-based `to_dict()` with ISO formatted dates."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            result[column.name] = value
        return result


# ============================================================
# Accounts
# ============================================================

class Profile(SerializableMixin, Base):
    """Public profile of a registered user."""
    __tablename__ = "profiles"

    user_id = Column(String(36), primary_key=True)
    email = Column(String(255), unique=True, nullable=True)
    display_name = Column(String(120), nullable=True)
    level = Column(Integer, default=1, nullable=False)
    total_points = Column(Integer, default=0, nullable=False)
    referral_code = Column(String(16), unique=True, nullable=True)
    phone_verified_at = Column(DateTime, nullable=True)
    phone_is_voip = Column(Boolean, default=False, nullable=False)
    ip_is_vpn = Column(Boolean, default=False, nullable=False)
    device_hash = Column(String(64), nullable=True)
    language = Column(String(5), default="pl", nullable=False)
    learner_profile = Column(JSON(none_as_null=True), nullable=True)  # Legacy learner data, see system migration
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserRole(SerializableMixin, Base):
    """Role grant (e.g. 'admin') for a user."""
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    role = Column(String(20), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


# ============================================================
# Referrals and rewards
# ============================================================

class ReferralCode(SerializableMixin, Base):
    """Shareable referral code owned by a user."""
    __tablename__ = "referral_codes"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    code = Column(String(16), unique=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Referral(SerializableMixin, Base):
    """
    A referrer -> invitee link.

    `stage` moves invited -> activated -> converted, or to blocked.
    One referral per invited user (unique referred_user_id).
    """
    __tablename__ = "referrals"

    id = Column(String(36), primary_key=True, default=_uuid)
    referrer_id = Column(String(36), nullable=False, index=True)
    referred_user_id = Column(String(36), unique=True, nullable=True)
    referral_code = Column(String(16), nullable=False)
    stage = Column(String(20), default="invited", nullable=False)
    ip = Column(String(45), nullable=True)
    risk_score = Column(Integer, default=0, nullable=False)
    notes = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    activated_at = Column(DateTime, nullable=True)
    converted_at = Column(DateTime, nullable=True)
    blocked_at = Column(DateTime, nullable=True)


class ReferralEvent(SerializableMixin, Base):
    """Append-only audit trail of referral lifecycle events."""
    __tablename__ = "referral_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    referral_id = Column(String(36), nullable=True, index=True)
    event_type = Column(String(40), nullable=False)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Reward(SerializableMixin, Base):
    """
    A reward granted to a user.

    kind:   days | tokens | convertible | points
    status: pending | released | consumed | revoked
    source: activation | conversion | ladder | shop
    """
    __tablename__ = "rewards"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    kind = Column(String(20), nullable=False)
    amount = Column(Integer, nullable=False)
    status = Column(String(20), default="pending", nullable=False)
    source = Column(String(20), nullable=False)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    released_at = Column(DateTime, nullable=True)
    consumed_at = Column(DateTime, nullable=True)


class UserReferralStats(SerializableMixin, Base):
    """Denormalised referral counters and tier of a referrer."""
    __tablename__ = "user_referral_stats"

    user_id = Column(String(36), primary_key=True)
    successful_referrals = Column(Integer, default=0, nullable=False)
    activated_referrals = Column(Integer, default=0, nullable=False)
    total_points = Column(Integer, default=0, nullable=False)
    available_points = Column(Integer, default=0, nullable=False)
    free_months_earned = Column(Integer, default=0, nullable=False)
    current_tier = Column(String(20), default="beginner", nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class RewardCatalogItem(SerializableMixin, Base):
    """Item that can be bought with referral points."""
    __tablename__ = "rewards_catalog"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    points_required = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class RewardClaim(SerializableMixin, Base):
    """A user's claim of a catalog item (status pending | approved | rejected | delivered)."""
    __tablename__ = "reward_claims"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    reward_id = Column(String(36), nullable=False)
    points_spent = Column(Integer, nullable=False)
    status = Column(String(20), default="pending", nullable=False)
    delivery_info = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AdminActionLog(SerializableMixin, Base):
    """Audit row for actions taken from the admin panels."""
    __tablename__ = "admin_actions_log"

    id = Column(String(36), primary_key=True, default=_uuid)
    admin_id = Column(String(36), nullable=False)
    target_user_id = Column(String(36), nullable=True)
    action_type = Column(String(40), nullable=False)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


# ============================================================
# Billing
# ============================================================

class UserSubscription(SerializableMixin, Base):
    """
    Plan and token counters of a user.

    price_amount is the monthly plan price in minor currency units;
    the plan tier and token limit are derived from it.
    """
    __tablename__ = "user_subscriptions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), unique=True, nullable=False)
    subscription_type = Column(String(20), default="free", nullable=False)
    status = Column(String(20), default="active", nullable=False)
    price_amount = Column(Integer, default=0, nullable=False)
    monthly_token_limit = Column(Integer, default=500, nullable=False)
    tokens_used_total = Column(Integer, default=0, nullable=False)
    monthly_tokens_used = Column(Integer, default=0, nullable=False)
    billing_cycle_start = Column(DateTime, default=datetime.utcnow, nullable=False)
    subscription_end_date = Column(DateTime, nullable=True)
    trial_end_date = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class TokenUsageLog(SerializableMixin, Base):
    """One metered LLM call."""
    __tablename__ = "token_usage_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    tokens = Column(Integer, nullable=False)
    source = Column(String(40), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


# ============================================================
# Learning
# ============================================================

class ChatLog(SerializableMixin, Base):
    """A single tutor chat message."""
    __tablename__ = "chat_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=True)
    role = Column(String(20), nullable=False)  # 'user' or 'assistant'
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserLessonProgress(SerializableMixin, Base):
    """Progress of a user in one lesson."""
    __tablename__ = "user_lesson_progress"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    topic_name = Column(String(120), nullable=False)
    lesson_title = Column(String(200), nullable=True)
    score = Column(Integer, nullable=True)
    completion_percentage = Column(Integer, default=0, nullable=False)
    last_accessed_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class StudySession(SerializableMixin, Base):
    """Legacy study session; source of the unified-learning migration."""
    __tablename__ = "study_sessions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    skill_id = Column(String(36), nullable=True)
    session_type = Column(String(20), nullable=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    completed_steps = Column(Integer, default=0, nullable=False)
    pseudo_activity_strikes = Column(Integer, default=0, nullable=False)
    average_response_time_ms = Column(Integer, nullable=True)
    hints_used = Column(Integer, default=0, nullable=False)
    mastery_score = Column(Float, nullable=True)
    ai_model_used = Column(String(40), nullable=True)
    total_tokens_used = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Skill(SerializableMixin, Base):
    """Curriculum skill and its lesson content."""
    __tablename__ = "skills"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(200), nullable=False)
    department = Column(String(60), default="mathematics", nullable=False)
    content_data = Column(JSON, nullable=True)
    content_structure = Column(JSON(none_as_null=True), nullable=True)


class LearnerProfile(SerializableMixin, Base):
    """Unified learner model shared by the tutor, lessons and diagnostics."""
    __tablename__ = "universal_learner_profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), unique=True, nullable=False)
    diagnostic_summary = Column(JSON, nullable=True)
    class_level = Column(Integer, default=1, nullable=False)
    track = Column(String(20), default="basic", nullable=False)
    learning_style = Column(JSON, nullable=True)
    response_patterns = Column(JSON, nullable=True)
    error_patterns = Column(JSON, nullable=True)
    skill_mastery_map = Column(JSON, nullable=True)
    micro_skill_strengths = Column(JSON, nullable=True)
    prerequisite_gaps = Column(JSON, nullable=True)
    preferred_explanation_style = Column(String(20), default="detailed", nullable=False)
    optimal_difficulty_range = Column(JSON, nullable=True)
    engagement_triggers = Column(JSON, nullable=True)
    frustration_threshold = Column(Integer, default=3, nullable=False)
    difficulty_multiplier = Column(Float, default=1.0, nullable=False)
    learning_velocity = Column(Float, default=1.0, nullable=False)
    retention_rate = Column(Float, default=0.8, nullable=False)
    current_learning_context = Column(JSON, nullable=True)
    last_interaction_summary = Column(JSON, nullable=True)
    next_recommended_action = Column(JSON, nullable=True)
    total_learning_time_minutes = Column(Integer, default=0, nullable=False)
    sessions_completed = Column(Integer, default=0, nullable=False)
    concepts_mastered = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class UnifiedLearningSession(SerializableMixin, Base):
    """Aggregated metrics of one study or chat session."""
    __tablename__ = "unified_learning_sessions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    profile_id = Column(String(36), nullable=False)
    session_type = Column(String(20), nullable=False)
    skill_focus = Column(String(120), nullable=True)
    department = Column(String(60), default="mathematics", nullable=False)
    difficulty_level = Column(Integer, default=5, nullable=False)
    tasks_completed = Column(Integer, default=0, nullable=False)
    correct_answers = Column(Integer, default=0, nullable=False)
    total_response_time_ms = Column(Integer, default=0, nullable=False)
    hints_used = Column(Integer, default=0, nullable=False)
    difficulty_adjustments = Column(JSON, nullable=True)
    engagement_score = Column(Float, default=0.5, nullable=False)
    frustration_incidents = Column(Integer, default=0, nullable=False)
    learning_momentum = Column(Float, default=1.0, nullable=False)
    ai_model_used = Column(String(40), nullable=True)
    total_tokens_used = Column(Integer, default=0, nullable=False)
    explanation_style_used = Column(String(20), nullable=True)
    learning_path = Column(JSON, nullable=True)
    context_switches = Column(Integer, default=0, nullable=False)
    concepts_learned = Column(JSON, nullable=True)
    misconceptions_addressed = Column(JSON, nullable=True)
    next_session_recommendations = Column(JSON, nullable=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


# ============================================================
# Observability
# ============================================================

class AppErrorLog(SerializableMixin, Base):
    """Error captured by ErrorHandler for later analysis."""
    __tablename__ = "app_error_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    message = Column(Text, nullable=False)
    stack = Column(Text, nullable=True)
    location = Column(String(200), nullable=False)
    source = Column(String(40), nullable=False)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AppEventLog(SerializableMixin, Base):
    """Product event (page views, trial lifecycle, ...)."""
    __tablename__ = "app_event_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=True, index=True)
    event_type = Column(String(40), nullable=False, index=True)
    route = Column(String(200), nullable=True)
    device = Column(String(40), nullable=True)
    platform = Column(String(40), nullable=True)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class PageAnalytics(SerializableMixin, Base):
    """Daily per-route page view aggregate."""
    __tablename__ = "page_analytics"
    __table_args__ = (UniqueConstraint("date", "route", name="uq_page_analytics_date_route"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    date = Column(Date, nullable=False)
    route = Column(String(200), nullable=False)
    total_page_views = Column(Integer, default=0, nullable=False)
    unique_page_views = Column(Integer, default=0, nullable=False)
    average_load_time_ms = Column(Integer, default=0, nullable=False)
    device_stats = Column(JSON, nullable=True)
    platform_stats = Column(JSON, nullable=True)
    bounce_rate = Column(Float, default=0.0, nullable=False)
    average_session_duration_minutes = Column(Float, default=0.0, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserSessionAnalytics(SerializableMixin, Base):
    """One browsing session of a visitor."""
    __tablename__ = "user_session_analytics"

    id = Column(String(36), primary_key=True, default=_uuid)
    session_id = Column(String(64), unique=True, nullable=True, index=True)
    user_id = Column(String(36), nullable=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    pages_visited = Column(Integer, default=1, nullable=False)
    is_bounce = Column(Boolean, default=False, nullable=False)
    entry_page = Column(String(200), nullable=True)
    exit_page = Column(String(200), nullable=True)
    device_type = Column(String(40), nullable=True)
    user_agent = Column(String(300), nullable=True)
    referrer = Column(String(500), nullable=True)
