"""
Database module - hosted Postgres access layer.

This module handles:
- Database connection management
- ORM models for every table the handlers touch
- Table initialization
"""
from tutorapi.database.connection import (
    DatabaseConnection,
    get_database,
    set_database,
    get_db_session,
)
from tutorapi.database.models import (
    Base,
    Profile,
    UserRole,
    ReferralCode,
    Referral,
    ReferralEvent,
    Reward,
    UserReferralStats,
    RewardCatalogItem,
    RewardClaim,
    AdminActionLog,
    UserSubscription,
    TokenUsageLog,
    ChatLog,
    UserLessonProgress,
    StudySession,
    Skill,
    LearnerProfile,
    UnifiedLearningSession,
    AppErrorLog,
    AppEventLog,
    PageAnalytics,
    UserSessionAnalytics,
)
from tutorapi.database.init_db import init_tables, drop_tables

__all__ = [
    # Connection
    "DatabaseConnection",
    "get_database",
    "set_database",
    "get_db_session",
    # Models
    "Base",
    "Profile",
    "UserRole",
    "ReferralCode",
    "Referral",
    "ReferralEvent",
    "Reward",
    "UserReferralStats",
    "RewardCatalogItem",
    "RewardClaim",
    "AdminActionLog",
    "UserSubscription",
    "TokenUsageLog",
    "ChatLog",
    "UserLessonProgress",
    "StudySession",
    "Skill",
    "LearnerProfile",
    "UnifiedLearningSession",
    "AppErrorLog",
    "AppEventLog",
    "PageAnalytics",
    "UserSessionAnalytics",
    # Init
    "init_tables",
    "drop_tables",
]
