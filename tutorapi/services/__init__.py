"""
Services module - Business logic and orchestration.

Services contain the core application logic:
- No HTTP concerns (those belong in api/)
- One request-scoped SQLAlchemy session per service instance
- Decisions delegated to the pure functions in rules/
"""
from tutorapi.services.analytics_service import AnalyticsService
from tutorapi.services.chat_service import TutorChatService
from tutorapi.services.learning_service import LearningService
from tutorapi.services.migration_service import MigrationService
from tutorapi.services.referral_service import ReferralService
from tutorapi.services.reward_service import RewardService
from tutorapi.services.subscription_service import SubscriptionService

__all__ = [
    "AnalyticsService",
    "TutorChatService",
    "LearningService",
    "MigrationService",
    "ReferralService",
    "RewardService",
    "SubscriptionService",
]
