"""
API Routes module - Endpoint definitions.

Each file in this module defines routes for one handler family:
- health.py       : Health check endpoints
- chat.py         : AI tutor chat
- subscription.py : Plan status and token usage
- referrals.py    : Referral codes and lifecycle
- rewards.py      : Reward conversion and catalog claims
- learning.py     : Unified learning orchestrator
- analytics.py    : Admin analytics dashboard
- admin.py        : Referral review, manual linking, migrations
"""
from tutorapi.api.routes.admin import router as admin_router
from tutorapi.api.routes.analytics import router as analytics_router
from tutorapi.api.routes.chat import router as chat_router
from tutorapi.api.routes.health import router as health_router
from tutorapi.api.routes.learning import router as learning_router
from tutorapi.api.routes.referrals import router as referrals_router
from tutorapi.api.routes.rewards import router as rewards_router
from tutorapi.api.routes.subscription import router as subscription_router

__all__ = [
    "admin_router",
    "analytics_router",
    "chat_router",
    "health_router",
    "learning_router",
    "referrals_router",
    "rewards_router",
    "subscription_router",
]
