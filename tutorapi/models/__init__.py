"""
Models module - Pydantic schemas for request validation and responses.
"""
from tutorapi.models.chat import ChatRequest, ChatResponse, ChatInsights
from tutorapi.models.common import HealthResponse, ErrorResponse
from tutorapi.models.learning import AnalyticsRequest, LearningRequest, MigrationRequest
from tutorapi.models.referrals import (
    BlockReferralRequest,
    ClaimRewardRequest,
    ConsumeRewardRequest,
    DeliveryInfo,
    LinkReferralRequest,
    ProcessReferralRequest,
)

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ChatInsights",
    "HealthResponse",
    "ErrorResponse",
    "AnalyticsRequest",
    "LearningRequest",
    "MigrationRequest",
    "BlockReferralRequest",
    "ClaimRewardRequest",
    "ConsumeRewardRequest",
    "DeliveryInfo",
    "LinkReferralRequest",
    "ProcessReferralRequest",
]
