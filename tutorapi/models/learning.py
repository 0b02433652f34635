"""
Request models for the learning orchestrator, analytics and migration panels.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class LearningRequest(BaseModel):
    """
    Body of /unified-learning.

    action is one of: get_profile, start_session, update_session,
    complete_session, orchestrate. context carries the camelCase learning
    signals posted by the frontend (sessionId, sessionType, isCorrect ...).
    """
    action: str = Field(..., examples=["orchestrate"])
    context: Dict[str, Any] = Field(default_factory=dict)


class AnalyticsRequest(BaseModel):
    """Body of /analytics."""
    model_config = ConfigDict(populate_by_name=True)

    method: str = Field(..., examples=["getDashboardMetrics"])
    period: str = Field(default="7d", description="1d, 7d, 30d or 90d")
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")


class MigrationRequest(BaseModel):
    """Body of /system-migration."""
    action: str = Field(..., examples=["status"])


class PageViewRequest(BaseModel):
    """
    Body of /page-tracker, posted by the frontend on every route change.

    sessionId identifies the browsing session, not a learning session.
    """
    model_config = ConfigDict(populate_by_name=True)

    route: str = Field(..., min_length=1, max_length=200, pattern=r"^/", examples=["/chat"])
    session_id: Optional[str] = Field(default=None, alias="sessionId", max_length=64)
    referrer: Optional[str] = Field(default=None, max_length=500)
    user_agent: Optional[str] = Field(default=None, alias="userAgent", max_length=300)
    device: Optional[str] = Field(default=None, max_length=40, examples=["mobile"])
    platform: Optional[str] = Field(default=None, max_length=40)
    load_time: Optional[int] = Field(default=None, alias="loadTime", ge=0, description="Milliseconds")
    screen_resolution: Optional[str] = Field(default=None, alias="screenResolution", max_length=20)
    language: Optional[str] = Field(default=None, max_length=10)
    timezone: Optional[str] = Field(default=None, max_length=60)
    timestamp: Optional[int] = Field(default=None, description="Client time, epoch milliseconds")
