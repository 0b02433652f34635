"""
Request and Response models for the AI tutor chat.

Field names follow the frontend's camelCase JSON contract through
aliases; Python code uses snake_case.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """
    Request model for /ai-chat.

    Attributes:
        message: The student's message (sanitized server-side)
        topic: Current topic name
        level: Student level ('beginner', 'advanced', ...)
        session_id: Chat session; enables history and chat logs
        weak_areas: Topics the frontend flagged as weak
        persona: Explicit tutor persona
        a11y: Accessibility mode
    """
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(
        ...,
        description="The student's message",
        examples=["Jak rozwiązać x^2 + 5x - 6 = 0?"]
    )
    topic: Optional[str] = Field(default=None, description="Current topic")
    level: Optional[str] = Field(default=None, description="Student level")
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    weak_areas: Optional[List[str]] = Field(default=None, alias="weakAreas")
    persona: Optional[str] = None
    a11y: Optional[str] = None


class ChatInsights(BaseModel):
    """Learning insights attached to a tutor answer."""
    model_config = ConfigDict(populate_by_name=True)

    needs_help: bool = Field(default=False, alias="needsHelp")
    topic_mastery: str = Field(default="unknown", alias="topicMastery")
    suggested_actions: List[str] = Field(default_factory=list, alias="suggestedActions")


class ChatResponse(BaseModel):
    """Response model for /ai-chat."""
    model_config = ConfigDict(populate_by_name=True)

    response: str = Field(..., description="Tutor answer without the insights block")
    insights: ChatInsights
    tokens_used: int = Field(default=0, alias="tokensUsed")
