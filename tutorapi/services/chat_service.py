"""
Tutor Chat Service - Business logic for the AI math tutor.

This service orchestrates one chat turn:
1. Validates the message and checks the token allowance
2. Builds the learner context and the conversation history
3. Calls the LLM with the tutor prompt
4. Extracts learning insights from the answer
5. Stores the turn in chat_logs and meters the tokens used
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from tutorapi.core.exceptions import ValidationError
from tutorapi.core.logging_config import LoggerMixin
from tutorapi.core.retry import ErrorHandler
from tutorapi.core.validators import validate_message
from tutorapi.database.models import ChatLog, Profile, UserLessonProgress
from tutorapi.llm.client import LLMClient, get_llm_client
from tutorapi.llm.prompts import build_learner_context, get_tutor_system_prompt
from tutorapi.models.chat import ChatRequest
from tutorapi.rules.insights import extract_insights
from tutorapi.services.subscription_service import SubscriptionService

HISTORY_LIMIT = 12
RECENT_PROGRESS_LIMIT = 5


class TutorChatService(LoggerMixin):
    """
    Service for AI tutor chat turns.

    Example:
        >>> service = TutorChatService(session)
        >>> result = service.reply(user_id, ChatRequest(message="Co to jest delta?"))
        >>> result["tokensUsed"] > 0
        True
    """

    def __init__(
        self,
        session: Session,
        llm_client: Optional[LLMClient] = None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        """
        Args:
            session: Request-scoped database session
            llm_client: LLM client; the global client when not provided
            error_handler: Retry/fallback helper for context reads
        """
        self.session = session
        self.llm_client = llm_client or get_llm_client()
        self.error_handler = error_handler or ErrorHandler()
        self.subscriptions = SubscriptionService(session, self.error_handler)

    def learner_context(self, user_id: str, weak_areas: Optional[List[str]] = None) -> str:
        """Profile level and points, recent lesson scores and weak areas."""
        profile = self.session.get(Profile, user_id)
        progress = (
            self.session.query(UserLessonProgress)
            .filter_by(user_id=user_id)
            .order_by(UserLessonProgress.last_accessed_at.desc())
            .limit(RECENT_PROGRESS_LIMIT)
            .all()
        )

        average_score = None
        if progress:
            average_score = sum(p.score or 0 for p in progress) / len(progress)

        return build_learner_context(
            level=profile.level if profile else None,
            total_points=profile.total_points if profile else None,
            average_score=average_score,
            recent_topics=[p.topic_name for p in progress],
            weak_areas=weak_areas,
        )

    def turn_number(self, session_id: Optional[str]) -> int:
        if not session_id:
            return 1
        count = self.session.query(func.count(ChatLog.id)).filter_by(session_id=session_id).scalar()
        return (count or 0) + 1

    def history(self, session_id: Optional[str]) -> List[Dict[str, str]]:
        """Last chat log rows of the session, oldest first."""
        if not session_id:
            return []
        logs = (
            self.session.query(ChatLog)
            .filter_by(session_id=session_id)
            .order_by(ChatLog.id.desc())
            .limit(HISTORY_LIMIT)
            .all()
        )
        return [
            {"role": log.role, "content": log.message}
            for log in reversed(logs)
            if log.role in ("user", "assistant")
        ]

    def reply(self, user_id: str, request: ChatRequest, language: str = "pl") -> Dict[str, Any]:
        """
        Answer one chat message.

        Returns:
            {response, insights, tokensUsed}

        Raises:
            ValidationError: Empty or oversized message
            TokenLimitExceeded: No tokens left
            LLMError: Every LLM provider failed
        """
        is_valid, message, error = validate_message(request.message)
        if not is_valid:
            raise ValidationError(error, field="message")

        self.subscriptions.ensure_tokens_available(user_id, language)

        context = self.error_handler.handle_database_operation(
            lambda: self.learner_context(user_id, request.weak_areas),
            "",
            "ai_chat_learner_context",
            savepoint=self.session,
        )
        turn = self.turn_number(request.session_id)
        history = self.history(request.session_id)

        system_prompt = get_tutor_system_prompt(
            turn_number=turn,
            learner_context=context,
            topic=request.topic,
            level=request.level,
            persona=request.persona,
            a11y=request.a11y,
        )

        self.logger.info(
            f"Tutor turn: user={user_id[:8]}... session={request.session_id} "
            f"turn={turn} history={len(history)}"
        )

        result = self.llm_client.generate(
            user_message=message,
            system_prompt=system_prompt,
            history=history or None,
        )

        answer, insights = extract_insights(result.content, message, language)

        if request.session_id:
            self.session.add(ChatLog(session_id=request.session_id, user_id=user_id, role="user", message=message))
            self.session.add(ChatLog(session_id=request.session_id, user_id=user_id, role="assistant", message=answer))

        tokens_used = result.total_tokens
        self.subscriptions.record_token_usage(user_id, tokens_used, "ai_chat")

        self.logger.info(f"Tutor answered with {result.model}: tokens={tokens_used}")
        return {"response": answer, "insights": insights, "tokensUsed": tokens_used}
