"""
Chat Routes - the AI math tutor endpoint.

Rate limited per user; every answer is metered against the user's
token allowance.
"""
from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tutorapi.core.exceptions import LLMError, RateLimitExceeded
from tutorapi.core.i18n import translate
from tutorapi.core.logging_config import get_logger
from tutorapi.core.rate_limiter import get_rate_limiter
from tutorapi.core.security import CurrentUser, get_current_user, get_language
from tutorapi.database.connection import get_db_session
from tutorapi.llm.client import LLMClient, get_llm_client
from tutorapi.models.chat import ChatRequest, ChatResponse
from tutorapi.models.common import ErrorResponse
from tutorapi.services.chat_service import TutorChatService

logger = get_logger(__name__)

router = APIRouter(
    tags=["Tutor"],
    responses={
        402: {"model": ErrorResponse, "description": "Token limit reached"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        503: {"description": "LLM unavailable, localized fallback in `response`"},
    }
)


@router.post(
    "/ai-chat",
    response_model=ChatResponse,
    response_model_by_alias=True,
    summary="Ask the AI math tutor",
)
def ai_chat(
    request: ChatRequest,
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
    llm_client: LLMClient = Depends(get_llm_client),
    language: str = Depends(get_language),
):
    """
    Answer a student's message.

    Include `sessionId` to keep the conversation history; the turn is then
    stored in chat_logs.
    """
    rate_limiter = get_rate_limiter()
    is_allowed, remaining = rate_limiter.is_allowed(user.user_id)

    response.headers["X-RateLimit-Limit"] = str(rate_limiter.limit)
    response.headers["X-RateLimit-Remaining"] = str(remaining)

    if not is_allowed:
        raise RateLimitExceeded(retry_after=rate_limiter.retry_after_seconds(user.user_id))

    service = TutorChatService(session, llm_client=llm_client)
    try:
        return service.reply(user.user_id, request, language)
    except LLMError as e:
        logger.error(f"Tutor unavailable: {e}")
        return JSONResponse(
            status_code=LLMError.status_code,
            content={
                "error": LLMError.error_code,
                "message": str(e),
                "response": translate("chat_unavailable", language),
            },
        )
