"""
Learning Routes - the unified learning orchestrator.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tutorapi.core.security import CurrentUser, get_current_user, get_language
from tutorapi.database.connection import get_db_session
from tutorapi.models.learning import LearningRequest
from tutorapi.services.learning_service import LearningService

router = APIRouter(tags=["Learning"])


@router.post("/unified-learning", summary="Learner profile, sessions and adaptation decisions")
def unified_learning(
    body: LearningRequest,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
    language: str = Depends(get_language),
) -> dict:
    """
    `action` is one of get_profile, start_session, update_session,
    complete_session, orchestrate. The caller is always the learner; a
    `userId` in the context is ignored.
    """
    return LearningService(session).handle(user.user_id, body.action, body.context, language)
