"""
Subscription Routes - plan status and token usage.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tutorapi.core.security import CurrentUser, get_current_user, get_language, require_admin
from tutorapi.database.connection import get_db_session
from tutorapi.services.subscription_service import SubscriptionService

router = APIRouter(tags=["Subscription"])


@router.post("/check-subscription", summary="Resolve plan and token limits")
def check_subscription(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
    language: str = Depends(get_language),
) -> dict:
    return SubscriptionService(session).check_subscription(user.user_id, language)


@router.get("/token-usage", summary="Token summary with recent usage")
def token_usage(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
    language: str = Depends(get_language),
) -> dict:
    return SubscriptionService(session).usage_overview(user.user_id, language)


@router.post("/trial-expiry-check", summary="Downgrade expired trials (admin/cron)")
def trial_expiry_check(
    admin: CurrentUser = Depends(require_admin),
    session: Session = Depends(get_db_session),
) -> dict:
    return SubscriptionService(session).process_trial_expiry()
