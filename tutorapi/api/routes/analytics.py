"""
Analytics Routes - page tracking, admin dashboard metrics and aggregation jobs.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from tutorapi.core.security import CurrentUser, get_optional_user, require_admin
from tutorapi.database.connection import get_db_session
from tutorapi.models.learning import AnalyticsRequest, PageViewRequest
from tutorapi.services.analytics_service import AnalyticsService

router = APIRouter(tags=["Analytics"])


@router.post("/page-tracker", summary="Record a page view and the browsing session")
def page_tracker(
    body: PageViewRequest,
    request: Request,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    session: Session = Depends(get_db_session),
) -> dict:
    """
    Anonymous visitors are tracked too. The visitor id comes from the
    bearer token only; a userId in the body is ignored.
    """
    return AnalyticsService(session).track_page_view(
        body,
        user_id=user.user_id if user else None,
        user_agent=request.headers.get("user-agent"),
    )


@router.post("/analytics", summary="Dashboard metrics, popular pages, behavior, aggregation")
def analytics(
    body: AnalyticsRequest,
    admin: CurrentUser = Depends(require_admin),
    session: Session = Depends(get_db_session),
) -> dict:
    return AnalyticsService(session).handle(body.method, body.period, body.start_date, body.end_date)
