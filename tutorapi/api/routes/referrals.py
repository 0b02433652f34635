"""
Referral Routes - codes, the referral lifecycle and the referrer overview.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from tutorapi.core.security import CurrentUser, get_current_user
from tutorapi.core.validators import extract_client_ip
from tutorapi.database.connection import get_db_session
from tutorapi.models.referrals import ProcessReferralRequest
from tutorapi.services.referral_service import ReferralService

router = APIRouter(tags=["Referrals"])


@router.post("/create-referral-code", summary="Get or create the caller's referral code")
def create_referral_code(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
) -> dict:
    return ReferralService(session).create_referral_code(user.user_id)


@router.post("/process-referral", summary="Register, activate or convert a referral")
def process_referral(
    body: ProcessReferralRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
    user_agent: Optional[str] = Header(default=None),
) -> dict:
    """
    Actions:
    - register: the caller signed up with `referralCode`
    - check_activation: activate once phone and learning time conditions hold
    - complete_conversion: the caller bought a plan
    """
    client_ip, ip_raw = extract_client_ip(request.headers)
    return ReferralService(session).process(
        user.user_id,
        body.referral_code,
        body.action,
        client_ip=client_ip,
        ip_raw=ip_raw,
        user_agent=user_agent,
    )


@router.get("/referrals/me", summary="Referral stats, invitees and rewards of the caller")
def my_referrals(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
) -> dict:
    return ReferralService(session).overview(user.user_id)
