"""
Reward Routes - convert convertible rewards and claim catalog items.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tutorapi.core.security import CurrentUser, get_current_user
from tutorapi.database.connection import get_db_session
from tutorapi.models.referrals import ClaimRewardRequest, ConsumeRewardRequest
from tutorapi.services.reward_service import RewardService

router = APIRouter(tags=["Rewards"])


@router.post("/consume-convertible-reward", summary="Convert a reward into days or tokens")
def consume_convertible_reward(
    body: ConsumeRewardRequest,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
) -> dict:
    return RewardService(session).consume_convertible(user.user_id, body.reward_id, body.convert_to)


@router.post("/claim-reward", summary="Spend referral points on a catalog item")
def claim_reward(
    body: ClaimRewardRequest,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_db_session),
) -> dict:
    return RewardService(session).claim(user.user_id, body.reward_id, body.delivery_info.model_dump())
