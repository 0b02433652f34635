"""
Admin Routes - referral risk review, manual linking, reward release and
the unified-learning migration panel.

Every endpoint requires the `admin` role.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tutorapi.core.security import CurrentUser, require_admin
from tutorapi.database.connection import get_db_session
from tutorapi.models.learning import MigrationRequest
from tutorapi.models.referrals import BlockReferralRequest, LinkReferralRequest
from tutorapi.services.migration_service import MigrationService
from tutorapi.services.referral_service import ReferralService

router = APIRouter(tags=["Admin"])


@router.get("/admin/referrals", summary="Referrals for risk review, lowest score first")
def list_referrals(
    stage: Optional[str] = Query(default=None),
    max_risk: Optional[int] = Query(default=None, ge=0, le=100),
    admin: CurrentUser = Depends(require_admin),
    session: Session = Depends(get_db_session),
) -> dict:
    return {"referrals": ReferralService(session).list_for_review(stage=stage, max_risk=max_risk)}


@router.post("/admin/referrals/{referral_id}/block", summary="Block a referral and revoke its pending rewards")
def block_referral(
    referral_id: str,
    body: BlockReferralRequest,
    admin: CurrentUser = Depends(require_admin),
    session: Session = Depends(get_db_session),
) -> dict:
    return ReferralService(session).block_referral(referral_id, admin.user_id, body.reason)


@router.post("/admin/link-referral", summary="Link an invitee to a referral code by hand")
def link_referral(
    body: LinkReferralRequest,
    admin: CurrentUser = Depends(require_admin),
    session: Session = Depends(get_db_session),
) -> dict:
    return ReferralService(session).link_referral(admin.user_id, admin.email, body.invitee_email, body.referral_code)


@router.post("/admin/release-pending-rewards", summary="Release held activation rewards (admin/cron)")
def release_pending_rewards(
    admin: CurrentUser = Depends(require_admin),
    session: Session = Depends(get_db_session),
) -> dict:
    return ReferralService(session).release_pending_rewards()


@router.post("/system-migration", summary="Run a unified-learning migration step")
def system_migration(
    body: MigrationRequest,
    admin: CurrentUser = Depends(require_admin),
    session: Session = Depends(get_db_session),
) -> dict:
    return MigrationService(session).handle(body.action)
