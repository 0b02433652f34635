"""
Referral Service - referral codes, the referral lifecycle and referrer stats.

Lifecycle of a referral (see rules.referral_stages):
1. register          : invitee signs up with a code -> stage 'invited',
                       invitee receives 7 days + 4000 tokens
2. check_activation  : invitee verified the phone and learned 20+ minutes
                       within 72 hours -> stage 'activated', referrer gets a
                       convertible reward released according to the risk score
3. complete_conversion : invitee bought a plan -> stage 'converted',
                       referrer gets +30 days and the stats are recomputed

Admins can review risky referrals, block them and link referrals by hand.
"""
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tutorapi.core.exceptions import ConflictError, NotFoundError, TutorException, ValidationError
from tutorapi.core.logging_config import LoggerMixin, log_step
from tutorapi.core.validators import REFERRAL_CODE_ALPHABET, normalize_referral_code
from tutorapi.database.models import (
    AdminActionLog,
    Profile,
    Referral,
    ReferralCode,
    ReferralEvent,
    Reward,
    RewardClaim,
    StudySession,
    UserReferralStats,
)
from tutorapi.rules.referral_stages import (
    CONVERSIONS_PER_FREE_MONTH,
    ReferralStage,
    ensure_transition,
    referral_points,
    tier_bonus_days,
    tier_for,
    tiers_unlocked,
)
from tutorapi.rules.risk import (
    DELAYED_RELEASE_HOURS,
    DELAYED_RELEASE_THRESHOLD,
    RewardDecision,
    RiskSignals,
    assess_risk,
)

TAG = "PROCESS-REFERRAL"

CODE_LENGTH = 8
MAX_CODE_ATTEMPTS = 10

ACTIVATION_WINDOW_HOURS = 72
ACTIVATION_MIN_MINUTES = 20
SESSION_MINUTES_CAP = 60
OPEN_SESSION_MINUTES = 5

INVITEE_BONUS_DAYS = 7
INVITEE_BONUS_TOKENS = 4000
CONVERTIBLE_DAYS = 3
CONVERTIBLE_TOKENS = 4000
CONVERSION_BONUS_DAYS = 30


def generate_referral_code(length: int = CODE_LENGTH) -> str:
    """Random code from the unambiguous alphabet."""
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(length))


class ReferralService(LoggerMixin):
    """
    Referral workflows on top of one database session.

    Args:
        session: Request-scoped SQLAlchemy session
        code_generator: Callable returning a candidate referral code
    """

    def __init__(self, session: Session, code_generator: Callable[[], str] = generate_referral_code):
        self.session = session
        self._generate_code = code_generator

    # ============================================================
    # Codes
    # ============================================================

    def create_referral_code(self, user_id: str) -> Dict[str, Any]:
        """Return the caller's active code, creating one when missing."""
        tag = "CREATE-REFERRAL-CODE"
        log_step(self.logger, tag, "Function started", user_id=user_id)

        existing = self.session.query(ReferralCode).filter_by(user_id=user_id, is_active=True).first()
        if existing:
            log_step(self.logger, tag, "Returning existing code", code=existing.code)
            return {"code": existing.code, "isNew": False}

        code = None
        for _ in range(MAX_CODE_ATTEMPTS):
            candidate = self._generate_code()
            taken = self.session.query(ReferralCode.id).filter_by(code=candidate).first()
            if not taken:
                code = candidate
                break

        if code is None:
            raise TutorException("Could not generate unique referral code")

        self.session.add(ReferralCode(user_id=user_id, code=code, is_active=True))

        profile = self.session.get(Profile, user_id)
        if profile is not None:
            profile.referral_code = code

        if self.session.get(UserReferralStats, user_id) is None:
            self.session.add(UserReferralStats(user_id=user_id))

        self.session.flush()
        log_step(self.logger, tag, "Created new referral code", code=code)
        return {"code": code, "isNew": True}

    def find_referrer(self, referral_code: str) -> Optional[str]:
        """User id owning `referral_code`, or None."""
        row = self.session.query(ReferralCode).filter_by(code=referral_code, is_active=True).first()
        if row:
            return row.user_id
        profile = self.session.query(Profile).filter_by(referral_code=referral_code).first()
        return profile.user_id if profile else None

    # ============================================================
    # Lifecycle
    # ============================================================

    def process(
        self,
        user_id: str,
        referral_code: Optional[str],
        action: str,
        client_ip: Optional[str] = None,
        ip_raw: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Dispatch a /process-referral action.

        Raises:
            ValidationError: Missing code, self-referral or unknown action
            NotFoundError: Unknown code or no referral in the expected stage
        """
        code = normalize_referral_code(referral_code)
        if not code:
            raise ValidationError("Referral code is required", field="referralCode")

        referrer_id = self.find_referrer(code)
        if not referrer_id:
            raise NotFoundError("Invalid referral code")
        if referrer_id == user_id:
            raise ValidationError("Cannot refer yourself", field="referralCode")

        log_step(self.logger, TAG, "Processing action", action=action, user_id=user_id)

        if action == "register":
            return self.register(
                user_id, referrer_id, code,
                notes={
                    "registered_at": datetime.utcnow().isoformat(),
                    "user_agent": user_agent or "unknown",
                    "ip": client_ip,
                    "ip_raw": ip_raw or "unknown",
                },
                ip=client_ip,
            )
        if action == "check_activation":
            return self.check_activation(user_id, code)
        if action == "complete_conversion":
            return self.complete_conversion(user_id, code)

        raise ValidationError("Invalid action", field="action")

    def _grant(self, user_id: str, kind: str, amount: int, status: str, source: str,
               meta: Optional[dict] = None, now: Optional[datetime] = None) -> Reward:
        now = now or datetime.utcnow()
        reward = Reward(
            user_id=user_id,
            kind=kind,
            amount=amount,
            status=status,
            source=source,
            meta=meta or {},
            released_at=now if status == "released" else None,
        )
        self.session.add(reward)
        return reward

    def _event(self, referral_id: Optional[str], event_type: str, **payload) -> None:
        payload.setdefault("timestamp", datetime.utcnow().isoformat())
        self.session.add(ReferralEvent(referral_id=referral_id, event_type=event_type, payload=payload))

    def register(
        self,
        user_id: str,
        referrer_id: str,
        code: str,
        notes: Dict[str, Any],
        ip: Optional[str] = None,
        bonus_meta: Optional[dict] = None,
    ) -> Dict[str, Any]:
        """Create the 'invited' referral and grant the invitee bonus."""
        existing = self.session.query(Referral).filter_by(referred_user_id=user_id).first()
        if existing:
            return {"success": True, "message": "Referral already registered", "referral_id": existing.id}

        referral = Referral(
            referrer_id=referrer_id,
            referred_user_id=user_id,
            referral_code=code,
            stage=ReferralStage.INVITED.value,
            ip=ip,
            risk_score=0,
            notes=notes,
        )
        self.session.add(referral)
        try:
            self.session.flush()
        except IntegrityError:
            # Concurrent register for the same invitee lost the race
            raise ConflictError("Referral already registered")

        self._event(referral.id, "referral_signed_up",
                    referrer_id=referrer_id, referred_user_id=user_id, ip=ip, device_hash=None)

        meta = bonus_meta or {"reason": "invited_user_bonus"}
        self._grant(user_id, "days", INVITEE_BONUS_DAYS, "released", "activation", dict(meta))
        self._grant(user_id, "tokens", INVITEE_BONUS_TOKENS, "released", "activation", dict(meta))
        self.session.flush()

        log_step(self.logger, TAG, "Created referral", referral_id=referral.id, referrer_id=referrer_id)
        return {"success": True, "message": "Referral registered successfully", "referral_id": referral.id}

    def learning_minutes(self, user_id: str, now: Optional[datetime] = None) -> int:
        """
        Learning time in the activation window.

        Completed sessions count their duration capped at 60 minutes,
        sessions still open count 5 minutes.
        """
        now = now or datetime.utcnow()
        since = now - timedelta(hours=ACTIVATION_WINDOW_HOURS)
        sessions = (
            self.session.query(StudySession)
            .filter(StudySession.user_id == user_id, StudySession.started_at >= since)
            .all()
        )

        minutes = 0
        for study in sessions:
            if study.completed_at:
                duration = int((study.completed_at - study.started_at).total_seconds() // 60)
                minutes += max(0, min(duration, SESSION_MINUTES_CAP))
            else:
                minutes += OPEN_SESSION_MINUTES
        return minutes

    def gather_risk_signals(self, referral: Referral, learning_minutes: int) -> RiskSignals:
        profile = self.session.get(Profile, referral.referred_user_id)

        duplicate_device = False
        if profile is not None and profile.device_hash:
            duplicate_device = (
                self.session.query(Profile.user_id)
                .filter(Profile.device_hash == profile.device_hash, Profile.user_id != profile.user_id)
                .first()
                is not None
            )

        shared_ip = 0
        if referral.ip:
            shared_ip = (
                self.session.query(func.count(Referral.id))
                .filter(
                    Referral.referrer_id == referral.referrer_id,
                    Referral.ip == referral.ip,
                    Referral.id != referral.id,
                )
                .scalar()
            ) or 0

        return RiskSignals(
            phone_verified=bool(profile and profile.phone_verified_at),
            phone_is_voip=bool(profile and profile.phone_is_voip),
            ip_is_vpn=bool(profile and profile.ip_is_vpn),
            device_is_duplicate=duplicate_device,
            onboarding_completed=learning_minutes >= ACTIVATION_MIN_MINUTES,
            learning_minutes=learning_minutes,
            shared_ip_referrals=shared_ip,
        )

    def check_activation(self, user_id: str, code: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Activate an invited referral once the invitee met the conditions."""
        now = now or datetime.utcnow()
        referral = (
            self.session.query(Referral)
            .filter_by(referred_user_id=user_id, referral_code=code, stage=ReferralStage.INVITED.value)
            .first()
        )
        if referral is None:
            raise NotFoundError("Referral not found or already processed")

        minutes = self.learning_minutes(user_id, now)
        signals = self.gather_risk_signals(referral, minutes)

        if not signals.phone_verified or not signals.onboarding_completed:
            return {
                "success": False,
                "message": "Activation conditions not met",
                "conditions": {
                    "phone_verified": signals.phone_verified,
                    "onboarding_completed": signals.onboarding_completed,
                    "learning_minutes": minutes,
                },
            }

        assessment = assess_risk(signals)
        ensure_transition(referral.stage, ReferralStage.ACTIVATED.value)

        referral.stage = ReferralStage.ACTIVATED.value
        referral.risk_score = assessment.score
        referral.activated_at = now
        referral.notes = {
            **(referral.notes or {}),
            "activated_at": now.isoformat(),
            "phone_verified": signals.phone_verified,
            "learning_minutes": minutes,
            "risk_score": assessment.score,
            "risk_factors": assessment.to_dict()["factors"],
        }

        self._event(referral.id, "referral_activated",
                    referrer_id=referral.referrer_id, referred_user_id=user_id,
                    risk_score=assessment.score, timestamp=now.isoformat())

        decision = assessment.decision
        reward_status = "released" if decision == RewardDecision.RELEASE_NOW else "pending"
        meta = {
            "convertible_to": ["days", "tokens"],
            "days_amount": CONVERTIBLE_DAYS,
            "tokens_amount": CONVERTIBLE_TOKENS,
            "referral_id": referral.id,
            "release_policy": decision.value,
        }
        if decision == RewardDecision.RELEASE_DELAYED:
            meta["release_after"] = (now + timedelta(hours=DELAYED_RELEASE_HOURS)).isoformat()

        self._grant(referral.referrer_id, "convertible", CONVERTIBLE_DAYS, reward_status, "activation", meta, now)
        self.session.flush()
        self.recompute_stats(referral.referrer_id)

        log_step(self.logger, TAG, "Referral activated",
                 referral_id=referral.id, risk_score=assessment.score, reward_status=reward_status)
        return {
            "success": True,
            "message": "Referral activated successfully",
            "risk_score": assessment.score,
            "reward_status": reward_status,
        }

    def complete_conversion(self, user_id: str, code: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.utcnow()
        referral = (
            self.session.query(Referral)
            .filter_by(referred_user_id=user_id, referral_code=code, stage=ReferralStage.ACTIVATED.value)
            .first()
        )
        if referral is None:
            raise NotFoundError("Referral not found or not activated")

        ensure_transition(referral.stage, ReferralStage.CONVERTED.value)
        referral.stage = ReferralStage.CONVERTED.value
        referral.converted_at = now
        referral.notes = {**(referral.notes or {}), "converted_at": now.isoformat()}

        self._event(referral.id, "referral_converted",
                    referrer_id=referral.referrer_id, referred_user_id=user_id, timestamp=now.isoformat())
        self._grant(referral.referrer_id, "days", CONVERSION_BONUS_DAYS, "released", "conversion",
                    {"referral_id": referral.id}, now)
        self.session.flush()
        self.recompute_stats(referral.referrer_id)

        log_step(self.logger, TAG, "Referral converted", referral_id=referral.id)
        return {"success": True, "message": "Referral conversion completed successfully"}

    # ============================================================
    # Stats
    # ============================================================

    def recompute_stats(self, user_id: str) -> UserReferralStats:
        """
        Rebuild the referrer's counters from the referrals and claims tables.

        Moving up the tier ladder grants a one-off `ladder` days reward per
        tier passed.
        """
        counts = dict(
            self.session.query(Referral.stage, func.count(Referral.id))
            .filter(Referral.referrer_id == user_id)
            .group_by(Referral.stage)
            .all()
        )
        converted = counts.get(ReferralStage.CONVERTED.value, 0)
        activated = counts.get(ReferralStage.ACTIVATED.value, 0) + converted

        spent = (
            self.session.query(func.coalesce(func.sum(RewardClaim.points_spent), 0))
            .filter(RewardClaim.user_id == user_id, RewardClaim.status != "rejected")
            .scalar()
        ) or 0

        stats = self.session.get(UserReferralStats, user_id)
        if stats is None:
            stats = UserReferralStats(user_id=user_id, current_tier="beginner")
            self.session.add(stats)

        previous_tier = stats.current_tier or "beginner"
        new_tier = tier_for(converted)
        total = referral_points(activated, converted)

        stats.activated_referrals = activated
        stats.successful_referrals = converted
        stats.total_points = total
        stats.available_points = max(0, total - int(spent))
        stats.free_months_earned = converted // CONVERSIONS_PER_FREE_MONTH
        stats.current_tier = new_tier

        for tier in tiers_unlocked(previous_tier, new_tier):
            bonus = tier_bonus_days(tier)
            if bonus:
                self._grant(user_id, "days", bonus, "released", "ladder", {"tier": tier})
                log_step(self.logger, "REFERRAL-STATS", "Tier reached", user_id=user_id, tier=tier)

        self.session.flush()
        return stats

    def overview(self, user_id: str) -> Dict[str, Any]:
        """Stats, invited referrals and rewards of the caller."""
        stats = self.session.get(UserReferralStats, user_id)
        referrals = (
            self.session.query(Referral)
            .filter_by(referrer_id=user_id)
            .order_by(Referral.created_at.desc())
            .all()
        )
        rewards = (
            self.session.query(Reward)
            .filter_by(user_id=user_id)
            .order_by(Reward.created_at.desc())
            .all()
        )
        code = self.session.query(ReferralCode).filter_by(user_id=user_id, is_active=True).first()

        return {
            "code": code.code if code else None,
            "stats": stats.to_dict() if stats else None,
            "referrals": [
                {
                    "id": r.id,
                    "stage": r.stage,
                    "created_at": r.created_at.isoformat() if r.created_at else None,
                    "activated_at": r.activated_at.isoformat() if r.activated_at else None,
                    "converted_at": r.converted_at.isoformat() if r.converted_at else None,
                }
                for r in referrals
            ],
            "rewards": [r.to_dict() for r in rewards],
        }

    # ============================================================
    # Admin
    # ============================================================

    def list_for_review(self, stage: Optional[str] = None, max_risk: Optional[int] = None,
                        limit: int = 100) -> List[Dict[str, Any]]:
        """Referrals with their risk factors, riskiest (lowest score) first."""
        query = self.session.query(Referral)
        if stage:
            query = query.filter(Referral.stage == stage)
        if max_risk is not None:
            query = query.filter(Referral.risk_score <= max_risk)

        rows = query.order_by(Referral.risk_score.asc(), Referral.created_at.desc()).limit(limit).all()
        result = []
        for referral in rows:
            item = referral.to_dict()
            item["risk_factors"] = (referral.notes or {}).get("risk_factors", [])
            result.append(item)
        return result

    def _log_admin_action(self, admin_id: str, target_user_id: Optional[str], action_type: str, **details) -> None:
        self.session.add(AdminActionLog(
            admin_id=admin_id,
            target_user_id=target_user_id,
            action_type=action_type,
            details=details,
        ))

    def block_referral(self, referral_id: str, admin_id: str, reason: str) -> Dict[str, Any]:
        """Block a referral and revoke the pending rewards tied to it."""
        referral = self.session.get(Referral, referral_id)
        if referral is None:
            raise NotFoundError("Referral not found")

        ensure_transition(referral.stage, ReferralStage.BLOCKED.value)
        now = datetime.utcnow()
        referral.stage = ReferralStage.BLOCKED.value
        referral.blocked_at = now
        referral.notes = {**(referral.notes or {}), "blocked_reason": reason, "blocked_by": admin_id}

        revoked = 0
        pending = self.session.query(Reward).filter_by(user_id=referral.referrer_id, status="pending").all()
        for reward in pending:
            if (reward.meta or {}).get("referral_id") == referral.id:
                reward.status = "revoked"
                revoked += 1

        self._event(referral.id, "referral_blocked", reason=reason, admin_id=admin_id)
        self._log_admin_action(admin_id, referral.referred_user_id, "block_referral",
                               referral_id=referral.id, reason=reason, rewards_revoked=revoked)
        self.session.flush()
        self.recompute_stats(referral.referrer_id)

        self.logger.warning(f"Referral {referral.id} blocked by {admin_id[:8]}...: {reason}")
        return {"success": True, "referral_id": referral.id, "rewards_revoked": revoked}

    def link_referral(self, admin_id: str, admin_email: Optional[str],
                      invitee_email: str, referral_code: str) -> Dict[str, Any]:
        """Manually attach an invitee to a referrer's code."""
        code = normalize_referral_code(referral_code)
        if not invitee_email or not code:
            raise ValidationError("Missing inviteeEmail or referralCode")

        invitee = self.session.query(Profile).filter_by(email=invitee_email).first()
        if invitee is None:
            raise NotFoundError(f"Invitee user not found: {invitee_email}")

        referrer_id = self.find_referrer(code)
        if referrer_id is None:
            raise NotFoundError(f"Referral code not found: {code}")
        if referrer_id == invitee.user_id:
            raise ValidationError("Cannot link user to their own referral code")

        existing = self.session.query(Referral).filter_by(referred_user_id=invitee.user_id).first()
        if existing:
            return {"success": True, "message": "Referral already exists", "referral": existing.to_dict()}

        now = datetime.utcnow().isoformat()
        result = self.register(
            invitee.user_id, referrer_id, code,
            notes={"manually_linked": True, "linked_by_admin": admin_email, "linked_at": now},
            bonus_meta={"reason": "admin_link", "linked_by": admin_email},
        )
        referral = self.session.get(Referral, result["referral_id"])

        self._log_admin_action(admin_id, invitee.user_id, "link_referral",
                               invitee_email=invitee_email, referral_code=code, referral_id=referral.id)
        self.session.flush()
        return {
            "success": True,
            "message": "Referral successfully linked and rewards granted",
            "referral": referral.to_dict(),
            "rewards_granted": True,
        }

    def release_pending_rewards(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Release held activation rewards whose referral scored at least 70,
        is not blocked and was activated 48+ hours ago.
        """
        now = now or datetime.utcnow()
        cutoff = now - timedelta(hours=DELAYED_RELEASE_HOURS)
        pending = (
            self.session.query(Reward)
            .filter_by(kind="convertible", status="pending", source="activation")
            .all()
        )

        released = 0
        for reward in pending:
            referral_id = (reward.meta or {}).get("referral_id")
            referral = self.session.get(Referral, referral_id) if referral_id else None
            if referral is None or referral.stage == ReferralStage.BLOCKED.value:
                continue
            if referral.risk_score < DELAYED_RELEASE_THRESHOLD:
                continue
            if referral.activated_at is None or referral.activated_at > cutoff:
                continue
            reward.status = "released"
            reward.released_at = now
            released += 1

        self.session.flush()
        log_step(self.logger, "RELEASE-REWARDS", "Pending rewards processed", released=released)
        return {"released": released}
