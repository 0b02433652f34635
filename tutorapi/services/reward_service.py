"""
Reward Service - converting convertible rewards and claiming catalog items.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from tutorapi.core.exceptions import NotFoundError, ValidationError
from tutorapi.core.logging_config import LoggerMixin, log_step
from tutorapi.database.models import ReferralEvent, Reward, RewardCatalogItem, RewardClaim, UserReferralStats
from tutorapi.services.referral_service import ReferralService

CONVERSION_TARGETS = ("days", "tokens")
DEFAULT_TOKENS_AMOUNT = 1000


class RewardService(LoggerMixin):
    """Reward operations of the authenticated user."""

    def __init__(self, session: Session):
        self.session = session

    def consume_convertible(self, user_id: str, reward_id: str, convert_to: str) -> Dict[str, Any]:
        """
        Turn a released convertible reward into days or tokens.

        The original reward becomes 'consumed' and a released reward of the
        target kind is created. Released `tokens` rewards raise the user's
        hard token limit (see SubscriptionService.bonus_tokens).

        Raises:
            ValidationError: Unknown or disallowed target
            NotFoundError: Reward missing, not the caller's, or not available
        """
        if convert_to not in CONVERSION_TARGETS:
            raise ValidationError("Invalid request parameters", field="convertTo")

        reward = (
            self.session.query(Reward)
            .filter_by(id=reward_id, user_id=user_id, kind="convertible", status="released")
            .first()
        )
        if reward is None:
            raise NotFoundError("Reward not found or not available for consumption")

        meta = dict(reward.meta or {})
        if convert_to not in meta.get("convertible_to", []):
            raise ValidationError(f"Reward cannot be converted to {convert_to}", field="convertTo")

        if convert_to == "days":
            amount = meta.get("days_amount") or reward.amount
        else:
            amount = meta.get("tokens_amount") or DEFAULT_TOKENS_AMOUNT

        now = datetime.utcnow()
        reward.status = "consumed"
        reward.consumed_at = now
        reward.meta = {
            **meta,
            "converted_to": convert_to,
            "converted_amount": amount,
            "converted_at": now.isoformat(),
        }

        self.session.add(Reward(
            user_id=user_id,
            kind=convert_to,
            amount=amount,
            status="released",
            source=reward.source,
            meta={
                **meta,
                "original_reward_id": reward.id,
                "converted_from": "convertible",
                "converted_at": now.isoformat(),
            },
            released_at=now,
        ))

        self.session.add(ReferralEvent(
            referral_id=meta.get("referral_id"),
            event_type="reward_consumed",
            payload={
                "user_id": user_id,
                "reward_id": reward.id,
                "converted_to": convert_to,
                "amount": amount,
                "timestamp": now.isoformat(),
            },
        ))
        self.session.flush()

        log_step(self.logger, "CONSUME-REWARD", "Reward converted",
                 reward_id=reward.id, converted_to=convert_to, amount=amount)
        return {
            "success": True,
            "message": f"Reward converted to {amount} {convert_to}",
            "converted_to": convert_to,
            "amount": amount,
        }

    def claim(self, user_id: str, catalog_item_id: str, delivery_info: Dict[str, Optional[str]]) -> Dict[str, Any]:
        """Spend referral points on a catalog item."""
        tag = "CLAIM-REWARD"
        log_step(self.logger, tag, "Processing reward claim", user_id=user_id, reward_id=catalog_item_id)

        item = self.session.query(RewardCatalogItem).filter_by(id=catalog_item_id, is_active=True).first()
        if item is None:
            raise NotFoundError("Reward not found or inactive")

        stats = self.session.get(UserReferralStats, user_id)
        if stats is None:
            raise NotFoundError("User referral stats not found")

        if stats.available_points < item.points_required:
            raise ValidationError(
                f"Insufficient points. Required: {item.points_required}, "
                f"Available: {stats.available_points}"
            )

        claim = RewardClaim(
            user_id=user_id,
            reward_id=item.id,
            points_spent=item.points_required,
            status="pending",
            delivery_info=delivery_info,
        )
        self.session.add(claim)
        self.session.flush()

        ReferralService(self.session).recompute_stats(user_id)

        log_step(self.logger, tag, "Reward claim created successfully", claim_id=claim.id)
        return {
            "success": True,
            "claimId": claim.id,
            "message": "Reward claimed successfully! You will receive confirmation via email.",
            "pointsSpent": item.points_required,
        }
