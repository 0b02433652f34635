"""
Subscription Service - plan resolution and token-limit bookkeeping.

Every metered LLM call goes through this service:
1. ensure_tokens_available() before calling the model
2. record_token_usage() after the model answered

check_subscription() re-derives the plan from the stored price, rolls
the monthly billing cycle and returns the usage summary the frontend
shows in its token meter.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tutorapi.core.exceptions import DatabaseUnavailableError, TokenLimitExceeded
from tutorapi.core.i18n import translate
from tutorapi.core.logging_config import LoggerMixin, log_step
from tutorapi.core.retry import ErrorHandler
from tutorapi.database.models import AppEventLog, Reward, TokenUsageLog, UserSubscription
from tutorapi.rules.tokens import (
    PLAN_MONTHLY_LIMITS,
    PlanType,
    billing_cycle_elapsed,
    is_subscription_expired,
    metered_usage,
    plan_for_price,
    remaining_tokens,
    should_show_upgrade_prompt,
    token_limits,
    token_status,
    usage_percentage,
)

TAG = "CHECK-SUBSCRIPTION"
TRIAL_DAYS = 7
TRIAL_WARNING_DAYS = 3
RECENT_USAGE_ROWS = 20


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class SubscriptionService(LoggerMixin):
    """
    Plan and token counters of users.

    Example:
        >>> service = SubscriptionService(session)
        >>> summary = service.check_subscription(user_id)
        >>> summary["token_status"]
        'good'
    """

    def __init__(self, session: Session, error_handler: Optional[ErrorHandler] = None):
        self.session = session
        self.error_handler = error_handler or ErrorHandler()

    def _fetch_or_create(self, user_id: str, now: datetime) -> UserSubscription:
        subscription = self.session.query(UserSubscription).filter_by(user_id=user_id).first()
        if subscription is None:
            subscription = UserSubscription(
                user_id=user_id,
                subscription_type=PlanType.FREE.value,
                status="active",
                price_amount=0,
                monthly_token_limit=PLAN_MONTHLY_LIMITS[PlanType.FREE],
                tokens_used_total=0,
                monthly_tokens_used=0,
                billing_cycle_start=now,
                trial_end_date=now + timedelta(days=TRIAL_DAYS),
            )
            self.session.add(subscription)
            self.session.flush()
            log_step(self.logger, TAG, "Created subscription row",
                     user_id=user_id, trial_end_date=_iso(subscription.trial_end_date))
        return subscription

    def _unavailable(self) -> UserSubscription:
        raise DatabaseUnavailableError("Subscription could not be loaded", context="subscription")

    def get_or_create(self, user_id: str, now: Optional[datetime] = None) -> UserSubscription:
        """
        Load the caller's subscription row; new users start a free trial.

        Attempts run in a savepoint and are retried; token metering never
        proceeds without the row, so the last failure raises
        DatabaseUnavailableError.
        """
        now = now or datetime.utcnow()
        return self.error_handler.handle_with_retry(
            lambda: self._fetch_or_create(user_id, now),
            self._unavailable,
            "subscription_load",
            savepoint=self.session,
        )

    def bonus_tokens(self, user_id: str) -> int:
        """Sum of released `tokens` rewards."""
        total = (
            self.session.query(func.coalesce(func.sum(Reward.amount), 0))
            .filter(Reward.user_id == user_id, Reward.kind == "tokens", Reward.status == "released")
            .scalar()
        )
        return int(total or 0)

    def _refresh(self, subscription: UserSubscription, now: datetime) -> None:
        """Re-derive plan and roll the billing cycle in place."""
        plan, _ = plan_for_price(subscription.price_amount)

        if plan == PlanType.FREE and subscription.subscription_type == PlanType.LIMITED_FREE.value:
            plan = PlanType.LIMITED_FREE

        status = "active"
        if is_subscription_expired(plan.value, subscription.subscription_end_date, now):
            plan = PlanType.EXPIRED
            status = "expired"

        if subscription.subscription_type != plan.value:
            log_step(self.logger, TAG, "Plan changed",
                     user_id=subscription.user_id, old=subscription.subscription_type, new=plan.value)

        subscription.subscription_type = plan.value
        subscription.status = status
        subscription.monthly_token_limit = PLAN_MONTHLY_LIMITS[plan]

        if billing_cycle_elapsed(subscription.billing_cycle_start, now):
            log_step(self.logger, TAG, "Billing cycle reset", user_id=subscription.user_id)
            subscription.monthly_tokens_used = 0
            subscription.billing_cycle_start = now

    def _summary(self, subscription: UserSubscription, now: datetime, language: str) -> Dict[str, Any]:
        plan = subscription.subscription_type
        trial_end = subscription.trial_end_date
        in_trial = trial_end is not None and trial_end >= now
        bonus = self.bonus_tokens(subscription.user_id)

        soft, hard = token_limits(plan, subscription.monthly_token_limit, in_trial, bonus)
        used = metered_usage(plan, subscription.monthly_tokens_used, subscription.tokens_used_total)
        remaining = remaining_tokens(plan, hard, subscription.monthly_tokens_used, subscription.tokens_used_total)
        percentage = usage_percentage(used, hard)
        status = token_status(percentage)

        return {
            "subscription_type": plan,
            "status": subscription.status,
            "monthly_token_limit": subscription.monthly_token_limit,
            "token_limit_soft": soft,
            "token_limit_hard": hard,
            "tokens_used_total": subscription.tokens_used_total,
            "monthly_tokens_used": subscription.monthly_tokens_used,
            "bonus_tokens": bonus,
            "remaining_tokens": remaining,
            "usage_percentage": percentage,
            "token_status": status.value,
            "token_message": translate(f"tokens_{status.value}", language, remaining=remaining),
            "show_upgrade_prompt": should_show_upgrade_prompt(percentage, plan),
            "subscription_end": _iso(subscription.subscription_end_date),
            "trial_end_date": _iso(trial_end),
            "is_trial_expired": plan == PlanType.LIMITED_FREE.value or (trial_end is not None and trial_end < now),
            "is_active": subscription.status == "active",
        }

    def check_subscription(self, user_id: str, language: str = "pl", now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Resolve the caller's plan and token limits.

        Args:
            user_id: Authenticated user
            language: Language of the token status message
            now: Reference time (tests)

        Returns:
            Usage summary dict
        """
        now = now or datetime.utcnow()
        log_step(self.logger, TAG, "Function started", user_id=user_id)

        subscription = self.get_or_create(user_id, now)
        self._refresh(subscription, now)
        self.session.flush()

        summary = self._summary(subscription, now, language)
        log_step(self.logger, TAG, "Determined subscription details",
                 subscription_type=summary["subscription_type"],
                 remaining=summary["remaining_tokens"],
                 usage=summary["usage_percentage"])
        return summary

    def ensure_tokens_available(self, user_id: str, language: str = "pl") -> Dict[str, Any]:
        """
        Raise TokenLimitExceeded when the user has no tokens left.

        Returns:
            The usage summary, for callers that want to show it
        """
        summary = self.check_subscription(user_id, language)
        if summary["remaining_tokens"] <= 0:
            self.logger.warning(f"Token limit reached for user {user_id[:8]}...")
            raise TokenLimitExceeded(remaining=0, limit=summary["token_limit_hard"])
        return summary

    def record_token_usage(self, user_id: str, tokens: int, source: str) -> UserSubscription:
        """Add `tokens` to the lifetime and monthly counters and log the call."""
        subscription = self.get_or_create(user_id)
        tokens = max(int(tokens or 0), 0)

        subscription.tokens_used_total = (subscription.tokens_used_total or 0) + tokens
        subscription.monthly_tokens_used = (subscription.monthly_tokens_used or 0) + tokens
        self.session.add(TokenUsageLog(user_id=user_id, tokens=tokens, source=source))
        self.session.flush()

        self.logger.debug(f"Recorded {tokens} tokens for {user_id[:8]}... ({source})")
        return subscription

    def usage_overview(self, user_id: str, language: str = "pl") -> Dict[str, Any]:
        """Summary plus the most recent usage rows."""
        summary = self.check_subscription(user_id, language)
        rows = (
            self.session.query(TokenUsageLog)
            .filter_by(user_id=user_id)
            .order_by(TokenUsageLog.created_at.desc())
            .limit(RECENT_USAGE_ROWS)
            .all()
        )
        summary["recent_usage"] = [
            {"tokens": row.tokens, "source": row.source, "created_at": _iso(row.created_at)}
            for row in rows
        ]
        return summary

    def process_trial_expiry(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Downgrade expired free trials to limited_free and warn users whose
        trial ends within three days.

        Returns:
            {processed, warned, errors}
        """
        now = now or datetime.utcnow()
        tag = "TRIAL-EXPIRY-CHECK"
        log_step(self.logger, tag, "Starting trial expiry check")

        expired = (
            self.session.query(UserSubscription)
            .filter(
                UserSubscription.subscription_type == PlanType.FREE.value,
                UserSubscription.trial_end_date.isnot(None),
                UserSubscription.trial_end_date < now,
            )
            .all()
        )

        processed = 0
        errors = []
        for subscription in expired:
            try:
                trial_end = subscription.trial_end_date
                subscription.subscription_type = PlanType.LIMITED_FREE.value
                subscription.monthly_token_limit = PLAN_MONTHLY_LIMITS[PlanType.LIMITED_FREE]
                subscription.monthly_tokens_used = 0
                subscription.billing_cycle_start = now
                subscription.trial_end_date = None
                self.session.add(AppEventLog(
                    user_id=subscription.user_id,
                    event_type="trial_expired",
                    payload={
                        "from_plan": PlanType.FREE.value,
                        "to_plan": PlanType.LIMITED_FREE.value,
                        "trial_end_date": _iso(trial_end),
                    },
                ))
                self.session.flush()
                processed += 1
            except SQLAlchemyError as e:
                self.logger.error(f"Failed to process trial expiry for {subscription.user_id}: {e}")
                errors.append({"user_id": subscription.user_id, "error": str(e)})
                # The rollback discards the rows processed so far
                self.session.rollback()
                processed = 0
                break

        expiring = (
            self.session.query(UserSubscription)
            .filter(
                UserSubscription.subscription_type == PlanType.FREE.value,
                UserSubscription.trial_end_date.isnot(None),
                UserSubscription.trial_end_date >= now,
                UserSubscription.trial_end_date <= now + timedelta(days=TRIAL_WARNING_DAYS),
            )
            .all()
        )
        for subscription in expiring:
            seconds_left = (subscription.trial_end_date - now).total_seconds()
            days_left = max(1, -(-int(seconds_left) // 86400))
            self.session.add(AppEventLog(
                user_id=subscription.user_id,
                event_type="trial_expiry_warning",
                payload={"days_left": days_left, "trial_end_date": _iso(subscription.trial_end_date)},
            ))

        self.session.flush()
        log_step(self.logger, tag, "Trial expiry check completed",
                 processed=processed, warned=len(expiring), errors=len(errors))
        return {"processed": processed, "warned": len(expiring), "errors": errors}
