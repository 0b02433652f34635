"""
Token limit bookkeeping.

Plans and their monthly LLM token allowances:
- free         : 500 lifetime tokens, or the trial allowance while a trial runs
- limited_free : 500 per month (trial expired)
- paid         : 10 000 per month
- super        : 50 000 per month
- expired      : paid plan past its end date, treated like free

Released `tokens` rewards raise the hard limit on top of the plan.
"""
import calendar
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class PlanType(str, Enum):
    FREE = "free"
    LIMITED_FREE = "limited_free"
    PAID = "paid"
    SUPER = "super"
    EXPIRED = "expired"


class TokenStatus(str, Enum):
    GOOD = "good"
    MODERATE = "moderate"
    WARNING = "warning"
    CRITICAL = "critical"


SUPER_PRICE_THRESHOLD = 9999
PAID_PRICE_THRESHOLD = 2999

PLAN_MONTHLY_LIMITS = {
    PlanType.FREE: 500,
    PlanType.LIMITED_FREE: 500,
    PlanType.PAID: 10000,
    PlanType.SUPER: 50000,
    PlanType.EXPIRED: 500,
}

TRIAL_SOFT_LIMIT = 20000
TRIAL_HARD_LIMIT = 25000

# Plans metered against the monthly counter; the rest use the lifetime counter
MONTHLY_METERED_PLANS = (PlanType.PAID, PlanType.SUPER, PlanType.LIMITED_FREE)


def plan_for_price(price_amount: Optional[int]) -> Tuple[PlanType, int]:
    """
    Derive the plan tier from the monthly price in minor currency units.

    Returns:
        Tuple of (plan, monthly token limit)
    """
    amount = price_amount or 0
    if amount >= SUPER_PRICE_THRESHOLD:
        plan = PlanType.SUPER
    elif amount >= PAID_PRICE_THRESHOLD:
        plan = PlanType.PAID
    else:
        plan = PlanType.FREE
    return plan, PLAN_MONTHLY_LIMITS[plan]


def token_limits(plan: str, monthly_limit: int, in_trial: bool, bonus_tokens: int = 0) -> Tuple[int, int]:
    """
    Soft and hard limits for a plan.

    Args:
        plan: Plan name
        monthly_limit: Stored monthly allowance
        in_trial: Whether a free-plan trial is still running
        bonus_tokens: Released token rewards

    Returns:
        Tuple of (soft limit, hard limit)
    """
    if plan == PlanType.FREE.value and in_trial:
        soft, hard = TRIAL_SOFT_LIMIT, TRIAL_HARD_LIMIT
    else:
        soft = hard = monthly_limit
    return soft, hard + max(bonus_tokens, 0)


def metered_usage(plan: str, monthly_used: int, total_used: int) -> int:
    """The counter the plan is metered against."""
    if plan in {p.value for p in MONTHLY_METERED_PLANS}:
        return monthly_used or 0
    return total_used or 0


def remaining_tokens(plan: str, hard_limit: int, monthly_used: int, total_used: int) -> int:
    return max(0, hard_limit - metered_usage(plan, monthly_used, total_used))


def usage_percentage(used: int, hard_limit: int) -> int:
    if hard_limit <= 0:
        return 0
    return max(0, min(100, round(used / hard_limit * 100)))


def token_status(percentage: int) -> TokenStatus:
    if percentage >= 90:
        return TokenStatus.CRITICAL
    if percentage >= 75:
        return TokenStatus.WARNING
    if percentage >= 50:
        return TokenStatus.MODERATE
    return TokenStatus.GOOD


def should_show_upgrade_prompt(percentage: int, plan: str) -> bool:
    return percentage >= 75 and plan == PlanType.FREE.value


def add_one_month(moment: datetime) -> datetime:
    """Same day next month, clamped to the month's last day."""
    year = moment.year + (1 if moment.month == 12 else 0)
    month = 1 if moment.month == 12 else moment.month + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def billing_cycle_elapsed(cycle_start: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True once a full month has passed since the cycle started."""
    if cycle_start is None:
        return True
    now = now or datetime.utcnow()
    return now >= add_one_month(cycle_start)


def is_subscription_expired(plan: str, end_date: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if plan not in (PlanType.PAID.value, PlanType.SUPER.value) or end_date is None:
        return False
    return end_date < (now or datetime.utcnow())
