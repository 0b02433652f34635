"""Unit tests for plan resolution and token bookkeeping."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import text

from tutorapi.core.exceptions import DatabaseUnavailableError, TokenLimitExceeded
from tutorapi.core.retry import ErrorHandler
from tutorapi.database.models import AppErrorLog, AppEventLog, Reward, TokenUsageLog, UserSubscription
from tutorapi.services.subscription_service import SubscriptionService

NOW = datetime(2025, 5, 20, 12, 0)


def _subscription(session, user_id="user-1", **fields) -> UserSubscription:
    values = {
        "subscription_type": "free",
        "price_amount": 0,
        "monthly_token_limit": 500,
        "billing_cycle_start": NOW - timedelta(days=3),
    }
    values.update(fields)
    subscription = UserSubscription(user_id=user_id, **values)
    session.add(subscription)
    session.flush()
    return subscription


def test_new_user_starts_seven_day_trial(session) -> None:
    summary = SubscriptionService(session).check_subscription("user-1", now=NOW)

    assert summary["subscription_type"] == "free"
    assert summary["trial_end_date"] == (NOW + timedelta(days=7)).isoformat()
    assert summary["token_limit_soft"] == 20000
    assert summary["token_limit_hard"] == 25000
    assert summary["remaining_tokens"] == 25000
    assert summary["is_trial_expired"] is False
    assert summary["token_status"] == "good"
    assert summary["is_active"] is True
    assert session.query(UserSubscription).count() == 1


def test_new_user_trial_runs_out_through_expiry_job(session) -> None:
    service = SubscriptionService(session)
    service.check_subscription("user-1", now=NOW)

    result = service.process_trial_expiry(now=NOW + timedelta(days=8))
    summary = service.check_subscription("user-1", now=NOW + timedelta(days=8))

    assert result["processed"] == 1
    assert summary["subscription_type"] == "limited_free"
    assert summary["token_limit_hard"] == 500
    assert summary["is_trial_expired"] is True


def test_price_determines_plan(session) -> None:
    _subscription(session, price_amount=3999, monthly_tokens_used=2500)

    summary = SubscriptionService(session).check_subscription("user-1", now=NOW)

    assert summary["subscription_type"] == "paid"
    assert summary["monthly_token_limit"] == 10000
    assert summary["remaining_tokens"] == 7500
    assert summary["usage_percentage"] == 25


def test_trial_uses_trial_limits(session) -> None:
    _subscription(session, trial_end_date=NOW + timedelta(days=5), tokens_used_total=19000)

    summary = SubscriptionService(session).check_subscription("user-1", language="en", now=NOW)

    assert summary["token_limit_soft"] == 20000
    assert summary["token_limit_hard"] == 25000
    assert summary["remaining_tokens"] == 6000
    assert summary["token_status"] == "warning"
    assert summary["show_upgrade_prompt"] is True
    assert summary["token_message"] == "6000 tokens left. Consider upgrading your plan."
    assert summary["is_trial_expired"] is False


def test_expired_paid_plan(session) -> None:
    _subscription(session, price_amount=9999, subscription_end_date=NOW - timedelta(days=1))

    summary = SubscriptionService(session).check_subscription("user-1", now=NOW)

    assert summary["subscription_type"] == "expired"
    assert summary["status"] == "expired"
    assert summary["is_active"] is False
    assert summary["token_limit_hard"] == 500


def test_limited_free_plan_is_kept(session) -> None:
    _subscription(session, subscription_type="limited_free", monthly_tokens_used=100, tokens_used_total=25000)

    summary = SubscriptionService(session).check_subscription("user-1", now=NOW)

    assert summary["subscription_type"] == "limited_free"
    assert summary["remaining_tokens"] == 400
    assert summary["is_trial_expired"] is True


def test_billing_cycle_resets_monthly_counter(session) -> None:
    subscription = _subscription(
        session, price_amount=2999, monthly_tokens_used=9000,
        billing_cycle_start=NOW - timedelta(days=40),
    )

    summary = SubscriptionService(session).check_subscription("user-1", now=NOW)

    assert summary["monthly_tokens_used"] == 0
    assert subscription.billing_cycle_start == NOW


def test_released_token_rewards_raise_hard_limit(session) -> None:
    _subscription(session, tokens_used_total=600)
    session.add(Reward(user_id="user-1", kind="tokens", amount=4000, status="released", source="activation"))
    session.add(Reward(user_id="user-1", kind="tokens", amount=1000, status="pending", source="activation"))
    session.flush()

    summary = SubscriptionService(session).check_subscription("user-1", now=NOW)

    assert summary["bonus_tokens"] == 4000
    assert summary["token_limit_hard"] == 4500
    assert summary["remaining_tokens"] == 3900


def test_ensure_tokens_available_raises_when_exhausted(session) -> None:
    _subscription(session, tokens_used_total=500)

    with pytest.raises(TokenLimitExceeded) as excinfo:
        SubscriptionService(session).ensure_tokens_available("user-1")

    assert excinfo.value.status_code == 402
    assert excinfo.value.limit == 500


def test_record_token_usage_updates_counters_and_log(session) -> None:
    service = SubscriptionService(session)

    service.record_token_usage("user-1", 120, "ai_chat")
    subscription = service.record_token_usage("user-1", 30, "ai_chat")

    assert subscription.tokens_used_total == 150
    assert subscription.monthly_tokens_used == 150
    assert session.query(TokenUsageLog).filter_by(user_id="user-1").count() == 2


def test_usage_overview_lists_recent_usage(session) -> None:
    service = SubscriptionService(session)
    service.record_token_usage("user-1", 42, "ai_chat")

    overview = service.usage_overview("user-1", "en")

    assert overview["recent_usage"][0]["tokens"] == 42
    assert overview["recent_usage"][0]["source"] == "ai_chat"
    assert overview["tokens_used_total"] == 42


def test_trial_expiry_downgrades_and_warns(session) -> None:
    _subscription(session, user_id="expired", trial_end_date=NOW - timedelta(hours=1), monthly_tokens_used=900)
    _subscription(session, user_id="expiring", trial_end_date=NOW + timedelta(days=2, hours=3))
    _subscription(session, user_id="later", trial_end_date=NOW + timedelta(days=10))

    result = SubscriptionService(session).process_trial_expiry(now=NOW)

    assert result == {"processed": 1, "warned": 1, "errors": []}

    expired = session.query(UserSubscription).filter_by(user_id="expired").one()
    assert expired.subscription_type == "limited_free"
    assert expired.monthly_tokens_used == 0
    assert expired.trial_end_date is None

    events = {e.event_type: e for e in session.query(AppEventLog).all()}
    assert events["trial_expired"].user_id == "expired"
    assert events["trial_expiry_warning"].user_id == "expiring"
    assert events["trial_expiry_warning"].payload["days_left"] == 3


def _failing_load(session):
    def _load(user_id, now):
        session.execute(text("SELECT * FROM missing_table"))

    return _load


def test_subscription_load_retries_in_savepoint_then_raises(session) -> None:
    session.add(Reward(user_id="user-1", kind="tokens", amount=100, status="released", source="conversion"))
    session.flush()
    service = SubscriptionService(session, ErrorHandler(max_attempts=3, sleep=lambda _: None))
    service._fetch_or_create = _failing_load(session)

    with pytest.raises(DatabaseUnavailableError) as excinfo:
        service.check_subscription("user-1", now=NOW)

    assert excinfo.value.status_code == 503
    assert session.query(AppErrorLog).filter_by(location="subscription_load").count() == 3
    assert service.bonus_tokens("user-1") == 100
