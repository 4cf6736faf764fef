"""
Unit tests for UsageLedger: spending searches and the usage summary.
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.domain.bonus import BonusDuration, BonusGrant, BonusType
from app.domain.services import AccessGate, UsageLedger
from app.domain.subscription import MonthlyUsage, PlanId, Subscription, SubscriptionStatus
from app.infrastructure.exceptions import AuthorizationError
from tests.fakes import FakeBonusRepository, FakeSubscriptionRepository, FakeUsageRepository


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
USER = "11111111-1111-1111-1111-111111111111"
PERIOD_START = NOW - timedelta(days=5)
PERIOD_END = NOW + timedelta(days=25)


def subscription(plan=PlanId.CORE_MONTHLY, status=SubscriptionStatus.ACTIVE) -> Subscription:
    return Subscription(
        user_id=USER,
        plan_id=plan,
        status=status,
        current_period_start=PERIOD_START,
        current_period_end=PERIOD_END,
        trial_end_date=PERIOD_END if status == SubscriptionStatus.TRIAL else None,
    )


def usage_row(used: int, limit: int = 73) -> MonthlyUsage:
    return MonthlyUsage(
        id="usage-1",
        user_id=USER,
        period_start=PERIOD_START,
        period_end=PERIOD_END,
        searches_used=used,
        searches_limit=limit,
    )


def fixed(value: float, duration=BonusDuration.PERMANENT) -> BonusGrant:
    return BonusGrant(
        user_id=USER,
        bonus_type=BonusType.FIXED_SEARCHES,
        bonus_value=value,
        bonus_duration=duration,
    )


def build(subscriptions=None, usage_rows=None, grants=None):
    subs = FakeSubscriptionRepository(subscriptions)
    usage = FakeUsageRepository(usage_rows)
    bonuses = FakeBonusRepository(grants)
    ledger = UsageLedger(AccessGate(subs, usage, bonuses), subs, usage, bonuses)
    return ledger, usage, bonuses


class TestConsume:
    """Spending order: plan quota, then fixed bonus searches."""

    async def test_plan_quota_used_first(self):
        ledger, usage, bonuses = build([subscription()], [usage_row(10)], [fixed(5)])

        result = await ledger.consume(USER, now=NOW)

        assert result == {"success": True, "searchesUsed": 11, "searchesLimit": 73}
        assert bonuses.rows[0].bonus_value == 5

    async def test_bonus_used_after_plan_runs_out(self):
        ledger, usage, bonuses = build([subscription()], [usage_row(73)], [fixed(2)])

        result = await ledger.consume(USER, now=NOW)

        assert result["bonusUsed"] is True
        assert result["bonusSearchesRemaining"] == 1
        assert usage.rows["usage-1"].searches_used == 73

    async def test_everything_exhausted_is_forbidden(self):
        ledger, _, _ = build([subscription()], [usage_row(73)], [])
        with pytest.raises(AuthorizationError, match="No searches remaining"):
            await ledger.consume(USER, now=NOW)

    async def test_runs_dry_after_last_bonus(self):
        ledger, _, bonuses = build([subscription()], [usage_row(73)], [fixed(1)])

        await ledger.consume(USER, now=NOW)

        assert bonuses.rows[0].is_active is False
        with pytest.raises(AuthorizationError):
            await ledger.consume(USER, now=NOW)

    async def test_once_grant_pays_for_a_single_search(self):
        ledger, _, bonuses = build([subscription()], [usage_row(73)], [fixed(5, BonusDuration.ONCE)])

        await ledger.consume(USER, now=NOW)

        assert bonuses.rows[0].is_active is False
        with pytest.raises(AuthorizationError):
            await ledger.consume(USER, now=NOW)

    async def test_percentage_bonus_extends_plan_counter(self):
        pct = BonusGrant(
            user_id=USER,
            bonus_type=BonusType.PERCENTAGE,
            bonus_value=10,
            bonus_duration=BonusDuration.PERMANENT,
        )
        ledger, usage, _ = build([subscription()], [usage_row(73)], [pct])

        result = await ledger.consume(USER, now=NOW)

        assert result["searchesUsed"] == 74

    async def test_unlimited_plan_does_not_count(self):
        ledger, usage, _ = build(
            [subscription(plan=PlanId.FREE_UNLIMITED)], [usage_row(500, limit=-1)]
        )

        result = await ledger.consume(USER, now=NOW)

        assert result == {"success": True, "unlimited": True}
        assert usage.rows["usage-1"].searches_used == 500

    async def test_bonus_only_user_spends_bonus(self):
        ledger, usage, bonuses = build([], [], [fixed(3)])

        result = await ledger.consume(USER, now=NOW)

        assert result["bonusSearchesRemaining"] == 2
        assert usage.rows == {}

    async def test_missing_usage_row_is_opened_on_billing_period(self):
        ledger, usage, _ = build([subscription()], [])

        result = await ledger.consume(USER, now=NOW)

        assert result["searchesUsed"] == 1
        (row,) = usage.rows.values()
        assert row.period_start == PERIOD_START
        assert row.searches_limit == 73

    async def test_no_subscription_no_bonus_is_forbidden(self):
        ledger, _, _ = build()
        with pytest.raises(AuthorizationError):
            await ledger.consume(USER, now=NOW)


class TestSummary:
    """Usage endpoint payload."""

    async def test_active_subscription_summary(self):
        ledger, _, _ = build([subscription()], [usage_row(20)], [fixed(4)])

        summary = await ledger.summary(USER, now=NOW)

        assert summary.has_subscription is True
        assert summary.plan_id == PlanId.CORE_MONTHLY
        assert summary.searches_used == 20
        assert summary.searches_limit == 73
        assert summary.searches_remaining == 57
        assert summary.bonus_searches_remaining == 4
        assert summary.can_search is True
        assert summary.trial_time_remaining is None

    async def test_trial_summary_reports_time_left(self):
        ledger, _, _ = build(
            [subscription(plan=PlanId.TRIAL, status=SubscriptionStatus.TRIAL)],
            [usage_row(2, limit=10)],
        )

        summary = await ledger.summary(USER, now=NOW)

        assert summary.trial_time_remaining["days"] == 25
        assert summary.searches_remaining == 8

    async def test_once_grant_reports_a_single_search(self):
        ledger, _, _ = build([], [], [fixed(5, BonusDuration.ONCE)])

        before = await ledger.summary(USER, now=NOW)
        await ledger.consume(USER, now=NOW)
        after = await ledger.summary(USER, now=NOW)

        assert (before.bonus_searches_remaining, before.searches_remaining) == (1, 1)
        assert before.can_search is True
        assert (after.bonus_searches_remaining, after.searches_remaining) == (0, 0)
        assert after.can_search is False

    async def test_no_subscription_summary(self):
        ledger, _, _ = build([], [], [fixed(6)])

        summary = await ledger.summary(USER, now=NOW)

        assert summary.has_subscription is False
        assert summary.searches_remaining == 6
        assert summary.can_search is True
