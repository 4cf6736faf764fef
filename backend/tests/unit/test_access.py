"""
Unit tests for the access decision and the AccessGate service.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from sqlalchemy.exc import SQLAlchemyError

from app.domain.access import (
    AccessMode,
    DENIED_INACTIVE,
    DENIED_NO_SUBSCRIPTION,
    DENIED_QUOTA,
    DENIED_TRIAL_ENDED,
    GRANTED_BONUS_ONLY,
    evaluate_access,
)
from app.domain.bonus import BonusDuration, BonusGrant, BonusType
from app.domain.services import AccessGate, BonusService
from app.domain.subscription import (
    MonthlyUsage,
    PlanId,
    Subscription,
    SubscriptionStatus,
    UNLIMITED,
)
from app.infrastructure.db.models import WaitlistEntry
from tests.fakes import (
    FakeBonusRepository,
    FakeSubscriptionRepository,
    FakeUsageRepository,
    FakeWaitlistRepository,
)


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
USER = "11111111-1111-1111-1111-111111111111"


def active_core(**overrides) -> Subscription:
    values = dict(
        user_id=USER,
        plan_id=PlanId.CORE_MONTHLY,
        status=SubscriptionStatus.ACTIVE,
        current_period_start=NOW - timedelta(days=10),
        current_period_end=NOW + timedelta(days=20),
    )
    values.update(overrides)
    return Subscription(**values)


def live_trial(ends_in: timedelta = timedelta(days=1)) -> Subscription:
    return Subscription(
        user_id=USER,
        plan_id=PlanId.TRIAL,
        status=SubscriptionStatus.TRIAL,
        trial_start_date=NOW - timedelta(days=2),
        trial_end_date=NOW + ends_in,
    )


def usage(used: int, limit: int = 73) -> MonthlyUsage:
    return MonthlyUsage(
        id="usage-1",
        user_id=USER,
        period_start=NOW - timedelta(days=10),
        period_end=NOW + timedelta(days=20),
        searches_used=used,
        searches_limit=limit,
    )


def fixed(value: float, duration: BonusDuration = BonusDuration.PERMANENT, active: bool = True) -> BonusGrant:
    return BonusGrant(
        user_id=USER,
        bonus_type=BonusType.FIXED_SEARCHES,
        bonus_value=value,
        bonus_duration=duration,
        is_active=active,
    )


def percentage(value: float) -> BonusGrant:
    return BonusGrant(
        user_id=USER,
        bonus_type=BonusType.PERCENTAGE,
        bonus_value=value,
        bonus_duration=BonusDuration.MONTHLY,
        months_remaining=3,
    )


class TestEvaluateAccess:
    """Access decision from subscription, usage and bonuses."""

    def test_no_subscription_no_bonus_denies(self):
        decision = evaluate_access(None, None, [], NOW)
        assert decision.granted is False
        assert decision.reason == DENIED_NO_SUBSCRIPTION

    def test_no_subscription_with_fixed_bonus_grants_bonus_only(self):
        decision = evaluate_access(None, None, [fixed(5)], NOW)
        assert decision.granted is True
        assert decision.mode == AccessMode.BONUS
        assert decision.reason == GRANTED_BONUS_ONLY
        assert decision.searches_remaining == 5

    def test_zero_value_bonus_does_not_grant(self):
        sub = active_core(status=SubscriptionStatus.EXPIRED)
        decision = evaluate_access(sub, None, [fixed(0)], NOW)
        assert decision.granted is False
        assert decision.reason == DENIED_INACTIVE

    def test_inactive_bonus_is_ignored(self):
        decision = evaluate_access(None, None, [fixed(10, active=False)], NOW)
        assert decision.granted is False

    def test_cancelled_subscription_denies(self):
        sub = active_core(status=SubscriptionStatus.CANCELLED)
        assert evaluate_access(sub, usage(0), [], NOW).reason == DENIED_INACTIVE

    def test_live_trial_with_room_grants(self):
        decision = evaluate_access(live_trial(), usage(3, limit=10), [], NOW)
        assert decision.granted is True
        assert decision.mode == AccessMode.PLAN
        assert decision.searches_remaining == 7

    def test_trial_ending_exactly_now_denies(self):
        decision = evaluate_access(live_trial(ends_in=timedelta(0)), usage(0, limit=10), [], NOW)
        assert decision.granted is False
        assert decision.reason == DENIED_TRIAL_ENDED

    def test_trial_without_end_date_denies(self):
        sub = live_trial().model_copy(update={"trial_end_date": None})
        assert evaluate_access(sub, None, [], NOW).reason == DENIED_TRIAL_ENDED

    def test_ended_trial_with_bonus_still_gets_in(self):
        decision = evaluate_access(live_trial(ends_in=-timedelta(hours=1)), None, [fixed(2)], NOW)
        assert decision.granted is True
        assert decision.reason == GRANTED_BONUS_ONLY

    def test_quota_exhausted_denies(self):
        decision = evaluate_access(active_core(), usage(73), [], NOW)
        assert decision.granted is False
        assert decision.reason == DENIED_QUOTA
        assert decision.searches_remaining == 0

    def test_quota_exhausted_with_fixed_bonus_grants_in_bonus_mode(self):
        decision = evaluate_access(active_core(), usage(73), [fixed(2)], NOW)
        assert decision.granted is True
        assert decision.mode == AccessMode.BONUS
        assert decision.searches_remaining == 2

    def test_percentage_bonus_rounds_down(self):
        # 10% of 73 is 7.3, so the ceiling is 80
        grants = [percentage(10)]
        assert evaluate_access(active_core(), usage(79), grants, NOW).granted is True
        denied = evaluate_access(active_core(), usage(80), grants, NOW)
        assert denied.granted is False
        assert denied.percentage_bonus_searches == 7

    def test_missing_usage_row_uses_plan_limit(self):
        decision = evaluate_access(active_core(), None, [], NOW)
        assert decision.granted is True
        assert decision.plan_limit == 73
        assert decision.searches_used == 0

    def test_usage_row_limit_wins_over_plan(self):
        decision = evaluate_access(active_core(), usage(50, limit=50), [], NOW)
        assert decision.granted is False

    def test_free_unlimited_always_grants(self):
        sub = active_core(plan_id=PlanId.FREE_UNLIMITED)
        decision = evaluate_access(sub, usage(10_000, limit=UNLIMITED), [], NOW)
        assert decision.granted is True
        assert decision.mode == AccessMode.UNLIMITED
        assert decision.searches_remaining == UNLIMITED


class TestAccessGate:
    """AccessGate over in-memory repositories."""

    def gate(self, subscriptions=None, usage_rows=None, grants=None, waitlist=None):
        subs = FakeSubscriptionRepository(subscriptions)
        bonuses = FakeBonusRepository(grants)
        bonus_service = BonusService(bonuses, FakeWaitlistRepository(waitlist), 75)
        return AccessGate(subs, FakeUsageRepository(usage_rows), bonuses, bonus_service)

    async def test_active_subscription_has_access(self):
        gate = self.gate([active_core()], [usage(10)])
        assert await gate.has_access(USER, now=NOW) is True

    async def test_exhausted_subscription_has_no_access(self):
        gate = self.gate([active_core()], [usage(73)])
        assert await gate.has_access(USER, now=NOW) is False

    async def test_lookup_failure_denies(self):
        gate = self.gate([active_core()], [usage(0)])
        gate._subscriptions.get_by_user_id = AsyncMock(side_effect=SQLAlchemyError("down"))
        assert await gate.has_access(USER, now=NOW) is False

    async def test_waitlist_member_gets_bonus_on_first_check(self):
        entry = WaitlistEntry(email="early@example.com", source="landing")
        gate = self.gate(waitlist=[entry])

        decision = await gate.evaluate(USER, "Early@Example.com", NOW)

        assert decision.granted is True
        assert decision.bonus_searches == 75
        assert entry.bonus_granted_at == NOW

    async def test_waitlist_bonus_not_checked_when_already_granted(self):
        entry = WaitlistEntry(email="early@example.com")
        gate = self.gate([active_core()], [usage(0)], waitlist=[entry])

        assert await gate.has_access(USER, "early@example.com", NOW) is True
        assert entry.bonus_granted_at is None
