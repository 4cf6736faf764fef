"""
Unit tests for TrialLifecycleController.

Verifies:
- Elapsed trials convert to a paid core_monthly subscription
- Trials that cannot be charged are expired and keep their usage
- Sweeps are idempotent and isolate per-row failures
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from app.domain.bonus import BonusDuration, BonusGrant, BonusType
from app.domain.services import BonusService, TrialLifecycleController
from app.domain.subscription import MonthlyUsage, PlanId, Subscription, SubscriptionStatus
from app.infrastructure.exceptions import PaymentServiceError
from tests.fakes import FakeBonusRepository, FakeSubscriptionRepository, FakeUsageRepository


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
PAID_START = int(datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc).timestamp())
PAID_END = int(datetime(2026, 4, 15, 12, 0, tzinfo=timezone.utc).timestamp())

ALICE = "aaaaaaaa-0000-0000-0000-000000000001"
BOB = "bbbbbbbb-0000-0000-0000-000000000002"


class StripeSubscriptionStub(dict):
    """Dict access like a StripeObject, plus ``.id``."""

    @property
    def id(self):
        return self["id"]


def elapsed_trial(user_id: str, customer_id="cus_123", ended=timedelta(hours=1)) -> Subscription:
    return Subscription(
        user_id=user_id,
        plan_id=PlanId.TRIAL,
        status=SubscriptionStatus.TRIAL,
        trial_start_date=NOW - timedelta(days=3) - ended,
        trial_end_date=NOW - ended,
        current_period_start=NOW - timedelta(days=3) - ended,
        current_period_end=NOW - ended,
        stripe_customer_id=customer_id,
    )


def trial_usage(user_id: str, used: int = 4) -> MonthlyUsage:
    return MonthlyUsage(
        user_id=user_id,
        period_start=NOW - timedelta(days=3, hours=1),
        period_end=NOW - timedelta(hours=1),
        searches_used=used,
        searches_limit=10,
    )


def stripe_mock(configured=True) -> MagicMock:
    stripe = MagicMock()
    stripe.is_configured = configured
    stripe.price_for_plan.return_value = "price_core_monthly"
    stripe.create_subscription = AsyncMock(return_value=StripeSubscriptionStub(
        id="sub_new",
        status="active",
        current_period_start=PAID_START,
        current_period_end=PAID_END,
    ))
    return stripe


def controller(trials, usage_rows=None, grants=None, stripe=None):
    subscriptions = FakeSubscriptionRepository(trials)
    usage = FakeUsageRepository(usage_rows)
    bonuses = FakeBonusRepository(grants)
    stripe = stripe or stripe_mock()
    ctrl = TrialLifecycleController(subscriptions, usage, BonusService(bonuses), stripe)
    return ctrl, subscriptions, usage, bonuses, stripe


class TestSweep:
    """Batch conversion over every elapsed trial."""

    async def test_converts_to_core_monthly(self):
        ctrl, subs, usage, _, stripe = controller([elapsed_trial(ALICE)], [trial_usage(ALICE)])

        result = await ctrl.sweep(NOW)

        assert (result.converted, result.expired, result.total) == (1, 0, 1)
        assert result.errors == []
        converted = subs.rows[ALICE]
        assert converted.status == SubscriptionStatus.ACTIVE
        assert converted.plan_id == PlanId.CORE_MONTHLY
        assert converted.stripe_subscription_id == "sub_new"
        assert converted.current_period_end == datetime.fromtimestamp(PAID_END, tz=timezone.utc)

        fresh = await usage.get_current(ALICE, NOW)
        assert fresh.searches_used == 0
        assert fresh.searches_limit == 73

        stripe.create_subscription.assert_awaited_once()
        args, kwargs = stripe.create_subscription.call_args
        assert args == ("cus_123", "price_core_monthly")
        assert kwargs["metadata"]["converted_from_trial"] == "true"
        assert kwargs["idempotency_key"] == f"trial-convert-{ALICE}"

    async def test_conversion_rolls_bonuses_over(self):
        monthly = BonusGrant(
            user_id=ALICE,
            bonus_type=BonusType.PERCENTAGE,
            bonus_value=10,
            bonus_duration=BonusDuration.MONTHLY,
            months_remaining=2,
        )
        ctrl, _, _, bonuses, _ = controller([elapsed_trial(ALICE)], grants=[monthly])

        await ctrl.sweep(NOW)

        assert bonuses.rows[0].months_remaining == 1

    async def test_without_customer_id_expires_and_keeps_usage(self):
        ctrl, subs, usage, _, stripe = controller(
            [elapsed_trial(ALICE, customer_id=None)], [trial_usage(ALICE, used=4)]
        )

        result = await ctrl.sweep(NOW)

        assert (result.converted, result.expired) == (0, 1)
        assert result.errors == [{"userId": ALICE, "error": "No Stripe customer ID"}]
        assert subs.rows[ALICE].status == SubscriptionStatus.EXPIRED
        assert subs.rows[ALICE].plan_id == PlanId.TRIAL
        (row,) = usage.rows.values()
        assert row.searches_used == 4
        stripe.create_subscription.assert_not_awaited()

    async def test_payment_failure_expires(self):
        stripe = stripe_mock()
        stripe.create_subscription.side_effect = PaymentServiceError("Your card was declined.")
        ctrl, subs, _, _, _ = controller([elapsed_trial(ALICE)], stripe=stripe)

        result = await ctrl.sweep(NOW)

        assert result.expired == 1
        assert result.errors[0]["error"] == "Your card was declined."
        assert subs.rows[ALICE].status == SubscriptionStatus.EXPIRED

    async def test_stripe_not_configured_expires(self):
        ctrl, subs, _, _, _ = controller([elapsed_trial(ALICE)], stripe=stripe_mock(configured=False))

        result = await ctrl.sweep(NOW)

        assert result.errors[0]["error"] == "Stripe not configured"
        assert subs.rows[ALICE].status == SubscriptionStatus.EXPIRED

    async def test_second_run_is_a_no_op(self):
        ctrl, _, _, _, stripe = controller([elapsed_trial(ALICE), elapsed_trial(BOB, customer_id=None)])

        await ctrl.sweep(NOW)
        again = await ctrl.sweep(NOW)

        assert (again.total, again.converted, again.expired) == (0, 0, 0)
        assert stripe.create_subscription.await_count == 1

    async def test_live_trials_are_left_alone(self):
        live = elapsed_trial(ALICE, ended=-timedelta(days=1))
        ctrl, subs, _, _, _ = controller([live])

        result = await ctrl.sweep(NOW)

        assert result.total == 0
        assert subs.rows[ALICE].status == SubscriptionStatus.TRIAL

    async def test_failing_row_does_not_stop_the_sweep(self):
        ctrl, subs, _, _, _ = controller([
            elapsed_trial(ALICE, ended=timedelta(hours=2)),
            elapsed_trial(BOB, customer_id="cus_bob"),
        ])
        subs.failing_users.add(ALICE)

        result = await ctrl.sweep(NOW)

        assert result.total == 2
        assert result.converted == 1
        assert [e["userId"] for e in result.errors] == [ALICE]
        assert subs.rows[ALICE].status == SubscriptionStatus.TRIAL
        assert subs.rows[BOB].status == SubscriptionStatus.ACTIVE


class TestCheckUser:
    """Per-user check on app load."""

    async def test_live_trial_not_expired(self):
        ctrl, _, _, _, _ = controller([elapsed_trial(ALICE, ended=-timedelta(days=1))])

        result = await ctrl.check_user(ALICE, NOW)

        assert result.trial_expired is False
        assert result.converted is False

    async def test_no_subscription_not_expired(self):
        ctrl, _, _, _, _ = controller([])
        assert (await ctrl.check_user(ALICE, NOW)).trial_expired is False

    async def test_elapsed_trial_converted(self):
        ctrl, subs, _, _, _ = controller([elapsed_trial(ALICE)])

        result = await ctrl.check_user(ALICE, NOW)

        assert result.trial_expired is True
        assert result.converted is True
        assert subs.rows[ALICE].status == SubscriptionStatus.ACTIVE

    async def test_elapsed_trial_without_customer_reports_reason(self):
        ctrl, _, _, _, _ = controller([elapsed_trial(ALICE, customer_id=None)])

        result = await ctrl.check_user(ALICE, NOW)

        assert result.trial_expired is True
        assert result.converted is False
        assert "No Stripe customer ID" in result.message
