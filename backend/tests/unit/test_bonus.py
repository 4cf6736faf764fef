"""
Unit tests for bonus grant rules and BonusService.
"""

from datetime import datetime, timezone
from uuid import UUID

import pytest

from app.domain.bonus import (
    AwardBonusRequest,
    BonusDuration,
    BonusGrant,
    BonusType,
    FEEDBACK_REWARD_REASON,
    WAITLIST_REWARD_REASON,
    after_consumption,
    build_award,
    fixed_bonus_total,
    percentage_bonus_amount,
    roll_over,
)
from app.domain.services import BonusService
from app.infrastructure.db.models import WaitlistEntry
from app.infrastructure.exceptions import ValidationError
from tests.fakes import FakeBonusRepository, FakeWaitlistRepository


USER = "11111111-1111-1111-1111-111111111111"
OTHER_USER = "33333333-3333-3333-3333-333333333333"
ADMIN = "22222222-2222-2222-2222-222222222222"
NOW = datetime(2026, 3, 15, tzinfo=timezone.utc)


def grant(bonus_type=BonusType.FIXED_SEARCHES, value=5, duration=BonusDuration.PERMANENT, **extra):
    return BonusGrant(
        user_id=USER,
        bonus_type=bonus_type,
        bonus_value=value,
        bonus_duration=duration,
        **extra,
    )


class TestBuildAward:
    """Validation of admin awards."""

    def test_defaults_to_once(self):
        request = AwardBonusRequest(userId=USER, bonusType="fixed_searches", bonusValue=10)
        award = build_award(request, ADMIN)
        assert award.bonus_duration == BonusDuration.ONCE
        assert award.months_remaining is None
        assert award.awarded_by == ADMIN
        assert award.is_active is True

    def test_monthly_lasts_value_months(self):
        request = AwardBonusRequest(
            userId=USER, bonusType="percentage", bonusValue=3, bonusDuration="monthly"
        )
        assert build_award(request, ADMIN).months_remaining == 3

    @pytest.mark.parametrize("payload", [
        {"bonusType": "fixed_searches", "bonusValue": 5},
        {"userId": USER, "bonusValue": 5},
        {"userId": USER, "bonusType": "fixed_searches"},
    ])
    def test_missing_fields_rejected(self, payload):
        with pytest.raises(ValidationError, match="Missing required fields"):
            build_award(AwardBonusRequest(**payload), ADMIN)

    def test_unknown_type_rejected(self):
        request = AwardBonusRequest(userId=USER, bonusType="free_pizza", bonusValue=1)
        with pytest.raises(ValidationError, match="Invalid bonus type"):
            build_award(request, ADMIN)

    def test_unknown_duration_rejected(self):
        request = AwardBonusRequest(
            userId=USER, bonusType="fixed_searches", bonusValue=1, bonusDuration="weekly"
        )
        with pytest.raises(ValidationError, match="Invalid bonus duration"):
            build_award(request, ADMIN)

    def test_negative_value_rejected(self):
        request = AwardBonusRequest(userId=USER, bonusType="fixed_searches", bonusValue=-1)
        with pytest.raises(ValidationError):
            build_award(request, ADMIN)


class TestGrantRules:
    """Rollover, consumption and totals."""

    def test_monthly_grant_loses_a_month(self):
        rolled = roll_over(grant(BonusType.PERCENTAGE, 10, BonusDuration.MONTHLY, months_remaining=2))
        assert rolled.months_remaining == 1
        assert rolled.is_active is True

    def test_monthly_grant_expires_at_zero(self):
        rolled = roll_over(grant(BonusType.PERCENTAGE, 10, BonusDuration.MONTHLY, months_remaining=1))
        assert rolled.months_remaining == 0
        assert rolled.is_active is False

    def test_once_percentage_ends_with_its_period(self):
        assert roll_over(grant(BonusType.PERCENTAGE, 20, BonusDuration.ONCE)).is_active is False

    def test_permanent_and_once_fixed_survive_rollover(self):
        assert roll_over(grant()).is_active is True
        assert roll_over(grant(duration=BonusDuration.ONCE)).is_active is True

    def test_inactive_grant_untouched(self):
        inactive = grant(is_active=False)
        assert roll_over(inactive) is inactive

    def test_consumption_decrements(self):
        used = after_consumption(grant(value=3))
        assert used.bonus_value == 2
        assert used.is_active is True

    def test_consumption_of_last_unit_deactivates(self):
        assert after_consumption(grant(value=1)).is_active is False

    def test_once_grant_deactivates_after_one_use(self):
        used = after_consumption(grant(value=5, duration=BonusDuration.ONCE))
        assert used.bonus_value == 4
        assert used.is_active is False

    def test_once_grant_counts_one_search(self):
        assert fixed_bonus_total([grant(value=5, duration=BonusDuration.ONCE)]) == 1
        assert fixed_bonus_total([grant(value=0, duration=BonusDuration.ONCE)]) == 0

    def test_totals(self):
        grants = [
            grant(value=3),
            grant(value=4, is_active=False),
            grant(BonusType.PERCENTAGE, 25),
            grant(BonusType.PERCENTAGE, 10),
        ]
        assert fixed_bonus_total(grants) == 3
        # 35% of 73 = 25.55
        assert percentage_bonus_amount(73, grants) == 25


class TestBonusService:
    """BonusService over an in-memory repository."""

    async def test_award_persists_grant(self):
        repo = FakeBonusRepository()
        service = BonusService(repo)

        awarded = await service.award(
            AwardBonusRequest(userId=USER, bonusType="fixed_searches", bonusValue=7), ADMIN
        )

        assert awarded.id is not None
        assert repo.rows == [awarded]

    async def test_feedback_reward_is_one_growing_grant(self):
        repo = FakeBonusRepository()
        service = BonusService(repo)

        await service.grant_feedback_reward(USER)
        await service.grant_feedback_reward(USER)
        third = await service.grant_feedback_reward(USER)

        feedback_grants = [g for g in repo.rows if g.reason == FEEDBACK_REWARD_REASON]
        assert len(feedback_grants) == 1
        assert third.bonus_value == 3
        assert third.bonus_duration == BonusDuration.PERMANENT

    async def test_feedback_reward_starts_fresh_after_exhaustion(self):
        repo = FakeBonusRepository([
            grant(value=0, reason=FEEDBACK_REWARD_REASON, is_active=False),
        ])
        reward = await BonusService(repo).grant_feedback_reward(USER)
        assert reward.bonus_value == 1
        assert len(repo.rows) == 2

    async def test_roll_over_period_saves_changes(self):
        repo = FakeBonusRepository([
            grant(BonusType.PERCENTAGE, 10, BonusDuration.MONTHLY, months_remaining=1),
            grant(),
        ])
        rolled = await BonusService(repo).roll_over_period(USER)

        assert [g.is_active for g in rolled] == [False, True]
        assert len(await repo.list_active(USER)) == 1

    async def test_waitlist_bonus_granted_once(self):
        entry = WaitlistEntry(email="early@example.com")
        bonuses = FakeBonusRepository()
        service = BonusService(bonuses, FakeWaitlistRepository([entry]), 75)

        assert await service.ensure_waitlist_bonus(USER, "early@example.com", NOW) is True
        assert await service.ensure_waitlist_bonus(USER, "early@example.com", NOW) is True

        waitlist_grants = [g for g in bonuses.rows if g.reason == WAITLIST_REWARD_REASON]
        assert len(waitlist_grants) == 1
        assert waitlist_grants[0].bonus_value == 75
        assert entry.bonus_granted_user_id == UUID(USER)

    async def test_waitlist_bonus_not_paid_to_second_account(self):
        entry = WaitlistEntry(email="early@example.com")
        bonuses = FakeBonusRepository()
        service = BonusService(bonuses, FakeWaitlistRepository([entry]), 75)

        await service.ensure_waitlist_bonus(USER, "early@example.com", NOW)
        granted = await service.ensure_waitlist_bonus(OTHER_USER, "early@example.com", NOW)

        assert granted is False
        assert await bonuses.list_active(OTHER_USER) == []

    async def test_waitlist_bonus_not_regranted_after_use(self):
        entry = WaitlistEntry(email="early@example.com")
        bonuses = FakeBonusRepository()
        service = BonusService(bonuses, FakeWaitlistRepository([entry]), 75)
        await service.ensure_waitlist_bonus(USER, "early@example.com", NOW)
        bonuses.rows[0] = bonuses.rows[0].model_copy(update={"bonus_value": 0, "is_active": False})

        assert await service.ensure_waitlist_bonus(USER, "early@example.com", NOW) is False
        assert len(bonuses.rows) == 1

    async def test_unknown_email_gets_nothing(self):
        service = BonusService(FakeBonusRepository(), FakeWaitlistRepository(), 75)
        assert await service.ensure_waitlist_bonus(USER, "stranger@example.com", NOW) is False
        assert await service.ensure_waitlist_bonus(USER, None, NOW) is False
