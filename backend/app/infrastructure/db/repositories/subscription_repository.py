"""
Subscription and Usage Repositories

Data access for user_subscriptions and monthly_usage, mapped to the
domain entities the access and lifecycle services work with.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.subscription import (
    MonthlyUsage,
    PlanId,
    Subscription,
    SubscriptionStatus,
)
from app.infrastructure.db.models.base import utc_now
from app.infrastructure.db.models.subscription import (
    MonthlyUsageRecord,
    UserSubscription,
)
from app.infrastructure.db.repositories.base_repository import BaseRepository, as_uuid


logger = logging.getLogger(__name__)


class SubscriptionRepository(BaseRepository[UserSubscription]):
    """
    Repository for subscription data access.

    Rows are never deleted; every write goes through ``save`` which
    upserts on ``user_id``.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(UserSubscription, session)

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_by_user_id(self, user_id: str) -> Optional[Subscription]:
        """Get subscription by user ID."""
        return await self._get_one(UserSubscription.user_id == as_uuid(user_id))

    async def get_by_stripe_customer_id(self, customer_id: str) -> Optional[Subscription]:
        """Get subscription by Stripe customer ID."""
        return await self._get_one(UserSubscription.stripe_customer_id == customer_id)

    async def get_by_stripe_subscription_id(
        self,
        stripe_subscription_id: str,
    ) -> Optional[Subscription]:
        """Get subscription by Stripe subscription ID."""
        return await self._get_one(
            UserSubscription.stripe_subscription_id == stripe_subscription_id
        )

    async def list_expired_trials(self, now: datetime) -> list[Subscription]:
        """Trials whose window closed before ``now``; the sweep's work list."""
        stmt = (
            select(UserSubscription)
            .where(
                UserSubscription.status == SubscriptionStatus.TRIAL.value,
                UserSubscription.trial_end_date < now,
            )
            .order_by(UserSubscription.trial_end_date)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(m) for m in result.scalars().all()]

    async def list_user_ids_with_status(self, statuses: list[str]) -> list[str]:
        stmt = select(UserSubscription.user_id).where(UserSubscription.status.in_(statuses))
        result = await self._session.execute(stmt)
        return [str(uid) for uid in result.scalars().all()]

    async def _get_one(self, criterion) -> Optional[Subscription]:
        result = await self._session.execute(select(UserSubscription).where(criterion))
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def save(self, subscription: Subscription) -> Subscription:
        """
        Create or update the subscription row for ``subscription.user_id``.

        Uses a PostgreSQL upsert so a user never ends up with two rows.
        """
        now = utc_now()
        values = {
            "user_id": as_uuid(subscription.user_id),
            "plan_id": subscription.plan_id.value,
            "status": subscription.status.value,
            "trial_start_date": subscription.trial_start_date,
            "trial_end_date": subscription.trial_end_date,
            "current_period_start": subscription.current_period_start,
            "current_period_end": subscription.current_period_end,
            "stripe_customer_id": subscription.stripe_customer_id,
            "stripe_subscription_id": subscription.stripe_subscription_id,
            "updated_at": now,
        }

        stmt = pg_insert(UserSubscription).values(id=uuid4(), created_at=now, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={key: stmt.excluded[key] for key in values if key != "user_id"},
        ).returning(UserSubscription)

        result = await self._session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        model = result.scalar_one()
        logger.info(
            "Saved subscription for user %s: plan=%s status=%s",
            subscription.user_id, model.plan_id, model.status,
        )
        return self._to_domain(model)

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    @staticmethod
    def _to_domain(model: UserSubscription) -> Subscription:
        """Convert database model to domain entity."""
        return Subscription(
            id=str(model.id),
            user_id=str(model.user_id),
            plan_id=PlanId(model.plan_id),
            status=SubscriptionStatus(model.status),
            trial_start_date=model.trial_start_date,
            trial_end_date=model.trial_end_date,
            current_period_start=model.current_period_start,
            current_period_end=model.current_period_end,
            stripe_customer_id=model.stripe_customer_id,
            stripe_subscription_id=model.stripe_subscription_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


class UsageRepository(BaseRepository[MonthlyUsageRecord]):
    """Repository for per-period search counters."""

    def __init__(self, session: AsyncSession):
        super().__init__(MonthlyUsageRecord, session)

    async def get_current(self, user_id: str, now: datetime) -> Optional[MonthlyUsage]:
        """The usage row whose period contains ``now``."""
        stmt = (
            select(MonthlyUsageRecord)
            .where(
                MonthlyUsageRecord.user_id == as_uuid(user_id),
                MonthlyUsageRecord.period_start <= now,
                MonthlyUsageRecord.period_end >= now,
            )
            .order_by(MonthlyUsageRecord.period_start.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def start_period(
        self,
        user_id: str,
        period_start: datetime,
        period_end: datetime,
        searches_limit: int,
    ) -> MonthlyUsage:
        """Open (or reset) the counter for a billing period with zero used."""
        stmt = pg_insert(MonthlyUsageRecord).values(
            id=uuid4(),
            user_id=as_uuid(user_id),
            period_start=period_start,
            period_end=period_end,
            searches_used=0,
            searches_limit=searches_limit,
            created_at=utc_now(),
            updated_at=utc_now(),
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_monthly_usage_user_period",
            set_={
                "period_end": stmt.excluded.period_end,
                "searches_used": 0,
                "searches_limit": stmt.excluded.searches_limit,
                "updated_at": utc_now(),
            },
        ).returning(MonthlyUsageRecord)
        result = await self._session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        return self._to_domain(result.scalar_one())

    async def increment_within(self, usage_id: str, ceiling: int) -> Optional[int]:
        """
        Add one search if the counter is still below ``ceiling``.

        The comparison and the increment happen in one UPDATE, so two
        concurrent requests cannot both take the last unit.

        Returns:
            The new searches_used, or None when the ceiling was reached
        """
        stmt = (
            update(MonthlyUsageRecord)
            .where(
                MonthlyUsageRecord.id == as_uuid(usage_id),
                MonthlyUsageRecord.searches_used < ceiling,
            )
            .values(
                searches_used=MonthlyUsageRecord.searches_used + 1,
                updated_at=utc_now(),
            )
            .returning(MonthlyUsageRecord.searches_used)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _to_domain(model: MonthlyUsageRecord) -> MonthlyUsage:
        return MonthlyUsage(
            id=str(model.id),
            user_id=str(model.user_id),
            period_start=model.period_start,
            period_end=model.period_end,
            searches_used=model.searches_used,
            searches_limit=model.searches_limit,
        )

    async def set_limit(self, usage_id: str, searches_limit: int) -> Optional[MonthlyUsage]:
        """Change the quota of a period without touching searches_used."""
        model = await self.get_by_id(usage_id)
        if model is None:
            return None
        model = await self.update_fields(model, {
            "searches_limit": searches_limit,
            "updated_at": utc_now(),
        })
        return self._to_domain(model)
