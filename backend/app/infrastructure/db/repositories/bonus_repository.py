"""
Bonus Repository

Data access for user_bonuses. Grants are deactivated, never deleted.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.bonus import BonusDuration, BonusGrant, BonusType
from app.infrastructure.db.models.bonus import UserBonus
from app.infrastructure.db.repositories.base_repository import BaseRepository, as_uuid


class BonusRepository(BaseRepository[UserBonus]):
    """Repository for bonus grants."""

    def __init__(self, session: AsyncSession):
        super().__init__(UserBonus, session)

    async def list_active(self, user_id: str) -> list[BonusGrant]:
        """Active grants for a user, oldest first (consumed in that order)."""
        stmt = (
            select(UserBonus)
            .where(UserBonus.user_id == as_uuid(user_id), UserBonus.is_active.is_(True))
            .order_by(UserBonus.created_at)
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(m) for m in result.scalars().all()]

    async def find_active_by_reason(
        self,
        user_id: str,
        reason: str,
        bonus_type: BonusType,
    ) -> Optional[BonusGrant]:
        stmt = (
            select(UserBonus)
            .where(
                UserBonus.user_id == as_uuid(user_id),
                UserBonus.reason == reason,
                UserBonus.bonus_type == bonus_type.value,
                UserBonus.is_active.is_(True),
            )
            .order_by(UserBonus.created_at)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def create(self, grant: BonusGrant) -> BonusGrant:
        model = UserBonus(
            user_id=as_uuid(grant.user_id),
            bonus_type=grant.bonus_type.value,
            bonus_value=grant.bonus_value,
            bonus_duration=grant.bonus_duration.value,
            months_remaining=grant.months_remaining,
            reason=grant.reason,
            is_active=grant.is_active,
            awarded_by=as_uuid(grant.awarded_by) if grant.awarded_by else None,
        )
        return self._to_domain(await self.add(model))

    async def increment_value(self, bonus_id: str, amount: float = 1) -> Optional[BonusGrant]:
        """Add ``amount`` to an active grant in a single UPDATE."""
        stmt = (
            update(UserBonus)
            .where(UserBonus.id == as_uuid(bonus_id), UserBonus.is_active.is_(True))
            .values(bonus_value=UserBonus.bonus_value + amount)
            .returning(UserBonus)
        )
        result = await self._session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def take_one(self, bonus_id: str) -> Optional[BonusGrant]:
        """
        Spend one search from an active fixed_searches grant.

        The value check and decrement are one conditional UPDATE; the grant
        is deactivated in the same statement when it runs out or is a
        one-off.

        Returns:
            The updated grant, or None if it had nothing left
        """
        remaining = UserBonus.bonus_value - 1
        stmt = (
            update(UserBonus)
            .where(
                UserBonus.id == as_uuid(bonus_id),
                UserBonus.is_active.is_(True),
                UserBonus.bonus_type == BonusType.FIXED_SEARCHES.value,
                UserBonus.bonus_value >= 1,
            )
            .values(
                bonus_value=remaining,
                is_active=(remaining > 0) & (UserBonus.bonus_duration != BonusDuration.ONCE.value),
            )
            .returning(UserBonus)
        )
        result = await self._session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def save(self, grant: BonusGrant) -> BonusGrant:
        """Persist value, months_remaining and is_active of an existing grant."""
        model = await self.get_by_id(grant.id)
        if model is None:
            return await self.create(grant)
        model = await self.update_fields(model, {
            "bonus_value": grant.bonus_value,
            "months_remaining": grant.months_remaining,
            "is_active": grant.is_active,
        })
        return self._to_domain(model)

    @staticmethod
    def _to_domain(model: UserBonus) -> BonusGrant:
        return BonusGrant(
            id=str(model.id),
            user_id=str(model.user_id),
            bonus_type=BonusType(model.bonus_type),
            bonus_value=model.bonus_value,
            bonus_duration=BonusDuration(model.bonus_duration),
            months_remaining=model.months_remaining,
            reason=model.reason,
            is_active=model.is_active,
            awarded_by=str(model.awarded_by) if model.awarded_by else None,
            created_at=model.created_at,
        )
