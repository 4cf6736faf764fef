"""
Marketing Repositories

Waitlist, unsubscribes and coupons.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.models.marketing import Coupon, Unsubscribe, WaitlistEntry
from app.infrastructure.db.repositories.base_repository import BaseRepository, as_uuid
from app.infrastructure.exceptions import DuplicateError


class WaitlistRepository(BaseRepository[WaitlistEntry]):
    """Waitlist signups."""

    def __init__(self, session: AsyncSession):
        super().__init__(WaitlistEntry, session)

    async def get_by_email(self, email: str) -> Optional[WaitlistEntry]:
        stmt = select(WaitlistEntry).where(func.lower(WaitlistEntry.email) == email.strip().lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_unsubscribe_token(self, token: str) -> Optional[WaitlistEntry]:
        stmt = select(WaitlistEntry).where(WaitlistEntry.unsubscribe_token == as_uuid(token))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self) -> list[WaitlistEntry]:
        """All entries, newest first."""
        result = await self.session.execute(
            select(WaitlistEntry).order_by(WaitlistEntry.created_at.desc())
        )
        return list(result.scalars().all())

    async def create(self, email: str, source: str) -> WaitlistEntry:
        """
        Add an address to the waitlist.

        Raises:
            DuplicateError: If the address is already on the list
        """
        entry = WaitlistEntry(email=email.strip().lower(), source=source)
        try:
            async with self.savepoint():
                return await self.add(entry)
        except IntegrityError as e:
            raise DuplicateError(
                "Email already exists on waitlist",
                operation="insert",
                table="waitlist",
                original_error=e,
            )

    async def mark_bonus_granted(
        self,
        entry: WaitlistEntry,
        user_id: str,
        now: datetime,
    ) -> WaitlistEntry:
        return await self.update_fields(entry, {
            "bonus_granted_at": now,
            "bonus_granted_user_id": as_uuid(user_id),
        })

    async def remove(self, entry: WaitlistEntry) -> None:
        await self.session.delete(entry)
        await self.session.flush()


class UnsubscribeRepository(BaseRepository[Unsubscribe]):
    """Opt-out records consulted before every campaign send."""

    def __init__(self, session: AsyncSession):
        super().__init__(Unsubscribe, session)

    async def record(
        self,
        email: str,
        token: Optional[str],
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> Unsubscribe:
        return await self.add(Unsubscribe(
            email=email,
            token=as_uuid(token) if token else None,
            ip_address=ip_address,
            user_agent=user_agent,
        ))

    async def email_set(self) -> set[str]:
        """Lower-cased unsubscribed addresses."""
        result = await self.session.execute(select(Unsubscribe.email))
        return {email.lower() for email in result.scalars().all() if email}


class CouponRepository(BaseRepository[Coupon]):
    """Discount codes."""

    def __init__(self, session: AsyncSession):
        super().__init__(Coupon, session)

    async def create(self, coupon: Coupon) -> Coupon:
        """
        Insert a coupon.

        Raises:
            DuplicateError: If the code already exists
        """
        try:
            async with self.savepoint():
                return await self.add(coupon)
        except IntegrityError as e:
            raise DuplicateError(
                f"Coupon code {coupon.code} already exists",
                operation="insert",
                table="coupons",
                original_error=e,
            )
