"""
Analysis Repository

Read-side queries over user_analyses and profiles for the cache lookup
and the admin dashboard.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.models.account import Profile, UserAnalysis
from app.infrastructure.db.repositories.base_repository import BaseRepository


class AnalysisRepository(BaseRepository[UserAnalysis]):
    """Queries over completed analyses."""

    def __init__(self, session: AsyncSession):
        super().__init__(UserAnalysis, session)

    async def get_recent_for_app(self, app_id: str, since: datetime) -> Optional[UserAnalysis]:
        """Newest analysis of ``app_id`` by any user created at or after ``since``."""
        stmt = (
            select(UserAnalysis)
            .where(UserAnalysis.app_id == app_id, UserAnalysis.created_at >= since)
            .order_by(UserAnalysis.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_active_users(self, since: datetime) -> int:
        stmt = select(func.count(func.distinct(UserAnalysis.user_id))).where(
            UserAnalysis.created_at >= since
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def total_api_cost(self) -> float:
        result = await self.session.execute(select(func.coalesce(func.sum(UserAnalysis.api_cost), 0)))
        return float(result.scalar_one())

    async def recent(self, limit: int = 10) -> list[UserAnalysis]:
        return await self.get_all(limit=limit)

    async def activity_by_user(self) -> dict[str, tuple[int, Optional[datetime]]]:
        """Analysis count and last analysis time per user id."""
        stmt = select(
            UserAnalysis.user_id,
            func.count(),
            func.max(UserAnalysis.created_at),
        ).group_by(UserAnalysis.user_id)
        result = await self.session.execute(stmt)
        return {str(user_id): (count, last) for user_id, count, last in result.all()}


class ProfileRepository(BaseRepository[Profile]):
    """Public profiles."""

    def __init__(self, session: AsyncSession):
        super().__init__(Profile, session)

    async def recent(self, limit: int = 10) -> list[Profile]:
        stmt = select(Profile).order_by(Profile.created_at.desc().nulls_last()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def by_id(self) -> dict[str, Profile]:
        result = await self.session.execute(select(Profile))
        return {str(p.id): p for p in result.scalars().all()}
