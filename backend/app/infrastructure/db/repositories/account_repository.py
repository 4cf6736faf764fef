"""
Account Repositories

Admins, feedback and account deletion requests.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.admin import AdminRole, parse_role
from app.infrastructure.db.models.account import (
    AccountDeletionRequest,
    Admin,
    UserFeedback,
)
from app.infrastructure.db.repositories.base_repository import BaseRepository, as_uuid


class AdminRepository(BaseRepository[Admin]):
    """Role lookups for the admin guard."""

    def __init__(self, session: AsyncSession):
        super().__init__(Admin, session)

    async def get_role(self, user_id: str) -> Optional[AdminRole]:
        """
        Get the admin role for a user.

        Returns:
            The role, or None for non-admins and unknown role strings
        """
        stmt = select(Admin.role).where(Admin.user_id == as_uuid(user_id))
        result = await self.session.execute(stmt)
        return parse_role(result.scalar_one_or_none())


class FeedbackRepository(BaseRepository[UserFeedback]):
    """Feedback messages and their moderation state."""

    def __init__(self, session: AsyncSession):
        super().__init__(UserFeedback, session)

    async def list_filtered(
        self,
        category: Optional[str] = None,
        archived: Optional[bool] = None,
        limit: int = 200,
    ) -> list[UserFeedback]:
        stmt = select(UserFeedback)
        if category:
            stmt = stmt.where(UserFeedback.category == category)
        if archived is not None:
            stmt = stmt.where(UserFeedback.archived.is_(archived))
        stmt = stmt.order_by(UserFeedback.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class DeletionRequestRepository(BaseRepository[AccountDeletionRequest]):
    """Account deletion queue."""

    def __init__(self, session: AsyncSession):
        super().__init__(AccountDeletionRequest, session)

    async def get_latest_for_user(self, user_id: str) -> Optional[AccountDeletionRequest]:
        stmt = (
            select(AccountDeletionRequest)
            .where(AccountDeletionRequest.user_id == as_uuid(user_id))
            .order_by(AccountDeletionRequest.requested_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_pending_for_user(self, user_id: str) -> Optional[AccountDeletionRequest]:
        stmt = (
            select(AccountDeletionRequest)
            .where(
                AccountDeletionRequest.user_id == as_uuid(user_id),
                AccountDeletionRequest.status == "pending",
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_status(self, status: Optional[str] = None) -> list[AccountDeletionRequest]:
        stmt = select(AccountDeletionRequest)
        if status:
            stmt = stmt.where(AccountDeletionRequest.status == status)
        stmt = stmt.order_by(AccountDeletionRequest.requested_at.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def status_counts(self) -> dict[str, int]:
        stmt = select(AccountDeletionRequest.status, func.count()).group_by(
            AccountDeletionRequest.status
        )
        result = await self.session.execute(stmt)
        return {status: count for status, count in result.all()}

    async def process(
        self,
        request: AccountDeletionRequest,
        status: str,
        admin_note: Optional[str],
        processed_by: str,
        processed_by_email: Optional[str],
        now: datetime,
    ) -> AccountDeletionRequest:
        """Record an admin decision; moving back to pending clears the audit fields."""
        decided = status != "pending"
        return await self.update_fields(request, {
            "status": status,
            "admin_note": admin_note,
            "processed_at": now if decided else None,
            "processed_by": as_uuid(processed_by) if decided else None,
            "processed_by_email": processed_by_email if decided else None,
        })
