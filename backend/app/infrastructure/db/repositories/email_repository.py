"""
Email Repositories

Campaigns, recipients (with open/click tracking), templates and settings.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.models.base import utc_now
from app.infrastructure.db.models.email import (
    EmailCampaign,
    EmailRecipient,
    EmailSetting,
    EmailTemplate,
)
from app.infrastructure.db.repositories.base_repository import BaseRepository, as_uuid


REPLY_TO_SETTING = "reply_to_email"


class EmailCampaignRepository(BaseRepository[EmailCampaign]):
    """Campaign records and their delivery statistics."""

    def __init__(self, session: AsyncSession):
        super().__init__(EmailCampaign, session)

    async def recipient_stats(self, campaign_id) -> dict[str, int]:
        """Total, sent, failed and opened counts for one campaign."""
        stmt = select(
            func.count(),
            func.count().filter(EmailRecipient.sent_status == "sent"),
            func.count().filter(EmailRecipient.sent_status == "failed"),
            func.count().filter(EmailRecipient.opened_at.is_not(None)),
            func.count().filter(EmailRecipient.clicked_at.is_not(None)),
        ).where(EmailRecipient.campaign_id == as_uuid(campaign_id))
        total, sent, failed, opened, clicked = (await self.session.execute(stmt)).one()
        return {
            "total": total,
            "sent": sent,
            "failed": failed,
            "opened": opened,
            "clicked": clicked,
        }

    async def finish(self, campaign: EmailCampaign, sent: int, failed: int, now: datetime) -> EmailCampaign:
        """Close a send: all failed means failed, any success means sent."""
        if sent > 0 and failed < campaign.total_recipients:
            status = "sent"
        else:
            status = "failed"
        return await self.update_fields(campaign, {
            "status": status,
            "sent_at": now if sent > 0 else None,
            "total_sent": sent,
            "total_failed": failed,
        })


class EmailRecipientRepository(BaseRepository[EmailRecipient]):
    """Per-recipient delivery rows keyed by an opaque tracking token."""

    def __init__(self, session: AsyncSession):
        super().__init__(EmailRecipient, session)

    async def create_batch(self, campaign_id, recipients: list[tuple[str, Optional[str]]]) -> list[EmailRecipient]:
        """Insert pending rows for ``(email, user_id)`` pairs."""
        rows = [
            EmailRecipient(
                campaign_id=as_uuid(campaign_id),
                email=email,
                user_id=as_uuid(user_id) if user_id else None,
            )
            for email, user_id in recipients
        ]
        self.session.add_all(rows)
        await self.session.flush()
        return rows

    async def mark_sent(self, recipient: EmailRecipient, now: datetime) -> None:
        await self.update_fields(recipient, {"sent_status": "sent", "sent_at": now})

    async def mark_failed(self, recipient: EmailRecipient, error_message: str) -> None:
        await self.update_fields(recipient, {"sent_status": "failed", "error_message": error_message})

    async def record_open(self, token: str) -> bool:
        """Count an open; the first one also stamps opened_at."""
        stmt = (
            update(EmailRecipient)
            .where(EmailRecipient.tracking_token == as_uuid(token))
            .values(
                opened_count=EmailRecipient.opened_count + 1,
                opened_at=func.coalesce(EmailRecipient.opened_at, utc_now()),
            )
            .returning(EmailRecipient.id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def record_click(self, token: str) -> bool:
        """Count a click; the first one also stamps clicked_at."""
        now = utc_now()
        stmt = (
            update(EmailRecipient)
            .where(EmailRecipient.tracking_token == as_uuid(token))
            .values(
                clicked_count=EmailRecipient.clicked_count + 1,
                clicked_at=func.coalesce(EmailRecipient.clicked_at, now),
                opened_count=case(
                    (EmailRecipient.opened_at.is_(None), EmailRecipient.opened_count + 1),
                    else_=EmailRecipient.opened_count,
                ),
                opened_at=func.coalesce(EmailRecipient.opened_at, now),
            )
            .returning(EmailRecipient.id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None


class EmailTemplateRepository(BaseRepository[EmailTemplate]):
    """Reusable campaign bodies."""

    def __init__(self, session: AsyncSession):
        super().__init__(EmailTemplate, session)

    async def list_recent(self) -> list[EmailTemplate]:
        """Most recently edited first."""
        result = await self.session.execute(
            select(EmailTemplate).order_by(EmailTemplate.updated_at.desc())
        )
        return list(result.scalars().all())


class EmailSettingRepository(BaseRepository[EmailSetting]):
    """Key/value email settings."""

    def __init__(self, session: AsyncSession):
        super().__init__(EmailSetting, session)

    async def as_dict(self) -> dict[str, str]:
        result = await self.session.execute(
            select(EmailSetting.setting_key, EmailSetting.setting_value)
        )
        return {key: value for key, value in result.all()}

    async def get_value(self, key: str) -> Optional[str]:
        result = await self.session.execute(
            select(EmailSetting.setting_value).where(EmailSetting.setting_key == key)
        )
        return result.scalar_one_or_none()

    async def set_value(self, key: str, value: str, updated_by: Optional[str]) -> EmailSetting:
        now = utc_now()
        stmt = pg_insert(EmailSetting).values(
            id=uuid4(),
            setting_key=key,
            setting_value=value,
            updated_by=as_uuid(updated_by) if updated_by else None,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["setting_key"],
            set_={
                "setting_value": stmt.excluded.setting_value,
                "updated_by": stmt.excluded.updated_by,
                "updated_at": now,
            },
        ).returning(EmailSetting)
        result = await self.session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        return result.scalar_one()
