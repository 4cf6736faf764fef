"""
Webhook Event Repository

DB-backed idempotency for Stripe webhooks (survives restarts).
"""

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.models.webhook_event import ProcessedWebhookEvent
from app.infrastructure.db.repositories.base_repository import BaseRepository


class WebhookEventRepository(BaseRepository[ProcessedWebhookEvent]):
    """Processed Stripe event ids."""

    def __init__(self, session: AsyncSession):
        super().__init__(ProcessedWebhookEvent, session)

    async def is_processed(self, event_id: str) -> bool:
        result = await self.session.execute(
            select(ProcessedWebhookEvent.event_id).where(
                ProcessedWebhookEvent.event_id == event_id
            )
        )
        return result.scalar_one_or_none() is not None

    async def mark_processed(self, event_id: str, event_type: str) -> None:
        stmt = pg_insert(ProcessedWebhookEvent).values(
            event_id=event_id, event_type=event_type
        ).on_conflict_do_nothing(index_elements=["event_id"])
        await self.session.execute(stmt)
