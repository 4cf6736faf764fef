"""
Bonus Grant Database Model
"""

from typing import Optional
from uuid import UUID

from sqlmodel import Field

from app.infrastructure.db.models.base import CreatedAtMixin, UUIDMixin


class UserBonus(UUIDMixin, CreatedAtMixin, table=True):
    """Additive quota grant. Rows are deactivated, never deleted."""

    __tablename__ = "user_bonuses"

    user_id: UUID = Field(index=True, nullable=False)
    bonus_type: str = Field(max_length=32)
    bonus_value: float = Field(default=0)
    bonus_duration: str = Field(default="once", max_length=16)
    months_remaining: Optional[int] = Field(default=None)
    reason: Optional[str] = Field(default=None, index=True)
    is_active: bool = Field(default=True, index=True)
    awarded_by: Optional[UUID] = Field(default=None)
