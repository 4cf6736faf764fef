"""
Bonus Grant Domain Models

Additive credits layered on top of plan quotas, plus the pure rules that
award, consume and roll them over.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from app.infrastructure.exceptions import ValidationError


FEEDBACK_REWARD_REASON = "feedback_reward"
WAITLIST_REWARD_REASON = "waitlist_early_access"


class BonusType(str, Enum):
    """What a grant adds to the user's quota."""
    FIXED_SEARCHES = "fixed_searches"
    PERCENTAGE = "percentage"
    OTHER = "other"


class BonusDuration(str, Enum):
    """How long a grant lives."""
    ONCE = "once"
    MONTHLY = "monthly"
    PERMANENT = "permanent"


class BonusGrant(BaseModel):
    """A single bonus row. Deactivated when exhausted, never deleted."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    user_id: str
    bonus_type: BonusType
    bonus_value: float = 0
    bonus_duration: BonusDuration = BonusDuration.ONCE
    months_remaining: Optional[int] = None
    reason: Optional[str] = None
    is_active: bool = True
    awarded_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def remaining_searches(self) -> int:
        """Searches this grant can still pay for on its own. A ``once`` grant pays for one."""
        if not self.is_active or self.bonus_type != BonusType.FIXED_SEARCHES:
            return 0
        remaining = max(0, int(self.bonus_value))
        if self.bonus_duration == BonusDuration.ONCE:
            return min(1, remaining)
        return remaining


class AwardBonusRequest(BaseModel):
    """Request DTO for POST /admin/bonuses."""
    user_id: Optional[str] = Field(default=None, alias="userId")
    bonus_type: Optional[str] = Field(default=None, alias="bonusType")
    bonus_value: Optional[float] = Field(default=None, alias="bonusValue")
    bonus_duration: Optional[str] = Field(default=None, alias="bonusDuration")
    reason: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


def build_award(request: AwardBonusRequest, awarded_by: Optional[str]) -> BonusGrant:
    """
    Validate an admin award and turn it into a new grant.

    Duration defaults to ``once``. A ``monthly`` grant lasts as many
    billing periods as its value.
    """
    if not request.user_id or not request.bonus_type or request.bonus_value is None:
        raise ValidationError("Missing required fields: userId, bonusType, bonusValue")

    try:
        bonus_type = BonusType(request.bonus_type)
    except ValueError:
        raise ValidationError(f"Invalid bonus type: {request.bonus_type}", field="bonusType")

    try:
        duration = BonusDuration(request.bonus_duration or BonusDuration.ONCE.value)
    except ValueError:
        raise ValidationError(
            f"Invalid bonus duration: {request.bonus_duration}", field="bonusDuration"
        )

    if request.bonus_value < 0:
        raise ValidationError("bonusValue must not be negative", field="bonusValue")

    return BonusGrant(
        user_id=request.user_id,
        bonus_type=bonus_type,
        bonus_value=request.bonus_value,
        bonus_duration=duration,
        months_remaining=int(request.bonus_value) if duration == BonusDuration.MONTHLY else None,
        reason=request.reason,
        is_active=True,
        awarded_by=awarded_by,
    )


def roll_over(grant: BonusGrant) -> BonusGrant:
    """
    Apply one billing-period rollover to a grant.

    Monthly grants lose a month and deactivate at zero. One-off percentage
    grants only cover the period they were active in. Permanent grants and
    one-off fixed searches are consumed by use, not by time.
    """
    if not grant.is_active:
        return grant

    updated = grant.model_copy()
    if grant.bonus_duration == BonusDuration.MONTHLY:
        remaining = max(0, (grant.months_remaining or 0) - 1)
        updated.months_remaining = remaining
        if remaining == 0:
            updated.is_active = False
    elif grant.bonus_duration == BonusDuration.ONCE and grant.bonus_type == BonusType.PERCENTAGE:
        updated.is_active = False
    return updated


def after_consumption(grant: BonusGrant) -> BonusGrant:
    """State of a fixed-searches grant after one search was paid from it."""
    updated = grant.model_copy()
    updated.bonus_value = max(0, grant.bonus_value - 1)
    if updated.bonus_value <= 0 or grant.bonus_duration == BonusDuration.ONCE:
        updated.is_active = False
    return updated


def fixed_bonus_total(grants: list[BonusGrant]) -> int:
    return sum(g.remaining_searches for g in grants)


def percentage_bonus_total(grants: list[BonusGrant]) -> float:
    return sum(
        g.bonus_value for g in grants
        if g.is_active and g.bonus_type == BonusType.PERCENTAGE
    )


def percentage_bonus_amount(base_limit: int, grants: list[BonusGrant]) -> int:
    """Extra searches granted by active percentage bonuses, rounded down."""
    return math.floor(base_limit * percentage_bonus_total(grants) / 100)
