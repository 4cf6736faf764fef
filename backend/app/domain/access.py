"""
Access Decision

Pure evaluation of "may this user consume a metered search right now?"
from a subscription, the current usage row and the user's bonus grants.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel

from app.domain.bonus import (
    BonusGrant,
    fixed_bonus_total,
    percentage_bonus_amount,
)
from app.domain.subscription import (
    MonthlyUsage,
    Subscription,
    SubscriptionStatus,
    UNLIMITED,
    get_searches_limit,
)


class AccessMode(str, Enum):
    """What pays for the next search."""
    UNLIMITED = "unlimited"
    PLAN = "plan"
    BONUS = "bonus"
    DENIED = "denied"


class AccessDecision(BaseModel):
    """Result of an access evaluation with the numbers behind it."""
    granted: bool
    mode: AccessMode
    reason: str
    searches_used: int = 0
    plan_limit: int = 0
    percentage_bonus_searches: int = 0
    bonus_searches: int = 0

    @property
    def plan_ceiling(self) -> int:
        """Searches the plan (with percentage bonuses) pays for this period."""
        if self.plan_limit == UNLIMITED:
            return UNLIMITED
        return self.plan_limit + self.percentage_bonus_searches

    @property
    def searches_remaining(self) -> int:
        if self.mode == AccessMode.UNLIMITED:
            return UNLIMITED
        return max(0, self.plan_ceiling - self.searches_used) + self.bonus_searches


DENIED_NO_SUBSCRIPTION = "no_subscription"
DENIED_INACTIVE = "subscription_inactive"
DENIED_TRIAL_ENDED = "trial_ended"
DENIED_QUOTA = "quota_exhausted"
GRANTED_BONUS_ONLY = "bonus_only"


def _plan_standing(subscription: Optional[Subscription], now: datetime) -> Optional[str]:
    """None when the plan provisionally grants access, else the denial reason."""
    if subscription is None:
        return DENIED_NO_SUBSCRIPTION
    if subscription.status in (SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED):
        return DENIED_INACTIVE
    if subscription.status == SubscriptionStatus.TRIAL:
        if subscription.trial_end_date is None or subscription.trial_end_date <= now:
            return DENIED_TRIAL_ENDED
    return None


def evaluate_access(
    subscription: Optional[Subscription],
    usage: Optional[MonthlyUsage],
    bonuses: list[BonusGrant],
    now: datetime,
) -> AccessDecision:
    """
    Decide access for one user.

    1. An active subscription, a live trial or the free_unlimited plan
       grant provisionally; anything else denies provisionally.
    2. Provisionally denied users still get in on an active fixed_searches
       bonus with value left (bonus-only mode).
    3. Provisionally granted users need room under
       ``limit + floor(limit * pct / 100) + fixed bonus searches``.

    A missing usage row counts as nothing used against the full plan limit.
    """
    active = [b for b in bonuses if b.is_active]
    bonus_searches = fixed_bonus_total(active)

    denial = _plan_standing(subscription, now)
    if denial is not None:
        if bonus_searches > 0:
            return AccessDecision(
                granted=True,
                mode=AccessMode.BONUS,
                reason=GRANTED_BONUS_ONLY,
                bonus_searches=bonus_searches,
            )
        return AccessDecision(granted=False, mode=AccessMode.DENIED, reason=denial)

    if subscription.is_unlimited:
        return AccessDecision(
            granted=True,
            mode=AccessMode.UNLIMITED,
            reason="free_unlimited",
            searches_used=usage.searches_used if usage else 0,
            plan_limit=UNLIMITED,
            bonus_searches=bonus_searches,
        )

    if usage is not None:
        plan_limit = usage.searches_limit
        searches_used = usage.searches_used
    else:
        plan_limit = get_searches_limit(subscription.plan_id)
        searches_used = 0

    pct_searches = percentage_bonus_amount(plan_limit, active)
    ceiling = plan_limit + pct_searches + bonus_searches

    decision = AccessDecision(
        granted=searches_used < ceiling,
        mode=AccessMode.PLAN,
        reason="plan",
        searches_used=searches_used,
        plan_limit=plan_limit,
        percentage_bonus_searches=pct_searches,
        bonus_searches=bonus_searches,
    )
    if not decision.granted:
        decision.mode = AccessMode.DENIED
        decision.reason = DENIED_QUOTA
    elif searches_used >= plan_limit + pct_searches:
        decision.mode = AccessMode.BONUS
    return decision
