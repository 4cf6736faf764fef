"""
Subscription Domain Models

Enums, entities and plan configuration for the subscription bounded context.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class PlanId(str, Enum):
    """Purchasable plans plus the trial and the admin-granted unlimited plan."""
    TRIAL = "trial"
    CORE_MONTHLY = "core_monthly"
    CORE_ANNUAL = "core_annual"
    PRIME_MONTHLY = "prime_monthly"
    PRIME_ANNUAL = "prime_annual"
    FREE_UNLIMITED = "free_unlimited"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""
    TRIAL = "trial"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


UNLIMITED = -1

# Searches per billing period
PLAN_LIMITS: dict[PlanId, int] = {
    PlanId.TRIAL: 10,
    PlanId.CORE_MONTHLY: 73,
    PlanId.CORE_ANNUAL: 73,
    PlanId.PRIME_MONTHLY: 225,
    PlanId.PRIME_ANNUAL: 225,
    PlanId.FREE_UNLIMITED: UNLIMITED,
}

# Plan that an expired trial converts to
TRIAL_CONVERSION_PLAN = PlanId.CORE_MONTHLY

BILLING_PERIOD_DAYS = 30


def get_searches_limit(plan_id: PlanId) -> int:
    """Get the per-period search quota for a plan."""
    return PLAN_LIMITS.get(plan_id, 0)


def default_period(start: datetime) -> tuple[datetime, datetime]:
    """Billing period used when the payment provider reports none."""
    return start, start + timedelta(days=BILLING_PERIOD_DAYS)


def map_stripe_status(stripe_status: Optional[str]) -> SubscriptionStatus:
    """Map a Stripe subscription status onto ours."""
    if stripe_status == "active":
        return SubscriptionStatus.ACTIVE
    if stripe_status == "trialing":
        return SubscriptionStatus.TRIAL
    if stripe_status == "canceled":
        return SubscriptionStatus.CANCELLED
    return SubscriptionStatus.EXPIRED


# =============================================================================
# Domain Entities
# =============================================================================

class Subscription(BaseModel):
    """Per-user subscription record. Exactly one per user, never deleted."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    user_id: str
    plan_id: PlanId = PlanId.TRIAL
    status: SubscriptionStatus = SubscriptionStatus.TRIAL
    trial_start_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_unlimited(self) -> bool:
        return self.plan_id == PlanId.FREE_UNLIMITED

    def trial_has_ended(self, now: datetime) -> bool:
        return (
            self.status == SubscriptionStatus.TRIAL
            and self.trial_end_date is not None
            and self.trial_end_date < now
        )

    def trial_time_remaining(self, now: datetime) -> Optional[dict]:
        """Days/hours/minutes left in the trial, or None outside a live trial."""
        if self.status != SubscriptionStatus.TRIAL or self.trial_end_date is None:
            return None
        seconds = int((self.trial_end_date - now).total_seconds())
        if seconds <= 0:
            return None
        return {
            "days": seconds // 86400,
            "hours": (seconds % 86400) // 3600,
            "minutes": (seconds % 3600) // 60,
            "total_seconds": seconds,
        }


class MonthlyUsage(BaseModel):
    """Per-period search counter."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    user_id: str
    period_start: datetime
    period_end: datetime
    searches_used: int = Field(default=0, ge=0)
    searches_limit: int = 0


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CheckoutRequest(BaseModel):
    """Request DTO for creating a checkout session."""
    plan_id: PlanId = Field(default=PlanId.CORE_MONTHLY, alias="planId")
    success_url: Optional[str] = Field(default=None, alias="successUrl")
    cancel_url: Optional[str] = Field(default=None, alias="cancelUrl")

    model_config = ConfigDict(populate_by_name=True)


class ChangePlanRequest(BaseModel):
    """Request DTO for switching the Stripe price of a live subscription."""
    new_price_id: Optional[str] = Field(default=None, alias="newPriceId")

    model_config = ConfigDict(populate_by_name=True)


class CheckoutResponse(BaseModel):
    """Response DTO for checkout session creation."""
    checkout_url: str
    session_id: str


class UsageSummary(BaseModel):
    """Response DTO for GET /subscription/usage."""
    has_subscription: bool
    plan_id: Optional[PlanId] = None
    status: Optional[SubscriptionStatus] = None
    searches_used: int = 0
    searches_limit: int = 0
    searches_remaining: int = 0
    bonus_searches_remaining: int = 0
    percentage_bonus: float = 0
    trial_time_remaining: Optional[dict] = None
    current_period_end: Optional[datetime] = None
    can_search: bool = False


class SweepResult(BaseModel):
    """Summary returned by a trial conversion sweep."""
    converted: int = 0
    expired: int = 0
    total: int = 0
    errors: list[dict] = Field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Converted {self.converted} of {self.total} trials"


class TrialCheckResult(BaseModel):
    """Outcome of the per-user trial expiry check."""
    trial_expired: bool
    converted: bool = False
    message: str
