"""
Subscription Services

Orchestration over the subscription, usage and bonus repositories:

- BonusService: admin awards, feedback rewards, waitlist perk, rollover
- AccessGate: "may this user run a metered search now?"
- UsageLedger: consume one search, usage summary
- TrialLifecycleController: convert or expire elapsed trials

Every service receives its repositories (and the Stripe client where
needed) in the constructor; nothing is shared across requests.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from app.domain.access import (
    AccessDecision,
    AccessMode,
    GRANTED_BONUS_ONLY,
    evaluate_access,
)
from app.domain.bonus import (
    AwardBonusRequest,
    BonusDuration,
    BonusGrant,
    BonusType,
    FEEDBACK_REWARD_REASON,
    WAITLIST_REWARD_REASON,
    build_award,
    fixed_bonus_total,
    percentage_bonus_amount,
    percentage_bonus_total,
    roll_over,
)
from app.domain.subscription import (
    MonthlyUsage,
    Subscription,
    SubscriptionStatus,
    SweepResult,
    TRIAL_CONVERSION_PLAN,
    TrialCheckResult,
    UsageSummary,
    default_period,
    get_searches_limit,
)
from app.infrastructure.db.repositories import (
    BonusRepository,
    SubscriptionRepository,
    UsageRepository,
    WaitlistRepository,
)
from app.infrastructure.exceptions import (
    AppIdeasFinderError,
    AuthorizationError,
    ConfigurationError,
    PaymentServiceError,
)
from app.infrastructure.payments.stripe_service import StripeService, subscription_period


logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Bonus Grants
# =============================================================================

class BonusService:
    """Creates and maintains bonus grants."""

    def __init__(
        self,
        bonuses: BonusRepository,
        waitlist: Optional[WaitlistRepository] = None,
        waitlist_bonus_searches: int = 75,
    ):
        self._bonuses = bonuses
        self._waitlist = waitlist
        self._waitlist_bonus_searches = waitlist_bonus_searches

    async def award(self, request: AwardBonusRequest, awarded_by: Optional[str]) -> BonusGrant:
        """
        Admin award of a new grant.

        Raises:
            ValidationError: missing fields, unknown type or duration
        """
        grant = await self._bonuses.create(build_award(request, awarded_by))
        logger.info(
            f"Awarded {grant.bonus_type.value} bonus ({grant.bonus_value}, "
            f"{grant.bonus_duration.value}) to user {grant.user_id} by {awarded_by}"
        )
        return grant

    async def grant_feedback_reward(self, user_id: str) -> BonusGrant:
        """
        One extra search per feedback submission.

        A user holds at most one active feedback grant; later submissions
        add to it instead of creating new rows.
        """
        existing = await self._bonuses.find_active_by_reason(
            user_id, FEEDBACK_REWARD_REASON, BonusType.FIXED_SEARCHES
        )
        if existing is not None:
            updated = await self._bonuses.increment_value(existing.id, 1)
            if updated is not None:
                logger.info(f"Feedback reward for user {user_id} raised to {updated.bonus_value}")
                return updated

        grant = await self._bonuses.create(BonusGrant(
            user_id=user_id,
            bonus_type=BonusType.FIXED_SEARCHES,
            bonus_value=1,
            bonus_duration=BonusDuration.PERMANENT,
            reason=FEEDBACK_REWARD_REASON,
            is_active=True,
        ))
        logger.info(f"Created feedback reward bonus for user {user_id}")
        return grant

    async def roll_over_period(self, user_id: str) -> list[BonusGrant]:
        """Advance every active grant of a user by one billing period."""
        rolled = []
        for grant in await self._bonuses.list_active(user_id):
            updated = roll_over(grant)
            if updated != grant:
                updated = await self._bonuses.save(updated)
                if not updated.is_active:
                    logger.info(f"Bonus {grant.id} of user {user_id} expired at rollover")
            rolled.append(updated)
        return rolled

    async def ensure_waitlist_bonus(
        self,
        user_id: str,
        email: Optional[str],
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Grant the waitlist early-access perk if this user is owed it.

        A waitlist entry pays out once, to the first account that claims it.

        Returns:
            True if the user holds an active waitlist grant afterwards
        """
        current = await self._bonuses.find_active_by_reason(
            user_id, WAITLIST_REWARD_REASON, BonusType.FIXED_SEARCHES
        )
        if current is not None and current.bonus_value > 0:
            return True

        if not email or self._waitlist is None:
            return False

        entry = await self._waitlist.get_by_email(email)
        if entry is None:
            return False

        if entry.bonus_granted_at is not None:
            if str(entry.bonus_granted_user_id) != user_id:
                logger.info(f"Waitlist bonus for {entry.id} already granted to another user")
            return False

        await self._bonuses.create(BonusGrant(
            user_id=user_id,
            bonus_type=BonusType.FIXED_SEARCHES,
            bonus_value=self._waitlist_bonus_searches,
            bonus_duration=BonusDuration.PERMANENT,
            reason=WAITLIST_REWARD_REASON,
            is_active=True,
        ))
        await self._waitlist.mark_bonus_granted(entry, user_id, now or _now())
        logger.info(
            f"Granted {self._waitlist_bonus_searches} waitlist bonus searches to user {user_id}"
        )
        return True


# =============================================================================
# Access Gate
# =============================================================================

class AccessGate:
    """
    Combines subscription, usage and bonuses into one access decision.

    ``evaluate`` propagates lookup errors; ``has_access`` turns them into
    a denial.
    """

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        usage: UsageRepository,
        bonuses: BonusRepository,
        bonus_service: Optional[BonusService] = None,
    ):
        self._subscriptions = subscriptions
        self._usage = usage
        self._bonuses = bonuses
        self._bonus_service = bonus_service

    async def load(
        self,
        user_id: str,
        now: datetime,
    ) -> tuple[Optional[Subscription], Optional[MonthlyUsage], list[BonusGrant]]:
        subscription = await self._subscriptions.get_by_user_id(user_id)
        usage = await self._usage.get_current(user_id, now)
        bonuses = await self._bonuses.list_active(user_id)
        return subscription, usage, bonuses

    async def evaluate(
        self,
        user_id: str,
        email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AccessDecision:
        now = now or _now()
        decision = evaluate_access(*await self.load(user_id, now), now)

        if not decision.granted and email and self._bonus_service is not None:
            if await self._bonus_service.ensure_waitlist_bonus(user_id, email, now):
                decision = evaluate_access(*await self.load(user_id, now), now)

        return decision

    async def has_access(
        self,
        user_id: str,
        email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Boolean access check that denies on any lookup failure."""
        try:
            decision = await self.evaluate(user_id, email, now)
        except (SQLAlchemyError, AppIdeasFinderError) as e:
            logger.error(f"Access check failed for user {user_id}, denying: {e}")
            return False

        if not decision.granted:
            logger.info(f"Access denied for user {user_id}: {decision.reason}")
        return decision.granted


# =============================================================================
# Usage Ledger
# =============================================================================

class UsageLedger:
    """Per-period search accounting."""

    def __init__(
        self,
        gate: AccessGate,
        subscriptions: SubscriptionRepository,
        usage: UsageRepository,
        bonuses: BonusRepository,
    ):
        self._gate = gate
        self._subscriptions = subscriptions
        self._usage = usage
        self._bonuses = bonuses

    async def ensure_period(self, subscription: Subscription, now: datetime) -> MonthlyUsage:
        """The current usage row, opened on the subscription's billing period if missing."""
        usage = await self._usage.get_current(subscription.user_id, now)
        if usage is not None:
            return usage

        start, end = subscription.current_period_start, subscription.current_period_end
        if start is None or end is None or not (start <= now <= end):
            start, end = default_period(now)
        return await self._usage.start_period(
            subscription.user_id, start, end, get_searches_limit(subscription.plan_id)
        )

    async def consume(
        self,
        user_id: str,
        email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """
        Spend one search.

        The plan quota (with percentage bonuses) is used first through a
        conditional increment; past it, one unit is taken from the oldest
        active fixed_searches grant.

        Raises:
            AuthorizationError: the access gate denies, or every source
                ran out between the check and the write
        """
        now = now or _now()
        decision = await self._gate.evaluate(user_id, email, now)
        if not decision.granted:
            raise AuthorizationError(
                "No searches remaining. Upgrade your plan to continue.",
                permission=decision.reason,
            )

        if decision.mode == AccessMode.UNLIMITED:
            return {"success": True, "unlimited": True}

        if decision.reason != GRANTED_BONUS_ONLY:
            subscription = await self._subscriptions.get_by_user_id(user_id)
            usage = await self.ensure_period(subscription, now)
            bonuses = await self._bonuses.list_active(user_id)
            ceiling = usage.searches_limit + percentage_bonus_amount(usage.searches_limit, bonuses)

            used = await self._usage.increment_within(usage.id, ceiling)
            if used is not None:
                return {
                    "success": True,
                    "searchesUsed": used,
                    "searchesLimit": usage.searches_limit,
                }

        for grant in await self._bonuses.list_active(user_id):
            if grant.bonus_type != BonusType.FIXED_SEARCHES:
                continue
            taken = await self._bonuses.take_one(grant.id)
            if taken is not None:
                logger.info(
                    f"User {user_id} used a bonus search from {grant.id} "
                    f"({int(taken.bonus_value)} left)"
                )
                return {
                    "success": True,
                    "bonusUsed": True,
                    "bonusSearchesRemaining": fixed_bonus_total(
                        await self._bonuses.list_active(user_id)
                    ),
                }

        raise AuthorizationError(
            "No searches remaining. Upgrade your plan to continue.",
            permission="quota_exhausted",
        )

    async def summary(
        self,
        user_id: str,
        email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UsageSummary:
        """Current quota position for the usage endpoint."""
        now = now or _now()
        decision = await self._gate.evaluate(user_id, email, now)
        subscription = await self._subscriptions.get_by_user_id(user_id)
        bonuses = await self._bonuses.list_active(user_id)

        if subscription is None:
            return UsageSummary(
                has_subscription=False,
                bonus_searches_remaining=decision.bonus_searches,
                searches_remaining=decision.bonus_searches,
                can_search=decision.granted,
            )

        return UsageSummary(
            has_subscription=True,
            plan_id=subscription.plan_id,
            status=subscription.status,
            searches_used=decision.searches_used,
            searches_limit=decision.plan_limit,
            searches_remaining=decision.searches_remaining if decision.granted else 0,
            bonus_searches_remaining=decision.bonus_searches,
            percentage_bonus=percentage_bonus_total(bonuses),
            trial_time_remaining=subscription.trial_time_remaining(now),
            current_period_end=subscription.current_period_end,
            can_search=decision.granted,
        )


# =============================================================================
# Trial Lifecycle
# =============================================================================

class TrialLifecycleController:
    """
    Moves elapsed trials to ``active`` (paid core_monthly) or ``expired``.

    Only rows with ``status = trial`` are touched, so repeated runs are
    no-ops for rows already handled.
    """

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        usage: UsageRepository,
        bonus_service: BonusService,
        stripe_service: StripeService,
    ):
        self._subscriptions = subscriptions
        self._usage = usage
        self._bonus_service = bonus_service
        self._stripe = stripe_service

    async def _convert(self, subscription: Subscription, now: datetime) -> tuple[bool, Optional[str]]:
        """
        Convert one elapsed trial.

        Returns:
            (converted, error). On failure the row is marked expired and
            its usage left alone.
        """
        user_id = subscription.user_id
        error: Optional[str] = None
        stripe_subscription = None

        if not subscription.stripe_customer_id:
            error = "No Stripe customer ID"
        elif not self._stripe.is_configured:
            error = "Stripe not configured"
        else:
            try:
                stripe_subscription = await self._stripe.create_subscription(
                    subscription.stripe_customer_id,
                    self._stripe.price_for_plan(TRIAL_CONVERSION_PLAN),
                    metadata={
                        "user_id": user_id,
                        "plan_type": TRIAL_CONVERSION_PLAN.value,
                        "converted_from_trial": "true",
                    },
                    idempotency_key=f"trial-convert-{user_id}",
                )
            except (PaymentServiceError, ConfigurationError) as e:
                error = e.message

        if stripe_subscription is None:
            await self._subscriptions.save(
                subscription.model_copy(update={"status": SubscriptionStatus.EXPIRED})
            )
            logger.warning(f"Trial for user {user_id} expired without conversion: {error}")
            return False, error

        period_start, period_end = subscription_period(stripe_subscription)
        if period_start is None or period_end is None:
            period_start, period_end = default_period(now)

        await self._subscriptions.save(subscription.model_copy(update={
            "plan_id": TRIAL_CONVERSION_PLAN,
            "status": SubscriptionStatus.ACTIVE,
            "stripe_subscription_id": stripe_subscription.id,
            "current_period_start": period_start,
            "current_period_end": period_end,
        }))
        await self._usage.start_period(
            user_id, period_start, period_end, get_searches_limit(TRIAL_CONVERSION_PLAN)
        )
        await self._bonus_service.roll_over_period(user_id)
        logger.info(f"Converted trial for user {user_id} to {TRIAL_CONVERSION_PLAN.value}")
        return True, None

    async def check_user(self, user_id: str, now: Optional[datetime] = None) -> TrialCheckResult:
        """Per-user check, run when a user loads the app."""
        now = now or _now()
        subscription = await self._subscriptions.get_by_user_id(user_id)
        if subscription is None or not subscription.trial_has_ended(now):
            return TrialCheckResult(trial_expired=False, message="No expired trial")

        converted, error = await self._convert(subscription, now)
        if converted:
            return TrialCheckResult(
                trial_expired=True,
                converted=True,
                message="Trial expired and converted to Core Monthly",
            )
        return TrialCheckResult(
            trial_expired=True,
            converted=False,
            message=f"Trial expired: {error}",
        )

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Batch conversion of every elapsed trial.

        Each row runs in its own savepoint; a failing row is rolled back,
        recorded in ``errors`` and the sweep moves on.
        """
        now = now or _now()
        trials = await self._subscriptions.list_expired_trials(now)
        result = SweepResult(total=len(trials))
        logger.info(f"Trial sweep found {len(trials)} expired trials")

        for subscription in trials:
            try:
                async with self._subscriptions.savepoint():
                    converted, error = await self._convert(subscription, now)
            except Exception as e:
                logger.exception(f"Trial sweep failed for user {subscription.user_id}")
                result.errors.append({"userId": subscription.user_id, "error": str(e)})
                continue

            if converted:
                result.converted += 1
            else:
                result.expired += 1
                result.errors.append({"userId": subscription.user_id, "error": error})

        logger.info(f"Trial sweep done: {result.message}, {len(result.errors)} errors")
        return result
