"""
Stripe Webhook Handler

Handles Stripe webhook events for subscription lifecycle management.
Implements idempotent event processing backed by the database (survives restarts).

Critical Events:
- checkout.session.completed: Start a paid trial or activate a subscription
- customer.subscription.created/updated: Sync plan, status and period
- customer.subscription.deleted: Mark cancelled
- invoice.payment_succeeded: Roll the billing period over
- invoice.payment_failed: Mark expired
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request

from app.api.dependencies import (
    BonusServiceDep,
    SubscriptionRepoDep,
    UsageRepoDep,
    WebhookEventRepoDep,
)
from app.config.settings import Settings, get_settings
from app.domain.services import BonusService
from app.domain.subscription import (
    PlanId,
    Subscription,
    SubscriptionStatus,
    get_searches_limit,
    map_stripe_status,
)
from app.infrastructure.auth.supabase_admin import SupabaseAdminService, get_supabase_admin
from app.infrastructure.db.repositories import SubscriptionRepository, UsageRepository
from app.infrastructure.exceptions import PaymentServiceError, ValidationError
from app.infrastructure.payments.stripe_service import (
    StripeService,
    get_stripe_service,
    subscription_period,
    subscription_price_id,
)


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Webhook Endpoint
# =============================================================================

@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    events: WebhookEventRepoDep,
    subscriptions: SubscriptionRepoDep,
    usage: UsageRepoDep,
    bonus_service: BonusServiceDep,
    stripe_service: StripeService = Depends(get_stripe_service),
    supabase_admin: SupabaseAdminService = Depends(get_supabase_admin),
    settings: Settings = Depends(get_settings),
):
    """
    Handle Stripe webhook events.

    Verifies the signature, skips events already processed and dispatches
    the rest. A handler failure rolls the request back and answers 500 so
    Stripe retries the event.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        raise ValidationError("Missing Stripe signature")

    try:
        event = stripe_service.verify_webhook_signature(payload, signature)
    except PaymentServiceError as e:
        logger.error(f"Webhook signature verification failed: {e.message}")
        raise ValidationError("Invalid signature")

    event_id = event.get("id")
    event_type = event.get("type")

    if await events.is_processed(event_id):
        logger.info(f"Event {event_id} already processed, skipping")
        return {"received": True, "status": "already_processed"}

    logger.info(f"Processing webhook event: {event_type} ({event_id})")
    data = event["data"]["object"]
    now = datetime.now(timezone.utc)

    if event_type == "checkout.session.completed":
        await handle_checkout_completed(
            data, subscriptions, usage, stripe_service, bonus_service, settings, now
        )

    elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
        await handle_subscription_synced(
            data, subscriptions, usage, stripe_service, bonus_service, supabase_admin, now
        )

    elif event_type == "customer.subscription.deleted":
        await handle_subscription_deleted(data, subscriptions)

    elif event_type == "invoice.payment_succeeded":
        await handle_invoice_payment_succeeded(
            data, subscriptions, usage, bonus_service, stripe_service
        )

    elif event_type == "invoice.payment_failed":
        await handle_invoice_payment_failed(data, subscriptions)

    else:
        logger.debug(f"Unhandled event type: {event_type}")

    await events.mark_processed(event_id, event_type)
    return {"received": True}


# =============================================================================
# Helpers
# =============================================================================

def _invoice_subscription_id(invoice: Any) -> Optional[str]:
    """Subscription id of an invoice (moved under ``parent`` in newer API versions)."""
    subscription_id = invoice.get("subscription")
    if subscription_id:
        return subscription_id
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return details.get("subscription")


async def _resolve_user_id(
    stripe_subscription: Any,
    subscriptions: SubscriptionRepository,
    stripe_service: StripeService,
    supabase_admin: SupabaseAdminService,
) -> Optional[str]:
    """Metadata first, then the stored customer id, then the customer's email."""
    metadata = stripe_subscription.get("metadata") or {}
    if metadata.get("user_id"):
        return metadata["user_id"]

    customer_id = stripe_subscription.get("customer")
    if not customer_id:
        return None

    existing = await subscriptions.get_by_stripe_customer_id(customer_id)
    if existing is not None:
        return existing.user_id

    customer = await stripe_service.get_customer(customer_id)
    email = None if customer.get("deleted") else customer.get("email")
    if not email:
        return None

    for user in await supabase_admin.list_users():
        if user.email and user.email.lower() == email.lower():
            return user.id

    logger.error(f"No user found with email {email} for customer {customer_id}")
    return None


async def _apply_stripe_subscription(
    user_id: str,
    stripe_subscription: Any,
    subscriptions: SubscriptionRepository,
    usage: UsageRepository,
    stripe_service: StripeService,
    bonus_service: BonusService,
    now: datetime,
) -> Subscription:
    """
    Mirror a Stripe subscription onto the user's row and usage counter.

    A new period start opens a fresh counter; within the same period
    only the quota follows the plan. Replacing an earlier period is a
    renewal, so bonus grants roll over with it.
    """
    plan_id = stripe_service.plan_for_price(subscription_price_id(stripe_subscription))
    if plan_id is None:
        plan_id = PlanId.CORE_MONTHLY

    period_start, period_end = subscription_period(stripe_subscription)
    existing = await subscriptions.get_by_user_id(user_id)
    base = existing or Subscription(user_id=user_id)

    saved = await subscriptions.save(base.model_copy(update={
        "plan_id": plan_id,
        "status": map_stripe_status(stripe_subscription.get("status")),
        "stripe_customer_id": stripe_subscription.get("customer") or base.stripe_customer_id,
        "stripe_subscription_id": stripe_subscription.get("id"),
        "current_period_start": period_start or base.current_period_start,
        "current_period_end": period_end or base.current_period_end,
    }))

    if period_start is None or period_end is None:
        return saved

    limit = get_searches_limit(plan_id)
    current = await usage.get_current(user_id, now)
    if current is not None and current.period_start == period_start:
        if current.searches_limit != limit:
            await usage.set_limit(current.id, limit)
    else:
        await usage.start_period(user_id, period_start, period_end, limit)
        previous_start = existing.current_period_start if existing else None
        if previous_start is not None and previous_start != period_start:
            await bonus_service.roll_over_period(user_id)
    return saved


# =============================================================================
# Event Handlers
# =============================================================================

async def handle_checkout_completed(
    session: Any,
    subscriptions: SubscriptionRepository,
    usage: UsageRepository,
    stripe_service: StripeService,
    bonus_service: BonusService,
    settings: Settings,
    now: datetime,
):
    """
    Handle successful checkout session completion.

    The trial plan is a one-off payment that opens a time-boxed trial;
    every other plan arrives as a Stripe subscription.
    """
    metadata = session.get("metadata") or {}
    user_id = metadata.get("user_id")

    if not user_id:
        logger.error("Checkout completed without user_id in metadata")
        return

    if metadata.get("plan_type") == PlanId.TRIAL.value:
        trial_end = now + timedelta(days=settings.trial_days)
        existing = await subscriptions.get_by_user_id(user_id)
        base = existing or Subscription(user_id=user_id)
        await subscriptions.save(base.model_copy(update={
            "plan_id": PlanId.TRIAL,
            "status": SubscriptionStatus.TRIAL,
            "trial_start_date": now,
            "trial_end_date": trial_end,
            "current_period_start": now,
            "current_period_end": trial_end,
            "stripe_customer_id": session.get("customer") or base.stripe_customer_id,
            "stripe_subscription_id": session.get("subscription"),
        }))
        await usage.start_period(user_id, now, trial_end, get_searches_limit(PlanId.TRIAL))
        logger.info(f"Started {settings.trial_days}-day trial for user {user_id}")
        return

    subscription_id = session.get("subscription")
    if not subscription_id:
        logger.warning(f"Checkout for user {user_id} completed without a subscription")
        return

    stripe_subscription = await stripe_service.get_subscription(subscription_id)
    saved = await _apply_stripe_subscription(
        user_id, stripe_subscription, subscriptions, usage, stripe_service, bonus_service, now
    )
    logger.info(f"Activated {saved.plan_id.value} subscription for user {user_id}")


async def handle_subscription_synced(
    stripe_subscription: Any,
    subscriptions: SubscriptionRepository,
    usage: UsageRepository,
    stripe_service: StripeService,
    bonus_service: BonusService,
    supabase_admin: SupabaseAdminService,
    now: datetime,
):
    """Sync plan, status and period from customer.subscription.created/updated."""
    user_id = await _resolve_user_id(
        stripe_subscription, subscriptions, stripe_service, supabase_admin
    )
    if not user_id:
        logger.error(
            f"No user_id found for subscription {stripe_subscription.get('id')}, "
            f"customer: {stripe_subscription.get('customer')}"
        )
        return

    saved = await _apply_stripe_subscription(
        user_id, stripe_subscription, subscriptions, usage, stripe_service, bonus_service, now
    )
    logger.info(
        f"Synced subscription for user {user_id}: "
        f"plan={saved.plan_id.value} status={saved.status.value}"
    )


async def handle_subscription_deleted(
    stripe_subscription: Any,
    subscriptions: SubscriptionRepository,
):
    """Mark the subscription cancelled and unlink it from Stripe."""
    subscription = await subscriptions.get_by_stripe_subscription_id(stripe_subscription.get("id"))
    if subscription is None:
        return

    await subscriptions.save(subscription.model_copy(update={
        "status": SubscriptionStatus.CANCELLED,
        "stripe_subscription_id": None,
    }))
    logger.info(f"Cancelled subscription for user {subscription.user_id}")


async def handle_invoice_payment_succeeded(
    invoice: Any,
    subscriptions: SubscriptionRepository,
    usage: UsageRepository,
    bonus_service: BonusService,
    stripe_service: StripeService,
):
    """
    Handle successful renewal invoices.

    Only ``subscription_cycle`` invoices roll the period over; the first
    invoice is covered by checkout and subscription.created.
    """
    if invoice.get("billing_reason") != "subscription_cycle":
        return

    subscription_id = _invoice_subscription_id(invoice)
    if not subscription_id:
        return

    subscription = await subscriptions.get_by_stripe_subscription_id(subscription_id)
    if subscription is None:
        return

    stripe_subscription = await stripe_service.get_subscription(subscription_id)
    period_start, period_end = subscription_period(stripe_subscription)
    if period_start is None or period_end is None:
        return
    if subscription.current_period_start == period_start:
        return

    await subscriptions.save(subscription.model_copy(update={
        "status": SubscriptionStatus.ACTIVE,
        "current_period_start": period_start,
        "current_period_end": period_end,
    }))
    await usage.start_period(
        subscription.user_id, period_start, period_end, get_searches_limit(subscription.plan_id)
    )
    await bonus_service.roll_over_period(subscription.user_id)
    logger.info(f"Renewed billing period for user {subscription.user_id}")


async def handle_invoice_payment_failed(
    invoice: Any,
    subscriptions: SubscriptionRepository,
):
    """A failed payment ends access until Stripe reports a recovery."""
    subscription_id = _invoice_subscription_id(invoice)
    if not subscription_id:
        return

    subscription = await subscriptions.get_by_stripe_subscription_id(subscription_id)
    if subscription is None:
        return

    await subscriptions.save(subscription.model_copy(update={
        "status": SubscriptionStatus.EXPIRED,
    }))
    logger.warning(f"Payment failed for subscription {subscription_id}, set to expired")
