"""
Billing API Routes

User-initiated Stripe operations: hosted checkout, cancellation and plan
changes.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from app.api.dependencies import CurrentUser, SubscriptionRepoDep, UsageRepoDep
from app.config.settings import Settings, get_settings
from app.domain.subscription import (
    ChangePlanRequest,
    CheckoutRequest,
    CheckoutResponse,
    SubscriptionStatus,
    get_searches_limit,
)
from app.infrastructure.exceptions import NotFoundError, ValidationError
from app.infrastructure.payments.stripe_service import StripeService, get_stripe_service


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe/create-checkout", response_model=CheckoutResponse)
async def create_checkout(
    request: CheckoutRequest,
    user: CurrentUser,
    subscriptions: SubscriptionRepoDep,
    stripe_service: StripeService = Depends(get_stripe_service),
    settings: Settings = Depends(get_settings),
):
    """
    Create a Stripe Checkout session for a plan.

    The Stripe customer is created on first checkout. It is stored on an
    existing subscription row right away; new users get their row from
    the checkout webhook.
    """
    existing = await subscriptions.get_by_user_id(user.id)
    customer = await stripe_service.get_or_create_customer(
        user_id=user.id,
        email=user.email,
        existing_customer_id=existing.stripe_customer_id if existing else None,
    )

    if existing is not None and existing.stripe_customer_id != customer.id:
        await subscriptions.save(existing.model_copy(update={"stripe_customer_id": customer.id}))

    session = await stripe_service.create_checkout_session(
        customer_id=customer.id,
        plan_id=request.plan_id,
        user_id=user.id,
        success_url=request.success_url or f"{settings.site_url}/billing?success=true",
        cancel_url=request.cancel_url or f"{settings.site_url}/billing?canceled=true",
    )
    return CheckoutResponse(checkout_url=session.url, session_id=session.id)


@router.post("/stripe/cancel-subscription")
async def cancel_subscription(
    user: CurrentUser,
    subscriptions: SubscriptionRepoDep,
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """Stop renewal at Stripe and mark the subscription cancelled."""
    subscription = await subscriptions.get_by_user_id(user.id)
    if subscription is None or not subscription.stripe_subscription_id:
        raise NotFoundError("No active subscription found", table="user_subscriptions")

    await stripe_service.cancel_at_period_end(subscription.stripe_subscription_id)
    await subscriptions.save(subscription.model_copy(update={
        "status": SubscriptionStatus.CANCELLED,
    }))
    logger.info(f"User {user.id} cancelled subscription {subscription.stripe_subscription_id}")
    return {
        "success": True,
        "message": "Subscription will be cancelled at the end of the billing period",
    }


@router.post("/stripe/change-plan")
async def change_plan(
    request: ChangePlanRequest,
    user: CurrentUser,
    subscriptions: SubscriptionRepoDep,
    usage: UsageRepoDep,
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """Move a live subscription to another price; the quota follows immediately."""
    if not request.new_price_id:
        raise ValidationError("Price ID required", field="newPriceId")

    plan_id = stripe_service.plan_for_price(request.new_price_id)
    if plan_id is None:
        raise ValidationError(f"Unknown price: {request.new_price_id}", field="newPriceId")

    subscription = await subscriptions.get_by_user_id(user.id)
    if subscription is None or not subscription.stripe_subscription_id:
        raise NotFoundError("No active subscription found", table="user_subscriptions")

    await stripe_service.change_price(subscription.stripe_subscription_id, request.new_price_id)
    await subscriptions.save(subscription.model_copy(update={"plan_id": plan_id}))

    current = await usage.get_current(user.id, datetime.now(timezone.utc))
    if current is not None:
        await usage.set_limit(current.id, get_searches_limit(plan_id))

    logger.info(f"User {user.id} changed plan to {plan_id.value}")
    return {"success": True, "planId": plan_id.value}
