"""
Stripe Payment Service

Infrastructure service for Stripe payment processing: customers, hosted
checkout, subscription create/cancel/change-plan and webhook verification.

A new StripeService is built per request from Settings; it owns its own
StripeClient instead of mutating the global ``stripe.api_key``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import stripe
from fastapi import Depends
from stripe import StripeError

from app.config.settings import Settings, get_settings
from app.domain.subscription import PlanId
from app.infrastructure.exceptions import ConfigurationError, PaymentServiceError


logger = logging.getLogger(__name__)


def _timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def subscription_period(stripe_subscription: Any) -> tuple[Optional[datetime], Optional[datetime]]:
    """
    Billing period bounds of a Stripe subscription.

    Newer API versions moved ``current_period_*`` from the subscription to
    its items, so both places are checked.
    """
    start = stripe_subscription.get("current_period_start")
    end = stripe_subscription.get("current_period_end")
    if not start or not end:
        items = (stripe_subscription.get("items") or {}).get("data") or []
        if items:
            start = start or items[0].get("current_period_start")
            end = end or items[0].get("current_period_end")
    return _timestamp(start), _timestamp(end)


def subscription_price_id(stripe_subscription: Any) -> Optional[str]:
    """Price of the first item of a Stripe subscription."""
    items = (stripe_subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    price = items[0].get("price") or {}
    return price.get("id")


class StripeService:
    """
    Stripe payment processing service.

    All methods wrap StripeError in PaymentServiceError so routes can let
    the global handler answer 500.
    """

    def __init__(self, settings: Settings):
        self._api_key = settings.stripe_secret_key
        self._webhook_secret = settings.stripe_webhook_secret
        self._client = stripe.StripeClient(self._api_key) if self._api_key else None

        # Plan -> Stripe price id
        self._price_map: dict[PlanId, Optional[str]] = {
            PlanId.TRIAL: settings.stripe_price_trial,
            PlanId.CORE_MONTHLY: settings.stripe_price_core_monthly,
            PlanId.CORE_ANNUAL: settings.stripe_price_core_annual,
            PlanId.PRIME_MONTHLY: settings.stripe_price_prime_monthly,
            PlanId.PRIME_ANNUAL: settings.stripe_price_prime_annual,
        }

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> stripe.StripeClient:
        if self._client is None:
            raise ConfigurationError(
                "Stripe is not configured",
                missing_keys=["STRIPE_SECRET_KEY"],
            )
        return self._client

    def price_for_plan(self, plan_id: PlanId) -> str:
        """Get the Stripe price id for a plan."""
        price_id = self._price_map.get(plan_id)
        if not price_id:
            raise ConfigurationError(
                f"No Stripe price configured for plan {plan_id.value}",
                missing_keys=[f"STRIPE_PRICE_{plan_id.value.upper()}"],
            )
        return price_id

    def plan_for_price(self, price_id: Optional[str]) -> Optional[PlanId]:
        """Reverse lookup of ``price_for_plan``; None for unknown prices."""
        if not price_id:
            return None
        for plan_id, configured in self._price_map.items():
            if configured and configured == price_id:
                return plan_id
        return None

    # =========================================================================
    # Customer Management
    # =========================================================================

    async def create_customer(self, user_id: str, email: Optional[str]) -> Any:
        """
        Create a new Stripe customer.

        Args:
            user_id: Internal user ID (stored in metadata)
            email: Customer email for receipts
        """
        try:
            customer = self.client.customers.create(params={
                "email": email,
                "metadata": {"user_id": user_id, "source": "app_ideas_finder"},
            })
            logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
            return customer
        except StripeError as e:
            logger.error(f"Failed to create Stripe customer: {e}")
            raise PaymentServiceError(
                f"Failed to create customer: {e.user_message or e}",
                operation="customers.create",
                original_error=e,
            )

    async def get_or_create_customer(
        self,
        user_id: str,
        email: Optional[str],
        existing_customer_id: Optional[str] = None,
    ) -> Any:
        """Reuse a stored customer unless Stripe reports it deleted or missing."""
        if existing_customer_id:
            try:
                customer = self.client.customers.retrieve(existing_customer_id)
                if not customer.get("deleted"):
                    return customer
            except StripeError:
                logger.warning(f"Customer {existing_customer_id} not found, creating new")

        return await self.create_customer(user_id, email)

    async def get_customer(self, customer_id: str) -> Any:
        try:
            return self.client.customers.retrieve(customer_id)
        except StripeError as e:
            raise PaymentServiceError(
                f"Failed to retrieve customer {customer_id}",
                operation="customers.retrieve",
                original_error=e,
            )

    # =========================================================================
    # Checkout Session
    # =========================================================================

    async def create_checkout_session(
        self,
        customer_id: str,
        plan_id: PlanId,
        user_id: str,
        success_url: str,
        cancel_url: str,
    ) -> Any:
        """
        Create a hosted Checkout Session.

        Paid plans use subscription mode. The trial is a one-off payment
        that the webhook turns into a time-boxed trial.
        """
        price_id = self.price_for_plan(plan_id)
        mode = "payment" if plan_id == PlanId.TRIAL else "subscription"
        params: dict[str, Any] = {
            "customer": customer_id,
            "line_items": [{"price": price_id, "quantity": 1}],
            "mode": mode,
            "success_url": f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": cancel_url,
            "allow_promotion_codes": True,
            "metadata": {"user_id": user_id, "plan_type": plan_id.value},
        }
        if mode == "subscription":
            params["subscription_data"] = {
                "metadata": {"user_id": user_id, "plan_type": plan_id.value},
            }

        try:
            session = self.client.checkout.sessions.create(params=params)
            logger.info(
                f"Created checkout session {session.id} for user {user_id}, plan={plan_id.value}"
            )
            return session
        except StripeError as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise PaymentServiceError(
                f"Failed to create checkout: {e.user_message or e}",
                operation="checkout.sessions.create",
                original_error=e,
            )

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> Any:
        """
        Start a subscription on a customer's default payment method.

        Stripe replays the first result for a repeated ``idempotency_key``.
        """
        options = {"idempotency_key": idempotency_key} if idempotency_key else {}
        try:
            return self.client.subscriptions.create(
                params={
                    "customer": customer_id,
                    "items": [{"price": price_id}],
                    "metadata": metadata,
                },
                options=options,
            )
        except StripeError as e:
            raise PaymentServiceError(
                f"Failed to create subscription: {e.user_message or e}",
                operation="subscriptions.create",
                original_error=e,
            )

    async def get_subscription(self, subscription_id: str) -> Any:
        try:
            return self.client.subscriptions.retrieve(subscription_id)
        except StripeError as e:
            raise PaymentServiceError(
                f"Failed to retrieve subscription {subscription_id}",
                operation="subscriptions.retrieve",
                original_error=e,
            )

    async def cancel_at_period_end(self, subscription_id: str) -> Any:
        """Stop renewal; the subscription stays usable until its period ends."""
        try:
            subscription = self.client.subscriptions.update(
                subscription_id,
                params={"cancel_at_period_end": True},
            )
            logger.info(f"Cancelled subscription {subscription_id} at period end")
            return subscription
        except StripeError as e:
            logger.error(f"Failed to cancel subscription: {e}")
            raise PaymentServiceError(
                f"Failed to cancel: {e.user_message or e}",
                operation="subscriptions.update",
                original_error=e,
            )

    async def change_price(self, subscription_id: str, new_price_id: str) -> Any:
        """Swap the price of the subscription's single item, prorating the difference."""
        try:
            current = self.client.subscriptions.retrieve(subscription_id)
            items = current["items"]["data"]
            if not items:
                raise PaymentServiceError(
                    f"Subscription {subscription_id} has no items",
                    operation="subscriptions.update",
                )
            updated = self.client.subscriptions.update(
                subscription_id,
                params={
                    "items": [{"id": items[0]["id"], "price": new_price_id}],
                    "proration_behavior": "create_prorations",
                },
            )
            logger.info(f"Moved subscription {subscription_id} to price {new_price_id}")
            return updated
        except StripeError as e:
            logger.error(f"Failed to change plan: {e}")
            raise PaymentServiceError(
                f"Failed to change plan: {e.user_message or e}",
                operation="subscriptions.update",
                original_error=e,
            )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(self, payload: bytes, signature: str) -> Any:
        """
        Verify webhook signature and construct event.

        Raises:
            PaymentServiceError if the payload or signature is invalid
        """
        if not self._webhook_secret:
            raise ConfigurationError(
                "Stripe webhook secret is not configured",
                missing_keys=["STRIPE_WEBHOOK_SECRET"],
            )
        try:
            return stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except ValueError as e:
            raise PaymentServiceError(f"Invalid payload: {e}", operation="webhook")
        except stripe.SignatureVerificationError as e:
            raise PaymentServiceError(f"Invalid signature: {e}", operation="webhook")


def get_stripe_service(settings: Settings = Depends(get_settings)) -> StripeService:
    """Per-request StripeService built from settings."""
    return StripeService(settings)
