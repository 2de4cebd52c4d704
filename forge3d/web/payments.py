"""
Stripe integration for the forge3d backend.

Creates Checkout sessions for one-time model downloads and subscriptions,
and turns webhook events into plan changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Optional

import stripe

from forge3d.config import Config, get_config
from forge3d.models import PlanTier
from forge3d.payments import is_subscription_price
from forge3d.web.database import PlanStore

logger = logging.getLogger(__name__)


SUBSCRIPTION_EVENTS = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
)

# Subscription statuses that keep a paid plan
ACTIVE_STATUSES = ("active", "trialing")


@dataclass
class CheckoutSession:
    """Result from creating a checkout session."""
    session_id: str
    checkout_url: str
    mode: Literal["payment", "subscription"]


@dataclass
class PlanChange:
    """A plan update derived from a webhook event."""
    user_id: str
    plan: PlanTier
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None


def checkout_mode(price_id: str) -> Literal["payment", "subscription"]:
    return "subscription" if is_subscription_price(price_id) else "payment"


class PaymentService:
    """Handle Stripe checkout and webhooks."""

    def __init__(self, config: Config | None = None, plans: PlanStore | None = None):
        self.config = config or get_config()
        self.plans = plans

        if self.config.has_stripe:
            stripe.api_key = self.config.stripe_secret_key
            if self.config.stripe_secret_key.startswith("sk_test_"):
                logger.info("[Stripe] Running in TEST mode")

    def plan_for_price(self, price_id: str | None) -> PlanTier:
        """Plan granted by a subscription price."""
        if not price_id:
            return PlanTier.FREE
        if price_id in self.config.pro_price_ids:
            return PlanTier.PRO
        if price_id in self.config.basic_price_ids:
            return PlanTier.BASIC
        return PlanTier.PRO if "pro" in price_id.lower() else PlanTier.BASIC

    def create_checkout(
        self,
        price_id: str,
        origin: str | None = None,
        model_id: str | None = None,
        user_id: str | None = None,
    ) -> CheckoutSession:
        """Create a Stripe Checkout session."""
        if not self.config.has_stripe:
            raise ValueError("Stripe not configured")

        base_url = origin or self.config.client_url
        mode = checkout_mode(price_id)
        metadata = {
            "modelId": model_id or "unknown",
            "userId": user_id or "",
            "priceId": price_id,
        }

        params = dict(
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            mode=mode,
            success_url=f"{base_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base_url}/cancel",
            metadata=metadata,
        )
        if user_id:
            params["client_reference_id"] = user_id
        if mode == "subscription":
            # Subscription events only carry the subscription's own metadata
            params["subscription_data"] = {"metadata": {"userId": user_id or ""}}

        session = stripe.checkout.Session.create(**params)
        logger.info(f"[Checkout] Session {session.id} created ({mode}) for price {price_id}")

        return CheckoutSession(
            session_id=session.id,
            checkout_url=session.url,
            mode=mode,
        )

    def verify_webhook(self, payload: bytes, signature: str) -> dict:
        """Verify a Stripe webhook signature and parse the event."""
        if not self.config.has_stripe_webhook:
            raise ValueError("Stripe webhook secret not configured")

        event = stripe.Webhook.construct_event(
            payload,
            signature,
            self.config.stripe_webhook_secret,
        )
        # Handlers read plain dicts
        return event.to_dict()

    def plan_change_for(self, event) -> Optional[PlanChange]:
        """
        Derive a plan change from a webhook event.

        Returns None for events that do not affect a plan.
        """
        event_type = event["type"]
        obj = event["data"]["object"]

        if event_type == "checkout.session.completed":
            logger.info(f"[Webhook] Checkout completed: {obj.get('id')}")
            if obj.get("mode") != "subscription":
                return None
            metadata = obj.get("metadata") or {}
            user_id = obj.get("client_reference_id") or metadata.get("userId")
            if not user_id:
                return None
            return PlanChange(
                user_id=user_id,
                plan=self.plan_for_price(metadata.get("priceId")),
                stripe_customer_id=obj.get("customer"),
                stripe_subscription_id=obj.get("subscription"),
            )

        if event_type in SUBSCRIPTION_EVENTS:
            logger.info(f"[Webhook] Subscription event: {event_type}")
            user_id = (obj.get("metadata") or {}).get("userId")
            if not user_id and self.plans:
                user_id = self.plans.find_user_by_subscription(obj.get("id"))
            if not user_id:
                return None

            if event_type == "customer.subscription.deleted" or obj.get("status") not in ACTIVE_STATUSES:
                plan = PlanTier.FREE
            else:
                items = (obj.get("items") or {}).get("data") or []
                price_id = items[0]["price"]["id"] if items else None
                plan = self.plan_for_price(price_id)

            return PlanChange(
                user_id=user_id,
                plan=plan,
                stripe_customer_id=obj.get("customer"),
                stripe_subscription_id=obj.get("id"),
            )

        return None

    def apply_event(self, event) -> Optional[PlanChange]:
        """Record the plan change carried by an event, if any."""
        change = self.plan_change_for(event)
        if change and self.plans:
            self.plans.set_plan(
                change.user_id,
                change.plan,
                stripe_customer_id=change.stripe_customer_id,
                stripe_subscription_id=change.stripe_subscription_id,
            )
            logger.info(f"[Webhook] {change.user_id} is now on plan {change.plan.value}")
        return change


__all__ = [
    "PaymentService",
    "CheckoutSession",
    "PlanChange",
    "checkout_mode",
    "SUBSCRIPTION_EVENTS",
]
