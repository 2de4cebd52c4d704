"""
Payment gating and the checkout flow.

decide() answers whether a purchase can go ahead; CheckoutFlow runs the
actual checkout request against the backend and tracks its state.
"""

from __future__ import annotations

import logging
from enum import Enum

import httpx

from .collaborators import BackendClient, TokenClient, TokenUnavailable, json_field
from .config import Config
from .models import (
    SUBSCRIPTION_SENTINEL,
    CheckoutIntent,
    GenerationResult,
    PlanTier,
    UserIdentity,
)

logger = logging.getLogger(__name__)


class GateDecision(str, Enum):
    """Outcome of the payment gate."""
    NO_ACTION_NEEDED = "no_action_needed"
    BLOCKED_NEEDS_MODEL = "blocked_needs_model"
    BLOCKED_NEEDS_SIGN_IN = "blocked_needs_sign_in"
    PROCEED_TO_CHECKOUT = "proceed_to_checkout"

    @property
    def is_blocked(self) -> bool:
        return self in (GateDecision.BLOCKED_NEEDS_MODEL, GateDecision.BLOCKED_NEEDS_SIGN_IN)


GATE_MESSAGES = {
    GateDecision.BLOCKED_NEEDS_MODEL: "Generate a model first.",
    GateDecision.BLOCKED_NEEDS_SIGN_IN: "Please sign in to continue.",
}


class CheckoutState(str, Enum):
    """Checkout flow states."""
    IDLE = "idle"
    PENDING = "pending"
    REDIRECTED = "redirected"
    FAILED = "failed"


class CheckoutError(Exception):
    """Checkout could not be started. `message` is safe to show to the user."""
    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def is_subscription_price(price_identifier: str | None) -> bool:
    """Subscription price ids contain "sub"; everything else is one-time."""
    return bool(price_identifier) and "sub" in price_identifier


def decide(
    plan_tier: PlanTier | str,
    price_identifier: str | None = None,
    has_result: bool = False,
    identity: UserIdentity | None = None,
) -> GateDecision:
    """
    Decide whether a purchase may proceed to checkout.

    Each call is independent.

    Args:
        plan_tier: Current plan of the user
        price_identifier: Price the user wants to buy, if any
        has_result: Whether a generated model exists
        identity: Signed-in user, if any
    """
    plan_tier = PlanTier.parse(plan_tier)

    if not price_identifier:
        return GateDecision.NO_ACTION_NEEDED

    one_time = not is_subscription_price(price_identifier)
    if one_time and not has_result:
        return GateDecision.BLOCKED_NEEDS_MODEL

    if identity is None:
        return GateDecision.BLOCKED_NEEDS_SIGN_IN

    # Paid plans include downloads
    if one_time and plan_tier.is_paid:
        return GateDecision.NO_ACTION_NEEDED

    return GateDecision.PROCEED_TO_CHECKOUT


def build_intent(
    identity: UserIdentity,
    price_identifier: str,
    result: GenerationResult | None = None,
) -> CheckoutIntent:
    """Create the intent for one payment attempt."""
    if is_subscription_price(price_identifier):
        model_url = SUBSCRIPTION_SENTINEL
    else:
        model_url = result.model_asset_url if result else None
    return CheckoutIntent(
        user_id=identity.id,
        price_identifier=price_identifier,
        associated_model_url=model_url,
    )


class CheckoutClient(BackendClient):
    """Create checkout sessions through the backend."""

    def __init__(
        self,
        config: Config | None = None,
        client: httpx.AsyncClient | None = None,
        tokens: TokenClient | None = None,
    ):
        super().__init__(config, client)
        self.tokens = tokens or TokenClient(self.config, self.client)

    async def create_session(self, intent: CheckoutIntent) -> str:
        """
        Start a checkout.

        Returns:
            URL to redirect the user to

        Raises:
            CheckoutError: On any failure, including a missing token
        """
        try:
            token = await self.tokens.fetch()
        except TokenUnavailable as e:
            raise CheckoutError("Could not start checkout. Please try again.") from e

        try:
            response = await self.client.post(
                self.config.checkout_path,
                json=intent.to_payload(),
                headers={"X-CSRF-Token": token},
            )
        except httpx.RequestError as e:
            raise CheckoutError("Network error: could not reach checkout.") from e

        if not response.is_success:
            logger.error(f"[Checkout] Backend returned {response.status_code}: {response.text}")
            raise CheckoutError("Could not start checkout. Please try again.", response.status_code)

        url = json_field(response, "url")
        if not url:
            raise CheckoutError("Checkout did not return a redirect URL.", response.status_code)
        return url


class CheckoutFlow:
    """
    Idle -> Pending -> Redirected | Failed. A failure surfaces `error` and
    leaves the flow back in Idle; there is no automatic retry.
    """

    def __init__(self, checkout: CheckoutClient | None = None):
        self.checkout = checkout or CheckoutClient()
        self.state = CheckoutState.IDLE
        self.redirect_url: str | None = None
        self.error: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.state == CheckoutState.PENDING

    async def start(self, intent: CheckoutIntent) -> CheckoutState:
        """
        Dispatch a checkout. Re-entrant calls while pending are refused.

        Returns:
            REDIRECTED with redirect_url set, or FAILED with error set
            (the flow itself is Idle again)
        """
        if self.is_pending:
            raise CheckoutError("Checkout already in progress.")

        self.state = CheckoutState.PENDING
        self.redirect_url = None
        self.error = None

        try:
            self.redirect_url = await self.checkout.create_session(intent)
        except CheckoutError as e:
            logger.warning(f"[Checkout] Failed for user {intent.user_id}: {e.message}")
            self.error = e.message
            self.state = CheckoutState.IDLE
            return CheckoutState.FAILED
        finally:
            if self.state == CheckoutState.PENDING:
                self.state = CheckoutState.IDLE

        logger.info(f"[Checkout] Redirecting user {intent.user_id}")
        self.state = CheckoutState.REDIRECTED
        return self.state


__all__ = [
    "GateDecision",
    "GATE_MESSAGES",
    "CheckoutState",
    "CheckoutError",
    "CheckoutClient",
    "CheckoutFlow",
    "decide",
    "build_intent",
    "is_subscription_price",
]
