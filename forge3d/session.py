"""
Session state and the studio controller.

The controller owns the lifecycle of one user session: identity and plan,
the current generation result, and the checkout flow. Front ends call into
it and render what it returns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Mapping

import httpx

from .collaborators import PlanClient, TokenClient
from .config import Config, get_config
from .dispatcher import DispatchOutcome, GenerationDispatcher
from .models import (
    GenerationRequest,
    GenerationResult,
    OutputFormat,
    PlanTier,
    UserIdentity,
    UserPlanState,
)
from .payments import (
    GATE_MESSAGES,
    CheckoutClient,
    CheckoutFlow,
    CheckoutState,
    GateDecision,
    build_intent,
    decide,
)
from .request_builder import build_payload
from .validation import ValidationError, validate_form

logger = logging.getLogger(__name__)


class Session:
    """Identity and plan of the current user."""

    def __init__(self, plans: PlanClient | None = None):
        self.plans = plans
        self.state = UserPlanState()

    @property
    def identity(self) -> UserIdentity | None:
        return self.state.identity

    @property
    def plan_tier(self) -> PlanTier:
        return self.state.plan_tier

    async def sign_in(self, identity: UserIdentity) -> UserPlanState:
        """Record a sign-in and refresh the plan tier."""
        self.state = UserPlanState(identity=identity)
        await self.refresh_plan()
        return self.state

    async def refresh_plan(self) -> PlanTier:
        """Re-read the plan of the signed-in user. Falls back to free."""
        if self.identity is None or self.plans is None:
            self.state = replace(self.state, plan_tier=PlanTier.FREE)
            return self.plan_tier
        identity = self.identity
        tier = await self.plans.fetch_plan(identity.id)
        if self.identity is not identity:
            # Signed out or switched user while the lookup was in flight
            logger.info(f"[Session] Dropping plan of {identity.id}, session changed")
            return self.plan_tier
        self.state = replace(self.state, plan_tier=tier)
        logger.info(f"[Session] {identity.id} is on plan {tier.value}")
        return tier

    def sign_out(self):
        self.state = UserPlanState()


@dataclass
class GenerateOutcome:
    """What a generate action produced for the UI."""
    request: GenerationRequest | None = None
    dispatch: DispatchOutcome | None = None
    error: ValidationError | None = None

    @property
    def result(self) -> GenerationResult | None:
        return self.dispatch.result if self.dispatch else None

    @property
    def message(self) -> str | None:
        if self.error:
            return self.error.message
        return self.dispatch.message if self.dispatch else None


@dataclass
class PurchaseOutcome:
    """What a purchase action produced for the UI."""
    decision: GateDecision
    state: CheckoutState = CheckoutState.IDLE
    redirect_url: str | None = None
    error: str | None = None

    @property
    def message(self) -> str | None:
        return self.error or GATE_MESSAGES.get(self.decision)


class StudioController:
    """
    Ties validation, dispatch, payment gating and checkout to one session.

    Example:
        >>> controller = StudioController.from_config()
        >>> outcome = await controller.generate({"prompt": "a vase", "width": "50", ...})
        >>> purchase = await controller.purchase("price_onetime")
    """

    def __init__(
        self,
        session: Session,
        dispatcher: GenerationDispatcher,
        checkout: CheckoutFlow,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.checkout = checkout
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(
        cls,
        config: Config | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> StudioController:
        """Build a controller whose collaborators share one HTTP client."""
        config = config or get_config()
        owned = client is None
        if owned:
            client = httpx.AsyncClient(
                base_url=config.backend_url,
                headers={"Content-Type": "application/json"},
                timeout=config.request_timeout_seconds,
            )
        tokens = TokenClient(config, client)
        controller = cls(
            session=Session(PlanClient(config, client, tokens)),
            dispatcher=GenerationDispatcher(config, client, tokens),
            checkout=CheckoutFlow(CheckoutClient(config, client, tokens)),
        )
        controller._client = client if owned else None
        return controller

    @property
    def current_result(self) -> GenerationResult | None:
        return self.dispatcher.current_result

    async def generate(
        self,
        fields: Mapping,
        output_format: OutputFormat | None = None,
    ) -> GenerateOutcome:
        """Validate the form and, if valid, dispatch a generation request."""
        try:
            request = validate_form(fields)
        except ValidationError as e:
            logger.info(f"[Generate] Rejected form: {e.kind}")
            return GenerateOutcome(error=e)

        user_id = self.session.identity.id if self.session.identity else None
        payload = build_payload(request, user_id, output_format)
        return GenerateOutcome(request=request, dispatch=await self.dispatcher.dispatch(payload))

    async def purchase(self, price_identifier: str | None) -> PurchaseOutcome:
        """Run the payment gate and, if it allows, the checkout flow."""
        result = self.current_result
        decision = decide(
            self.session.plan_tier,
            price_identifier,
            has_result=result is not None and not result.is_placeholder,
            identity=self.session.identity,
        )
        if decision != GateDecision.PROCEED_TO_CHECKOUT:
            return PurchaseOutcome(decision)

        intent = build_intent(self.session.identity, price_identifier, result)
        state = await self.checkout.start(intent)
        return PurchaseOutcome(
            decision,
            state=state,
            redirect_url=self.checkout.redirect_url,
            error=self.checkout.error,
        )

    async def close(self):
        """Close the HTTP client created by from_config."""
        if self._client:
            await self._client.aclose()
            self._client = None


__all__ = ["Session", "StudioController", "GenerateOutcome", "PurchaseOutcome"]
