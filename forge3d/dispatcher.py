"""
Send generation requests to the backend and degrade to a placeholder model.

Every failure mode ends in a usable GenerationResult: the preview never
shows a dead state. Failures are reported on the DispatchOutcome rather than
raised, so the fallback is an explicit branch for the caller.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from enum import Enum

import httpx

from .collaborators import BackendClient, TokenClient, TokenUnavailable, json_field
from .config import Config
from .models import GenerationResult

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    """Why a dispatch fell back to the placeholder."""
    TRANSPORT = "transport"            # Network unreachable, timeout, no token
    BACKEND = "backend"                # Non-success status
    MISSING_RESULT = "missing_result"  # Success without modelUrl


FAILURE_MESSAGES = {
    FailureKind.TRANSPORT: "Network error: could not reach the generation service. Showing a sample model.",
    FailureKind.BACKEND: "Model generation failed. Showing a sample model.",
    FailureKind.MISSING_RESULT: "The generation service returned no model. Showing a sample model.",
}


@dataclass
class DispatchOutcome:
    """Result of one dispatch."""
    result: GenerationResult
    request_id: int
    failure: FailureKind | None = None
    diagnostic: str = ""
    stale: bool = False  # A newer dispatch started before this one finished

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def message(self) -> str | None:
        """User-visible message for a failure."""
        return FAILURE_MESSAGES.get(self.failure) if self.failure else None

    def to_dict(self) -> dict:
        return {
            "result": self.result.to_dict(),
            "request_id": self.request_id,
            "failure": self.failure.value if self.failure else None,
            "message": self.message,
            "stale": self.stale,
        }


class GenerationDispatcher(BackendClient):
    """
    Dispatch generation payloads.

    Holds the single "current result" slot. Each dispatch takes the next
    request id; only the completion of the most recent dispatch replaces
    the slot.

    Example:
        >>> dispatcher = GenerationDispatcher()
        >>> outcome = await dispatcher.dispatch(build_payload(request))
        >>> print(outcome.result.model_asset_url)
    """

    def __init__(
        self,
        config: Config | None = None,
        client: httpx.AsyncClient | None = None,
        tokens: TokenClient | None = None,
    ):
        super().__init__(config, client)
        self.tokens = tokens or TokenClient(self.config, self.client)
        self._ids = itertools.count(1)
        self._latest_id = 0
        self.current_result: GenerationResult | None = None

    @property
    def placeholder(self) -> GenerationResult:
        return GenerationResult(self.config.placeholder_model_url, is_placeholder=True)

    async def _auth_headers(self) -> dict:
        try:
            token = await self.tokens.fetch()
        except TokenUnavailable:
            if not self.config.allow_unauthenticated:
                raise
            logger.warning("[Generate] No anti-forgery token, sending request unauthenticated")
            return {}
        return {"X-CSRF-Token": token}

    async def _send(self, payload: dict, request_id: int) -> DispatchOutcome:
        try:
            headers = await self._auth_headers()
            response = await self.client.post(
                self.config.generate_path,
                json=payload,
                headers=headers,
            )
        except (TokenUnavailable, httpx.RequestError) as e:
            logger.error(f"[Generate] Request {request_id} failed to reach backend: {e}")
            return DispatchOutcome(self.placeholder, request_id, FailureKind.TRANSPORT, str(e))

        if not response.is_success:
            logger.error(
                f"[Generate] Request {request_id} returned {response.status_code}: {response.text}"
            )
            return DispatchOutcome(
                self.placeholder,
                request_id,
                FailureKind.BACKEND,
                f"{response.status_code}: {response.text}",
            )

        model_url = json_field(response, "modelUrl")
        if not model_url:
            logger.error(f"[Generate] Request {request_id} succeeded without modelUrl: {response.text}")
            return DispatchOutcome(
                self.placeholder,
                request_id,
                FailureKind.MISSING_RESULT,
                response.text,
            )

        return DispatchOutcome(GenerationResult(model_url, is_placeholder=False), request_id)

    async def dispatch(self, payload: dict) -> DispatchOutcome:
        """
        Send one generation request. Never raises for backend failures.

        Returns:
            DispatchOutcome; `stale` is set when a newer dispatch began
            while this one was in flight, in which case current_result is
            left untouched.
        """
        request_id = next(self._ids)
        self._latest_id = request_id
        logger.info(f"[Generate] Dispatching request {request_id}")

        outcome = await self._send(payload, request_id)

        if request_id != self._latest_id:
            logger.info(f"[Generate] Dropping stale response for request {request_id}")
            outcome.stale = True
            return outcome

        self.current_result = outcome.result
        return outcome


__all__ = [
    "GenerationDispatcher",
    "DispatchOutcome",
    "FailureKind",
    "FAILURE_MESSAGES",
]
