"""
HTTP clients for the backend collaborators: anti-forgery tokens and plan lookup.

All clients share one lazily created httpx.AsyncClient pointed at the
configured backend. Pass `client=` to reuse an existing one (tests hand in
a client built on httpx.MockTransport).
"""

from __future__ import annotations

import logging

import httpx

from .config import Config, get_config
from .models import PlanTier

logger = logging.getLogger(__name__)


class TokenUnavailable(Exception):
    """The anti-forgery token could not be obtained."""


def json_field(response: httpx.Response, name: str):
    """Top-level field of a JSON object body, or None."""
    try:
        data = response.json()
    except ValueError:
        return None
    return data.get(name) if isinstance(data, dict) else None


class BackendClient:
    """Base for clients of the forge3d backend."""

    def __init__(self, config: Config | None = None, client: httpx.AsyncClient | None = None):
        self.config = config or get_config()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialized HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.backend_url,
                headers={"Content-Type": "application/json"},
                timeout=self.config.request_timeout_seconds,
            )
        return self._client

    async def close(self):
        """Close HTTP client if we created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None


class TokenClient(BackendClient):
    """Fetch short-lived anti-forgery tokens."""

    async def fetch(self) -> str:
        """
        Get a fresh token.

        Raises:
            TokenUnavailable: On transport failure, non-200 status or an
                empty token. Callers decide whether to continue without one.
        """
        try:
            response = await self.client.get(self.config.token_path)
        except httpx.HTTPError as e:
            raise TokenUnavailable(f"Token request failed: {e}") from e

        if response.status_code != 200:
            raise TokenUnavailable(f"Token endpoint returned {response.status_code}")

        token = json_field(response, "csrfToken")
        if not token:
            raise TokenUnavailable("Token endpoint returned no token")
        return token


class PlanClient(BackendClient):
    """Look up a user's plan tier."""

    def __init__(
        self,
        config: Config | None = None,
        client: httpx.AsyncClient | None = None,
        tokens: TokenClient | None = None,
    ):
        super().__init__(config, client)
        self.tokens = tokens or TokenClient(self.config, self.client)

    async def fetch_plan(self, user_id: str) -> PlanTier:
        """Plan tier for a user. Any failure yields free."""
        try:
            token = await self.tokens.fetch()
            response = await self.client.get(
                f"{self.config.plan_path}/{user_id}",
                headers={"X-CSRF-Token": token},
            )
        except (TokenUnavailable, httpx.HTTPError) as e:
            logger.warning(f"[Plan] Lookup failed for {user_id}: {e}")
            return PlanTier.FREE

        if response.status_code != 200:
            logger.warning(f"[Plan] Lookup for {user_id} returned {response.status_code}")
            return PlanTier.FREE

        return PlanTier.parse(json_field(response, "plan"))


__all__ = ["BackendClient", "TokenClient", "PlanClient", "TokenUnavailable", "json_field"]
