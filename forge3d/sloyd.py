"""
Text/image to 3D generation using the Sloyd API.

Used by the backend's /generate endpoint.
"""

from __future__ import annotations

import logging

import httpx

from .config import Config, get_config

logger = logging.getLogger(__name__)


# Fields forwarded from the client payload when present
FORWARDED_FIELDS = ("measurements", "material", "supports", "infill", "shellThickness", "image")


class SloydAPIError(Exception):
    """Error from Sloyd API."""
    def __init__(self, message: str, status_code: int = None, response: str = None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(message)


class MissingModelURL(SloydAPIError):
    """Sloyd answered successfully but without a model URL."""


class SloydClient:
    """
    Generate 3D models with Sloyd.

    Example:
        >>> sloyd = SloydClient()
        >>> url = sloyd.generate("a low poly fox", output="glb")
    """

    API_VERSION = "v1"

    def __init__(self, config: Config | None = None, client: httpx.Client | None = None):
        self.config = config or get_config()
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialized HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.config.sloyd_base_url,
                headers={"Content-Type": "application/json"},
                timeout=self.config.request_timeout_seconds,
            )
        return self._client

    def close(self):
        """Close HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def generate(self, prompt: str, output: str = "stl", **params) -> str:
        """
        Generate a model.

        Args:
            prompt: Text description
            output: Mesh format ("stl" or "glb")
            **params: Extra generation parameters (see FORWARDED_FIELDS)

        Returns:
            URL of the generated model

        Raises:
            SloydAPIError: Non-success response
            MissingModelURL: Success response without modelUrl
            httpx.HTTPError: Transport failure
        """
        payload = {"prompt": prompt, "output": output}
        payload.update({k: v for k, v in params.items() if k in FORWARDED_FIELDS and v is not None})

        response = self.client.post(
            f"/{self.API_VERSION}/generate",
            json=payload,
            headers={"Authorization": f"Bearer {self.config.sloyd_api_key}"},
        )

        if not response.is_success:
            raise SloydAPIError(
                f"Failed to generate model: {response.text}",
                status_code=response.status_code,
                response=response.text,
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        model_url = data.get("modelUrl") if isinstance(data, dict) else None
        if not model_url:
            raise MissingModelURL(f"No modelUrl in response: {response.text}", response.status_code)
        return model_url


__all__ = ["SloydClient", "SloydAPIError", "MissingModelURL", "FORWARDED_FIELDS"]
