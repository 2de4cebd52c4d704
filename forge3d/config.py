"""
Configuration management for forge3d.

Loads settings from environment variables or .env file.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Always-available model shown whenever generation fails
DEFAULT_PLACEHOLDER_MODEL_URL = (
    "https://modelviewer.dev/shared-assets/models/Astronaut.glb"
)


class Config(BaseSettings):
    """Client and backend configuration loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backend the client core talks to
    backend_url: str = Field(default="http://localhost:3000", description="Base URL of the forge3d backend")
    generate_path: str = Field(default="/generate", description="Generation endpoint path")
    checkout_path: str = Field(default="/create-checkout-session", description="Checkout endpoint path")
    token_path: str = Field(default="/csrf-token", description="Anti-forgery token endpoint path")
    plan_path: str = Field(default="/user-plan", description="Plan lookup endpoint path (user id appended)")
    placeholder_model_url: str = Field(default=DEFAULT_PLACEHOLDER_MODEL_URL, description="Model substituted on failure")
    request_timeout_seconds: float = Field(default=60.0, description="Timeout for backend requests")
    allow_unauthenticated: bool = Field(
        default=False,
        description="Send generation requests without an anti-forgery token when the token fetch fails",
    )

    # Sloyd API (text to 3D)
    sloyd_api_key: str = Field(default="", description="Sloyd API key for 3D generation")
    sloyd_base_url: str = Field(default="https://api.sloyd.ai", description="Sloyd API base URL")

    # Payment (Stripe)
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")
    stripe_webhook_secret: str = Field(default="", description="Stripe webhook signing secret")
    stripe_basic_price_ids: str = Field(default="", description="Comma-separated subscription prices granting the basic plan")
    stripe_pro_price_ids: str = Field(default="", description="Comma-separated subscription prices granting the pro plan")

    # Database
    database_url: str = Field(default="sqlite:///./forge3d.db", description="Database connection URL")

    # Backend server
    secret_key: str = Field(default="", description="Signing key for anti-forgery tokens")
    csrf_token_max_age_seconds: int = Field(default=3600, description="Lifetime of an anti-forgery token")
    client_url: str = Field(default="http://localhost:5173", description="Allowed CORS origin and checkout redirect fallback")
    rate_limit: str = Field(default="100 per 15 minutes", description="Per-IP request limit")
    port: int = Field(default=3000, description="Port the backend listens on")

    @field_validator("backend_url", "sloyd_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/") if isinstance(v, str) else v

    @property
    def has_sloyd(self) -> bool:
        """Check if Sloyd API is configured."""
        return bool(self.sloyd_api_key)

    @property
    def has_stripe(self) -> bool:
        """Check if Stripe is configured."""
        return bool(self.stripe_secret_key)

    @property
    def has_stripe_webhook(self) -> bool:
        """Check if Stripe webhook verification is configured."""
        return bool(self.stripe_webhook_secret)

    @staticmethod
    def _split(value: str) -> list[str]:
        return [item.strip() for item in value.split(",") if item.strip()]

    @property
    def basic_price_ids(self) -> list[str]:
        return self._split(self.stripe_basic_price_ids)

    @property
    def pro_price_ids(self) -> list[str]:
        return self._split(self.stripe_pro_price_ids)

    def validate_for_backend(self) -> list[str]:
        """Validate configuration for the backend. Returns list of missing items."""
        missing = []
        if not self.has_sloyd:
            missing.append("Sloyd API (SLOYD_API_KEY)")
        if not self.has_stripe:
            missing.append("Stripe (STRIPE_SECRET_KEY)")
        if not self.has_stripe_webhook:
            missing.append("Stripe webhook (STRIPE_WEBHOOK_SECRET)")
        if not self.secret_key:
            missing.append("Token signing key (SECRET_KEY)")
        return missing


# Singleton instance
_config: Config | None = None


def get_config() -> Config:
    """Get or create the config singleton."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def load_config(env_file: str | Path | None = None) -> Config:
    """Load config from specific env file."""
    global _config
    if env_file:
        _config = Config(_env_file=env_file)
    else:
        _config = Config()
    return _config


__all__ = ["Config", "get_config", "load_config", "DEFAULT_PLACEHOLDER_MODEL_URL"]
