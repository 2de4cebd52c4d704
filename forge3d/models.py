"""
Value types shared by the generation flow and the payment gate.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Material(str, Enum):
    """Printable materials offered in the generation form."""
    PLASTIC = "plastic"
    METAL = "metal"
    WOOD = "wood"
    CERAMIC = "ceramic"
    RESIN = "resin"


class OutputFormat(str, Enum):
    """What the caller intends to do with the generated model."""
    PREVIEW = "preview"    # Rendered in the viewer
    DOWNLOAD = "download"  # Sent to a printer

    @property
    def file_format(self) -> str:
        """Mesh format requested from the generation backend."""
        return "stl" if self is OutputFormat.DOWNLOAD else "glb"


class PlanTier(str, Enum):
    """Subscription level."""
    FREE = "free"
    BASIC = "basic"
    PRO = "pro"

    @classmethod
    def parse(cls, value) -> PlanTier:
        """Parse a plan string, falling back to free for anything unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.FREE

    @property
    def is_paid(self) -> bool:
        return self is not PlanTier.FREE


@dataclass(frozen=True)
class Dimensions:
    """Bounding box of the requested model in millimeters."""
    width: float
    height: float
    depth: float

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "depth": self.depth,
            "unit": "mm",
        }


@dataclass(frozen=True)
class GenerationRequest:
    """A validated generation request. Build through forge3d.validation."""
    prompt_text: str
    dimensions: Dimensions
    material: Material = Material.PLASTIC
    supports_enabled: bool = False
    infill_percent: int = 20
    shell_thickness_mm: float = 1.2
    reference_image: bytes | str | None = None
    output_format: OutputFormat = OutputFormat.PREVIEW

    @property
    def has_image(self) -> bool:
        return bool(self.reference_image)


@dataclass(frozen=True)
class GenerationResult:
    """A renderable model, either generated or the placeholder."""
    model_asset_url: str
    is_placeholder: bool = False

    def to_dict(self) -> dict:
        return {
            "model_asset_url": self.model_asset_url,
            "is_placeholder": self.is_placeholder,
        }


@dataclass(frozen=True)
class UserIdentity:
    """Signed-in user as reported by the identity provider."""
    id: str
    email: str = ""


@dataclass(frozen=True)
class UserPlanState:
    """Identity plus plan tier, owned by the session."""
    identity: UserIdentity | None = None
    plan_tier: PlanTier = PlanTier.FREE

    @property
    def is_signed_in(self) -> bool:
        return self.identity is not None


# Associated model URL sent for subscription purchases
SUBSCRIPTION_SENTINEL = "subscription"


@dataclass(frozen=True)
class CheckoutIntent:
    """One payment attempt."""
    user_id: str
    price_identifier: str | None = None
    associated_model_url: str | None = None

    def to_payload(self) -> dict:
        return {
            "priceId": self.price_identifier,
            "modelId": self.associated_model_url,
            "userId": self.user_id,
        }


__all__ = [
    "Material",
    "OutputFormat",
    "PlanTier",
    "Dimensions",
    "GenerationRequest",
    "GenerationResult",
    "UserIdentity",
    "UserPlanState",
    "CheckoutIntent",
    "SUBSCRIPTION_SENTINEL",
]
