"""
Build the JSON payload sent to the generation backend.
"""

from __future__ import annotations

import base64

from .models import GenerationRequest, OutputFormat


def encode_image(image: bytes | str | None) -> str | None:
    """Base64-encode raw image bytes. Strings (data URLs, base64) pass through."""
    if not image:
        return None
    if isinstance(image, (bytes, bytearray)):
        return base64.b64encode(bytes(image)).decode("ascii")
    return image


def build_payload(
    request: GenerationRequest,
    user_id: str | None = None,
    output_format: OutputFormat | None = None,
) -> dict:
    """
    Convert a validated request into a generation payload.

    Args:
        request: Output of validate_form
        user_id: Signed-in user, if any
        output_format: Overrides request.output_format (an explicit
            download click after a preview, for instance)

    Returns:
        JSON-serializable dict
    """
    output_format = output_format or request.output_format

    payload = {
        "prompt": request.prompt_text,
        "measurements": request.dimensions.to_dict(),
        "material": request.material.value,
        "supports": request.supports_enabled,
        "infill": request.infill_percent,
        "shellThickness": request.shell_thickness_mm,
        "output": output_format.file_format,
        "userId": user_id,
    }

    image = encode_image(request.reference_image)
    if image:
        payload["image"] = image

    return payload


__all__ = ["build_payload", "encode_image"]
