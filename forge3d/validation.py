"""
Input validation for the generation form.

Turns raw form fields (strings and booleans, as a browser submits them)
into a GenerationRequest, or raises the first ValidationError that applies.
No network access and no state.
"""

from __future__ import annotations

import math
import re
from typing import Mapping, Optional, Tuple

from .models import Dimensions, GenerationRequest, Material, OutputFormat


MAX_PROMPT_LENGTH = 1000
MIN_SHELL_THICKNESS_MM = 0.4

DEFAULT_INFILL_PERCENT = 20
DEFAULT_SHELL_THICKNESS_MM = 1.2

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_MARKUP_CHARS = re.compile(r"[<>]")
_WHITESPACE = re.compile(r"\s+")


class ValidationError(ValueError):
    """A form value was rejected. `message` is safe to show to the user."""

    kind = "invalid_input"

    def __init__(self, message: str, field: str | None = None):
        self.message = message
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "field": self.field}


class MissingInput(ValidationError):
    kind = "missing_input"


class InvalidDimension(ValidationError):
    kind = "invalid_dimension"


class InvalidInfill(ValidationError):
    kind = "invalid_infill"


class InvalidShellThickness(ValidationError):
    kind = "invalid_shell_thickness"


class InvalidMaterial(ValidationError):
    kind = "invalid_material"


def sanitize_prompt(text) -> str:
    """Strip markup and control characters, collapse whitespace, cap length."""
    if not text:
        return ""
    text = _CONTROL_CHARS.sub(" ", str(text))
    text = _MARKUP_CHARS.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    return text[:MAX_PROMPT_LENGTH].rstrip()


def _parse_number(value) -> float | None:
    """Parse a form value as a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _parse_flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _parse_dimension(fields: Mapping, name: str) -> float:
    number = _parse_number(fields.get(name))
    if number is None or number <= 0:
        raise InvalidDimension(
            f"{name.capitalize()} must be a positive number of millimeters",
            field=name,
        )
    return number


def _parse_infill(value) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return DEFAULT_INFILL_PERCENT
    number = _parse_number(value)
    if number is None or not number.is_integer() or not 0 <= number <= 100:
        raise InvalidInfill("Infill must be a whole number between 0 and 100", field="infill")
    return int(number)


def _parse_shell_thickness(value) -> float:
    if value is None or (isinstance(value, str) and not value.strip()):
        return DEFAULT_SHELL_THICKNESS_MM
    number = _parse_number(value)
    if number is None or number < MIN_SHELL_THICKNESS_MM:
        raise InvalidShellThickness(
            f"Shell thickness must be at least {MIN_SHELL_THICKNESS_MM} mm",
            field="shell_thickness",
        )
    return number


def _parse_material(value) -> Material:
    if isinstance(value, Material):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        return Material.PLASTIC
    try:
        return Material(str(value).strip().lower())
    except ValueError:
        valid = [m.value for m in Material]
        raise InvalidMaterial(f"Invalid material: {value}. Valid: {valid}", field="material")


def _parse_output_format(value) -> OutputFormat:
    if isinstance(value, OutputFormat):
        return value
    if value and str(value).strip().lower() == OutputFormat.DOWNLOAD.value:
        return OutputFormat.DOWNLOAD
    return OutputFormat.PREVIEW


def validate_form(fields: Mapping) -> GenerationRequest:
    """
    Validate raw form fields.

    Recognized keys: prompt, image, width, height, depth, material,
    supports, infill, shell_thickness, output_format.

    Returns:
        Normalized GenerationRequest

    Raises:
        MissingInput, InvalidDimension, InvalidInfill,
        InvalidShellThickness or InvalidMaterial, checked in that order.
    """
    prompt = sanitize_prompt(fields.get("prompt"))
    image = fields.get("image")
    if isinstance(image, str):
        image = image.strip()
    image = image or None

    if not prompt and not image:
        raise MissingInput("Describe your model or upload a reference image", field="prompt")

    dimensions = Dimensions(
        width=_parse_dimension(fields, "width"),
        height=_parse_dimension(fields, "height"),
        depth=_parse_dimension(fields, "depth"),
    )
    infill = _parse_infill(fields.get("infill"))
    shell = _parse_shell_thickness(fields.get("shell_thickness"))
    material = _parse_material(fields.get("material"))

    return GenerationRequest(
        prompt_text=prompt,
        dimensions=dimensions,
        material=material,
        supports_enabled=_parse_flag(fields.get("supports", False)),
        infill_percent=infill,
        shell_thickness_mm=shell,
        reference_image=image,
        output_format=_parse_output_format(fields.get("output_format")),
    )


def check_form(fields: Mapping) -> Tuple[Optional[GenerationRequest], Optional[ValidationError]]:
    """
    Validate form fields without raising.

    Returns:
        (request, None) or (None, error)
    """
    try:
        return validate_form(fields), None
    except ValidationError as e:
        return None, e


__all__ = [
    "ValidationError",
    "MissingInput",
    "InvalidDimension",
    "InvalidInfill",
    "InvalidShellThickness",
    "InvalidMaterial",
    "sanitize_prompt",
    "validate_form",
    "check_form",
    "MAX_PROMPT_LENGTH",
    "MIN_SHELL_THICKNESS_MM",
]
