"""Tests for generation payload construction."""

import base64
import json

from forge3d.models import Dimensions, GenerationRequest, Material, OutputFormat
from forge3d.request_builder import build_payload, encode_image


def make_request(**overrides):
    values = dict(
        prompt_text="a chess knight",
        dimensions=Dimensions(30.0, 60.0, 30.0),
        material=Material.WOOD,
        supports_enabled=True,
        infill_percent=35,
        shell_thickness_mm=0.8,
    )
    values.update(overrides)
    return GenerationRequest(**values)


def test_payload_carries_all_parameters():
    payload = build_payload(make_request(), user_id="u_1")
    assert payload["prompt"] == "a chess knight"
    assert payload["measurements"] == {"width": 30.0, "height": 60.0, "depth": 30.0, "unit": "mm"}
    assert payload["material"] == "wood"
    assert payload["supports"] is True
    assert payload["infill"] == 35
    assert payload["shellThickness"] == 0.8
    assert payload["userId"] == "u_1"
    assert "image" not in payload


def test_preview_requests_interchange_format():
    assert build_payload(make_request())["output"] == "glb"


def test_download_requests_print_ready_format():
    request = make_request(output_format=OutputFormat.DOWNLOAD)
    assert build_payload(request)["output"] == "stl"


def test_explicit_format_overrides_request():
    payload = build_payload(make_request(), output_format=OutputFormat.DOWNLOAD)
    assert payload["output"] == "stl"


def test_image_bytes_are_base64_encoded():
    payload = build_payload(make_request(prompt_text="", reference_image=b"\x89PNG"))
    assert base64.b64decode(payload["image"]) == b"\x89PNG"


def test_encoded_image_strings_pass_through():
    assert encode_image("data:image/png;base64,AAAA") == "data:image/png;base64,AAAA"
    assert encode_image(None) is None


def test_payload_is_json_serializable():
    payload = build_payload(make_request(reference_image=b"abc"), user_id=None)
    assert json.loads(json.dumps(payload))["userId"] is None
