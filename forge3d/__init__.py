"""
forge3d - Text/image to 3D model generation with payment gating

Client-side generation flow (validate, build, dispatch with placeholder
fallback, payment gate) plus a thin Flask backend proxying Sloyd and Stripe.

Example:
    >>> from forge3d import StudioController
    >>> controller = StudioController.from_config()
    >>> outcome = await controller.generate({"prompt": "a vase", "width": "60", "height": "120", "depth": "60"})
    >>> print(outcome.result.model_asset_url)
"""

__version__ = "0.1.0"

from .config import Config, get_config, load_config

# Lazy imports for optional modules
def __getattr__(name: str):
    if name == "StudioController":
        from .session import StudioController
        return StudioController
    elif name == "GenerationDispatcher":
        from .dispatcher import GenerationDispatcher
        return GenerationDispatcher
    elif name == "validate_form":
        from .validation import validate_form
        return validate_form
    elif name == "decide":
        from .payments import decide
        return decide
    elif name == "create_app":
        from .web.api import create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    # Config
    "Config",
    "get_config",
    "load_config",
    # Modules (lazy loaded)
    "StudioController",
    "GenerationDispatcher",
    "validate_form",
    "decide",
    "create_app",
    # Version
    "__version__",
]
