"""
REST API for the forge3d front end.

Provides endpoints for:
- Model generation (proxied to Sloyd)
- Stripe checkout and webhooks
- Anti-forgery tokens and plan lookup
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps

import httpx
import stripe
from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from forge3d.config import Config, get_config
from forge3d.sloyd import FORWARDED_FIELDS, MissingModelURL, SloydAPIError, SloydClient
from forge3d.web.database import PlanStore
from forge3d.web.payments import PaymentService
from forge3d.web.tokens import TOKEN_HEADER, TokenService

logger = logging.getLogger(__name__)

bp = Blueprint("forge3d", __name__)


@dataclass
class Services:
    """Backend services shared by the request handlers."""
    config: Config
    sloyd: SloydClient
    payments: PaymentService
    plans: PlanStore
    tokens: TokenService


def services() -> Services:
    return current_app.extensions["forge3d"]


def require_token(f):
    """Decorator rejecting requests without a valid anti-forgery token."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not services().tokens.verify(request.headers.get(TOKEN_HEADER)):
            return jsonify({"error": "Invalid or missing CSRF token"}), 403
        return f(*args, **kwargs)
    return decorated


# ============ Health ============

@bp.route("/")
def index():
    """Root endpoint."""
    return "AI 3D Model Creator backend is running!"


@bp.route("/api/health")
def health():
    """Health check endpoint."""
    config = services().config
    return jsonify({
        "status": "ok",
        "services": {
            "sloyd": config.has_sloyd,
            "stripe": config.has_stripe,
            "stripe_webhook": config.has_stripe_webhook,
        },
    })


# ============ Tokens & Plans ============

@bp.route("/csrf-token")
def csrf_token():
    """Issue a short-lived anti-forgery token."""
    return jsonify({"csrfToken": services().tokens.issue()})


@bp.route("/user-plan/<user_id>")
@require_token
def user_plan(user_id: str):
    """Plan tier of a user."""
    return jsonify({"plan": services().plans.get_plan(user_id).value})


# ============ Generation ============

@bp.route("/generate", methods=["POST"])
@require_token
def generate():
    """
    Generate a 3D model from a prompt.

    Request body:
        - prompt: Text description (required unless image given)
        - image: Optional base64 reference image
        - output: "stl" (default) or "glb"
        - measurements, material, supports, infill, shellThickness

    Returns:
        - modelUrl: URL of the generated model
    """
    data = request.get_json(silent=True) or {}

    prompt = data.get("prompt")
    if not prompt and not data.get("image"):
        return jsonify({"error": "Prompt is required"}), 400

    output = data.get("output") or "stl"
    if output not in ("stl", "glb"):
        return jsonify({"error": f"Unsupported output format: {output}"}), 400

    try:
        params = {name: data.get(name) for name in FORWARDED_FIELDS}
        model_url = services().sloyd.generate(prompt or "", output=output, **params)
    except MissingModelURL:
        logger.error("[Generate] Sloyd did not return a model URL")
        return jsonify({"error": "AI service did not return a model URL"}), 500
    except SloydAPIError as e:
        logger.error(f"[Generate] Sloyd API error: {e.response}")
        return jsonify({"error": "Failed to generate model from AI service"}), 500
    except httpx.HTTPError:
        logger.exception("[Generate] Error calling Sloyd API")
        return jsonify({"error": "Error generating model"}), 500

    return jsonify({"modelUrl": model_url})


# ============ Checkout ============

@bp.route("/create-checkout-session", methods=["POST"])
@require_token
def create_checkout_session():
    """
    Create a Stripe Checkout session.

    Request body:
        - priceId: Stripe price (required); ids containing "sub" are subscriptions
        - modelId: Model URL being purchased, or "subscription"
        - userId: Buyer

    Returns:
        - url: Checkout page to redirect to
    """
    data = request.get_json(silent=True) or {}

    price_id = data.get("priceId")
    if not price_id:
        return jsonify({"error": "Price ID is required"}), 400

    try:
        session = services().payments.create_checkout(
            price_id,
            origin=request.headers.get("Origin"),
            model_id=data.get("modelId"),
            user_id=data.get("userId"),
        )
    except (stripe.StripeError, ValueError):
        logger.exception("[Checkout] Stripe session creation error")
        return jsonify({"error": "Failed to create checkout session"}), 500

    return jsonify({"url": session.checkout_url})


@bp.route("/webhook", methods=["POST"])
def stripe_webhook():
    """Handle Stripe webhook events."""
    payload = request.get_data()
    signature = request.headers.get("Stripe-Signature")

    if not services().config.has_stripe_webhook:
        logger.error("[Webhook] STRIPE_WEBHOOK_SECRET not configured")
        return jsonify({"error": "Webhook not configured"}), 500

    if not signature:
        logger.error("[Webhook] Missing Stripe-Signature header")
        return "Webhook Error: Missing signature", 400

    try:
        event = services().payments.verify_webhook(payload, signature)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.info(f"[Webhook] Signature verification failed: {e}")
        return f"Webhook Error: {e}", 400

    services().payments.apply_event(event)
    return jsonify({"received": True})


# ============ Main ============

def create_app(
    config: Config | None = None,
    sloyd: SloydClient | None = None,
    plans: PlanStore | None = None,
) -> Flask:
    """Create and configure the Flask app."""
    config = config or get_config()

    for item in config.validate_for_backend():
        logger.warning(f"[Config] Not configured: {item}")

    app = Flask(__name__)
    CORS(app, origins=config.client_url)
    Limiter(
        get_remote_address,
        app=app,
        default_limits=[config.rate_limit],
        storage_uri="memory://",
    )

    plans = plans or PlanStore(config.database_url)
    app.extensions["forge3d"] = Services(
        config=config,
        sloyd=sloyd or SloydClient(config),
        payments=PaymentService(config, plans),
        plans=plans,
        tokens=TokenService(config.secret_key, config.csrf_token_max_age_seconds),
    )
    app.register_blueprint(bp)
    return app


def main():
    """Run the API server."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    config = get_config()
    app = create_app(config)
    logger.info(f"Backend running on port {config.port}")
    app.run(host="0.0.0.0", port=config.port)


if __name__ == "__main__":
    main()
