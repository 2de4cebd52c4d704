"""Tests for the backend REST API."""

import hashlib
import hmac
import json
import time
from types import SimpleNamespace

import httpx
import pytest
import stripe

from forge3d.config import Config
from forge3d.models import PlanTier
from forge3d.sloyd import SloydClient
from forge3d.web.api import create_app
from forge3d.web.database import PlanStore

WEBHOOK_SECRET = "whsec_test"


def make_config(**overrides):
    values = dict(
        sloyd_api_key="sloyd-key",
        sloyd_base_url="https://api.sloyd.test",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_pro_price_ids="price_sub_pro_monthly",
        secret_key="signing-key",
        database_url="sqlite://",
        client_url="http://localhost:5173",
    )
    values.update(overrides)
    return Config(_env_file=None, **values)


class FakeSloyd:
    """Sloyd API stand-in recording what it was sent."""

    def __init__(self, response=None):
        self.response = response or httpx.Response(200, json={"modelUrl": "https://cdn.sloyd.test/m.stl"})
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


@pytest.fixture
def sloyd():
    return FakeSloyd()


@pytest.fixture
def plans():
    return PlanStore("sqlite://")


@pytest.fixture
def app(sloyd, plans):
    config = make_config()
    client = httpx.Client(base_url=config.sloyd_base_url, transport=httpx.MockTransport(sloyd))
    return create_app(config, sloyd=SloydClient(config, client), plans=plans)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def token(client):
    return client.get("/csrf-token").get_json()["csrfToken"]


def sign(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


class TestHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert b"running" in response.data

    def test_health_reports_services(self, client):
        data = client.get("/api/health").get_json()
        assert data["services"] == {"sloyd": True, "stripe": True, "stripe_webhook": True}


class TestGenerate:

    def test_requires_token(self, client):
        response = client.post("/generate", json={"prompt": "a fox"})
        assert response.status_code == 403

    def test_rejects_forged_token(self, client):
        response = client.post("/generate", json={"prompt": "a fox"}, headers={"X-CSRF-Token": "forged"})
        assert response.status_code == 403

    def test_requires_prompt(self, client, token):
        response = client.post("/generate", json={}, headers={"X-CSRF-Token": token})
        assert response.status_code == 400
        assert response.get_json()["error"] == "Prompt is required"

    def test_returns_model_url(self, client, token, sloyd):
        response = client.post(
            "/generate",
            json={"prompt": "a fox", "material": "wood", "infill": 20, "userId": "u_1"},
            headers={"X-CSRF-Token": token},
        )

        assert response.status_code == 200
        assert response.get_json() == {"modelUrl": "https://cdn.sloyd.test/m.stl"}

        sent = sloyd.requests[0]
        assert sent.url.path == "/v1/generate"
        assert sent.headers["Authorization"] == "Bearer sloyd-key"
        assert json.loads(sent.content) == {"prompt": "a fox", "output": "stl", "material": "wood", "infill": 20}

    def test_passes_preview_format(self, client, token, sloyd):
        client.post("/generate", json={"prompt": "a fox", "output": "glb"}, headers={"X-CSRF-Token": token})
        assert json.loads(sloyd.requests[0].content)["output"] == "glb"

    def test_rejects_unknown_format(self, client, token):
        response = client.post("/generate", json={"prompt": "a fox", "output": "fbx"}, headers={"X-CSRF-Token": token})
        assert response.status_code == 400

    def test_sloyd_error(self, client, token, sloyd):
        sloyd.response = httpx.Response(502, text="upstream down")
        response = client.post("/generate", json={"prompt": "a fox"}, headers={"X-CSRF-Token": token})
        assert response.status_code == 500
        assert response.get_json()["error"] == "Failed to generate model from AI service"

    def test_sloyd_without_model_url(self, client, token, sloyd):
        sloyd.response = httpx.Response(200, json={"status": "ok"})
        response = client.post("/generate", json={"prompt": "a fox"}, headers={"X-CSRF-Token": token})
        assert response.status_code == 500
        assert response.get_json()["error"] == "AI service did not return a model URL"

    def test_sloyd_unreachable(self, client, token, sloyd):
        sloyd.response = httpx.ConnectError("refused")
        response = client.post("/generate", json={"prompt": "a fox"}, headers={"X-CSRF-Token": token})
        assert response.status_code == 500
        assert response.get_json()["error"] == "Error generating model"


class TestCheckout:

    @pytest.fixture
    def stripe_sessions(self, monkeypatch):
        created = []

        def fake_create(**params):
            created.append(params)
            return SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.test/cs_test_1")

        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
        return created

    def test_requires_price(self, client, token, stripe_sessions):
        response = client.post("/create-checkout-session", json={}, headers={"X-CSRF-Token": token})
        assert response.status_code == 400
        assert stripe_sessions == []

    def test_one_time_payment(self, client, token, stripe_sessions):
        response = client.post(
            "/create-checkout-session",
            json={"priceId": "price_onetime", "modelId": "https://x/m.stl", "userId": "u_1"},
            headers={"X-CSRF-Token": token, "Origin": "https://forge3d.test"},
        )

        assert response.status_code == 200
        assert response.get_json() == {"url": "https://checkout.stripe.test/cs_test_1"}

        params = stripe_sessions[0]
        assert params["mode"] == "payment"
        assert params["line_items"] == [{"price": "price_onetime", "quantity": 1}]
        assert params["success_url"] == "https://forge3d.test/success?session_id={CHECKOUT_SESSION_ID}"
        assert params["cancel_url"] == "https://forge3d.test/cancel"
        assert params["metadata"]["modelId"] == "https://x/m.stl"
        assert "subscription_data" not in params

    def test_subscription(self, client, token, stripe_sessions):
        client.post(
            "/create-checkout-session",
            json={"priceId": "price_sub_pro_monthly", "modelId": "subscription", "userId": "u_1"},
            headers={"X-CSRF-Token": token},
        )

        params = stripe_sessions[0]
        assert params["mode"] == "subscription"
        assert params["subscription_data"] == {"metadata": {"userId": "u_1"}}
        assert params["success_url"].startswith("http://localhost:5173/success")

    def test_model_id_defaults_to_unknown(self, client, token, stripe_sessions):
        client.post("/create-checkout-session", json={"priceId": "price_onetime"}, headers={"X-CSRF-Token": token})
        assert stripe_sessions[0]["metadata"]["modelId"] == "unknown"

    def test_stripe_failure(self, client, token, monkeypatch):
        def failing_create(**params):
            raise stripe.StripeError("card declined")

        monkeypatch.setattr(stripe.checkout.Session, "create", failing_create)
        response = client.post("/create-checkout-session", json={"priceId": "price_onetime"}, headers={"X-CSRF-Token": token})
        assert response.status_code == 500
        assert response.get_json()["error"] == "Failed to create checkout session"


class TestWebhookAndPlans:

    def post_event(self, client, event):
        payload = json.dumps(event).encode()
        return client.post(
            "/webhook",
            data=payload,
            headers={"Stripe-Signature": sign(payload), "Content-Type": "application/json"},
        )

    def test_rejects_bad_signature(self, client):
        payload = b'{"type": "checkout.session.completed"}'
        response = client.post("/webhook", data=payload, headers={"Stripe-Signature": sign(payload, "whsec_other")})
        assert response.status_code == 400

    def test_rejects_missing_signature(self, client):
        assert client.post("/webhook", data=b"{}").status_code == 400

    def test_one_time_checkout_does_not_change_plan(self, client, plans):
        event = {
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_1", "mode": "payment", "metadata": {"userId": "u_1"}}},
        }
        response = self.post_event(client, event)
        assert response.get_json() == {"received": True}
        assert plans.get_plan("u_1") == PlanTier.FREE

    def test_subscription_checkout_sets_plan(self, client, plans):
        event = {
            "type": "checkout.session.completed",
            "data": {"object": {
                "id": "cs_2",
                "mode": "subscription",
                "client_reference_id": "u_1",
                "customer": "cus_1",
                "subscription": "sub_1",
                "metadata": {"userId": "u_1", "priceId": "price_sub_pro_monthly"},
            }},
        }
        self.post_event(client, event)
        assert plans.get_plan("u_1") == PlanTier.PRO

    def test_subscription_deleted_resets_plan(self, client, plans):
        plans.set_plan("u_1", PlanTier.BASIC, stripe_subscription_id="sub_1")
        event = {
            "type": "customer.subscription.deleted",
            "data": {"object": {"id": "sub_1", "status": "canceled", "metadata": {}}},
        }
        self.post_event(client, event)
        assert plans.get_plan("u_1") == PlanTier.FREE

    def test_subscription_updated_uses_price(self, client, plans):
        event = {
            "type": "customer.subscription.updated",
            "data": {"object": {
                "id": "sub_2",
                "status": "active",
                "metadata": {"userId": "u_2"},
                "items": {"data": [{"price": {"id": "price_sub_basic"}}]},
            }},
        }
        self.post_event(client, event)
        assert plans.get_plan("u_2") == PlanTier.BASIC

    def test_user_plan_requires_token(self, client):
        assert client.get("/user-plan/u_1").status_code == 403

    def test_user_plan_lookup(self, client, token, plans):
        plans.set_plan("u_9", PlanTier.PRO)
        response = client.get("/user-plan/u_9", headers={"X-CSRF-Token": token})
        assert response.get_json() == {"plan": "pro"}

    def test_unknown_user_is_free(self, client, token):
        response = client.get("/user-plan/nobody", headers={"X-CSRF-Token": token})
        assert response.get_json() == {"plan": "free"}


def test_rate_limit(sloyd, plans):
    config = make_config(rate_limit="2 per minute")
    client = create_app(config, sloyd=SloydClient(config), plans=plans).test_client()
    assert client.get("/").status_code == 200
    assert client.get("/").status_code == 200
    assert client.get("/").status_code == 429
