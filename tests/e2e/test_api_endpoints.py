"""
End-to-End API Tests

Tests the account and payment endpoints against a running local stack.
Run with: E2E_BASE_URL=http://localhost:5000 pytest tests/e2e/test_api_endpoints.py -v

Stripe calls are not exercised; only the paths that reject before reaching
the provider are covered here.
"""

import os
from uuid import uuid4

import httpx
import pytest

BASE_URL = os.environ.get("E2E_BASE_URL", "")

pytestmark = pytest.mark.skipif(not BASE_URL, reason="E2E_BASE_URL not set")


@pytest.fixture
def client():
    """HTTP client for API requests."""
    with httpx.Client(base_url=BASE_URL, timeout=10.0) as http_client:
        yield http_client


@pytest.fixture
def new_user(client):
    """Freshly created account."""
    email = f"e2e-{uuid4().hex[:12]}@example.com"
    response = client.post("/api/users", json={"email": email, "displayName": "E2E User"})
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def token(client, new_user):
    response = client.post("/api/users/token", json={"email": new_user["email"]})
    assert response.status_code == 200
    return response.json()["accessToken"]


class TestHealthAndMetrics:
    """Test basic health and metrics endpoints."""

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "connected"

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "running" in response.json()["message"]

    def test_metrics_endpoint(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "lessons_http_requests_total" in response.text


class TestAccounts:
    """Account signup and profile endpoints."""

    def test_new_account_is_not_premium(self, new_user):
        assert new_user["isPremium"] is False
        assert new_user["paymentStatus"] is None

    def test_duplicate_signup_rejected(self, client, new_user):
        response = client.post(
            "/api/users", json={"email": new_user["email"].upper(), "displayName": "Again"}
        )
        assert response.status_code == 400

    def test_profile_update_cannot_grant_premium(self, client, new_user):
        response = client.put(
            f"/api/users/{new_user['_id']}",
            json={"displayName": "Renamed", "isPremium": True, "paymentStatus": "paid"},
        )
        assert response.status_code == 200

        account = client.get(f"/api/users/{new_user['_id']}").json()
        assert account["displayName"] == "Renamed"
        assert account["isPremium"] is False

    def test_get_account_not_found(self, client):
        response = client.get(f"/api/users/{uuid4()}")
        assert response.status_code == 404


class TestPaymentRejections:
    """Payment paths that must fail before any provider call."""

    def test_checkout_requires_token(self, client, new_user):
        response = client.post(
            "/api/payment/create-checkout-session",
            json={"email": new_user["email"], "userId": new_user["_id"]},
        )
        assert response.status_code == 401

    def test_checkout_missing_email(self, client, new_user, token):
        response = client.post(
            "/api/payment/create-checkout-session",
            json={"userId": new_user["_id"]},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_unsigned_webhook_rejected(self, client, new_user):
        response = client.post(
            "/api/payment/webhook",
            content=b'{"id": "evt_1", "type": "checkout.session.completed"}',
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )
        assert response.status_code == 400

        account = client.get(f"/api/users/{new_user['_id']}").json()
        assert account["isPremium"] is False
