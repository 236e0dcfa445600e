# tests/test_http_app.py
"""End-to-end tests for pagebot/transport/http_app.py (in-memory store)."""
from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from pagebot.config import settings
from pagebot.transport.http_app import app

ADMIN_TOKEN = "test-admin-token-0123456789"
AUTH = {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture
def client():
    with patch.object(settings, "admin_token", ADMIN_TOKEN):
        with TestClient(app) as c:
            yield c


def _referral(sender_id: str, ref: str) -> dict:
    return {"object": "page", "entry": [{"messaging": [
        {"sender": {"id": sender_id}, "referral": {"ref": ref, "source": "SHORTLINK"}},
    ]}]}


def _message(sender_id: str, mid: str, text: str) -> dict:
    return {"object": "page", "entry": [{"messaging": [
        {"sender": {"id": sender_id}, "message": {"mid": mid, "text": text}},
    ]}]}


# ============================================================================
# Public endpoints
# ============================================================================

class TestProbes:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}
        assert resp.headers["X-Frame-Options"] == "DENY"

    def test_ready(self, client):
        resp = client.get("/ready")
        assert resp.status_code == 200


class TestWebhookRoutes:
    def test_verify_with_stored_token(self, client):
        client.put("/admin/settings", json={"facebookVerifyToken": "my-hook-token"}, headers=AUTH)

        resp = client.get("/webhook", params={
            "hub.mode": "subscribe",
            "hub.verify_token": "my-hook-token",
            "hub.challenge": "42",
        })
        assert resp.status_code == 200
        assert resp.text == "42"

    def test_verify_rejects_wrong_token(self, client):
        resp = client.get("/webhook", params={
            "hub.mode": "subscribe",
            "hub.verify_token": "wrong",
            "hub.challenge": "42",
        })
        assert resp.status_code == 403

    def test_invalid_json_is_500(self, client):
        resp = client.post("/webhook", content=b"{not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Webhook processing failed"}

    @pytest.mark.parametrize("bad_item", [
        {"message": {"mid": "m2", "text": "no sender"}},
        {"sender": {"id": "u2"}, "message": "oops"},
    ])
    def test_bad_event_does_not_drop_batch(self, client, bad_item):
        body = _message("u1", "m1", "hello")
        body["entry"][0]["messaging"].append(bad_item)
        body["entry"][0]["messaging"].append(
            {"sender": {"id": "u3"}, "message": {"mid": "m3", "text": "later"}},
        )

        resp = client.post("/webhook", json=body)
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

        senders = {c["senderId"] for c in client.get("/admin/conversations", headers=AUTH).json()}
        assert senders == {"u1", "u3"}

    def test_referral_then_message_flow(self, client):
        created = client.post("/admin/campaigns", json={
            "name": "Winter",
            "description": "Winter deals",
            "refKey": "winter",
            "buttons": [{"id": "b1", "label": "Price", "response": "From 99"}],
        }, headers=AUTH).json()
        client.post("/admin/responses", json={"trigger": "delivery", "message": "3 days"}, headers=AUTH)

        assert client.post("/webhook", json=_referral("u1", "winter")).json() == {"success": True}
        assert client.post("/webhook", json=_message("u1", "m1", "Delivery time?")).json() == {"success": True}

        campaigns = client.get("/admin/campaigns", headers=AUTH).json()
        winter = next(c for c in campaigns if c["id"] == created["id"])
        assert winter["impressions"] == 1
        assert winter["conversions"] == 1

        conversations = client.get("/admin/conversations", headers=AUTH).json()
        conv = next(c for c in conversations if c["senderId"] == "u1")
        assert conv["lastMessage"] == "Delivery time?"
        assert conv["campaignName"] == "Winter"
        assert conv["customerName"] == "User u1"


# ============================================================================
# Admin endpoints
# ============================================================================

class TestAdminAuth:
    def test_missing_token_is_401(self, client):
        resp = client.get("/admin/campaigns")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Authentication required"}

    def test_unconfigured_admin_token_is_503(self):
        with patch.object(settings, "admin_token", None):
            with TestClient(app) as c:
                assert c.get("/admin/campaigns", headers=AUTH).status_code == 503


class TestAdminRoutes:
    def test_settings_are_masked(self, client):
        client.put("/admin/settings", json={"openaiApiKey": "sk-test-abcdef1234"}, headers=AUTH)
        data = client.get("/admin/settings", headers=AUTH).json()
        assert data["openaiApiKey"] == "****1234"
        assert data["openaiApiKeyConfigured"] is True

    def test_settings_form_round_trip_keeps_secrets(self, client):
        client.put("/admin/settings", json={
            "facebookPageAccessToken": "EAAB-page-token-1234",
            "openaiApiKey": "sk-live-key-5678",
        }, headers=AUTH)

        form = client.get("/admin/settings", headers=AUTH).json()
        form["facebookVerifyToken"] = "changed-verify"
        assert client.put("/admin/settings", json=form, headers=AUTH).status_code == 200

        stored = client.app.state.repository
        api = client.portal.call(stored.get_api_settings)
        assert api.facebook_page_access_token == "EAAB-page-token-1234"
        assert api.openai_api_key == "sk-live-key-5678"
        assert api.facebook_verify_token == "changed-verify"

    def test_null_campaign_name_is_400(self, client):
        created = client.post("/admin/campaigns", json={"name": "Winter"}, headers=AUTH).json()
        resp = client.put(f"/admin/campaigns/{created['id']}", json={"name": None}, headers=AUTH)
        assert resp.status_code == 400

        campaigns = client.get("/admin/campaigns", headers=AUTH).json()
        assert campaigns[0]["name"] == "Winter"

    def test_invalid_payload_is_400(self, client):
        resp = client.post("/admin/campaigns", json={"description": "no name"}, headers=AUTH)
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_update_unknown_campaign_is_404(self, client):
        resp = client.put("/admin/campaigns/missing", json={"name": "X"}, headers=AUTH)
        assert resp.status_code == 404
        assert resp.json() == {"error": "Campaign not found"}

    def test_toggle_keeps_model(self, client):
        client.put("/admin/ai/settings", json={"model": "gpt-4", "enabled": True}, headers=AUTH)
        resp = client.post("/admin/ai/toggle", json={"enabled": False}, headers=AUTH)
        assert resp.json() == {"success": True, "enabled": False}

        ai = client.get("/admin/ai/settings", headers=AUTH).json()
        assert ai["enabled"] is False
        assert ai["model"] == "gpt-4"

    def test_knowledge_and_products(self, client):
        item = client.post("/admin/ai/knowledge", json={
            "content": "Ships in 3 days", "category": "shipping", "productName": "Lamp",
        }, headers=AUTH).json()

        assert {"name": "Lamp"} in client.get("/admin/products", headers=AUTH).json()

        resp = client.delete(f"/admin/ai/knowledge/{item['id']}", headers=AUTH)
        assert resp.json() == {"success": True, "id": item["id"]}

    def test_stats_shape(self, client):
        stats = client.get("/admin/stats", headers=AUTH).json()
        assert set(stats) == {"totalConversations", "newToday", "aiEnabled", "activeCampaigns"}

    def test_metrics(self, client):
        client.post("/webhook", json=_message("u9", "m9", "hello"))
        metrics = client.get("/admin/metrics", headers=AUTH).json()
        assert metrics["counters"]["webhook_events_total{kind=message}"] == 1
