import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.database import get_db
from app.main import app
from app.models import WhatsAppConversation
from app.services.ai_service import ReplyOutcome
from app.services.zapi_service import SendResult

RECEIVE_URL = "/webhook/whatsapp/receive"

ZAPI_PAYLOAD = {
    "phone": "5531999990000",
    "messageId": "abc123",
    "fromMe": False,
    "senderName": "Maria",
    "text": {"message": "Bom dia"},
}


@pytest.fixture
def client(db, mock_env):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def pipeline():
    outcome = ReplyOutcome(text="😊 Bom dia, Maria!", source="completion")
    with patch("app.services.message_service.generate_reply", return_value=outcome), patch(
        "app.services.message_service.send_text", return_value=SendResult(success=True)
    ) as send, patch("app.services.welcome_service.send_text", return_value=SendResult(success=True)):
        yield send


class TestWebhookSecret:
    def test_missing_secret_rejected(self, client, monkeypatch):
        monkeypatch.setattr(settings, "webhook_secret", "s3cret")
        response = client.post(RECEIVE_URL, json=ZAPI_PAYLOAD)
        assert response.status_code == 401

    def test_wrong_secret_rejected(self, client, monkeypatch):
        monkeypatch.setattr(settings, "webhook_secret", "s3cret")
        response = client.post(RECEIVE_URL, json=ZAPI_PAYLOAD, headers={"X-Webhook-Secret": "nope"})
        assert response.status_code == 401

    @pytest.mark.parametrize("header", ["X-Webhook-Secret", "X-Webhook-Token", "Client-Token"])
    def test_header_secret_accepted(self, client, pipeline, monkeypatch, header):
        monkeypatch.setattr(settings, "webhook_secret", "s3cret")
        response = client.post(RECEIVE_URL, json=ZAPI_PAYLOAD, headers={header: "s3cret"})
        assert response.status_code == 200
        assert response.json()["status"] == "success"

    def test_query_secret_accepted(self, client, pipeline, monkeypatch):
        monkeypatch.setattr(settings, "webhook_secret", "s3cret")
        response = client.post(f"{RECEIVE_URL}?webhook_secret=s3cret", json=ZAPI_PAYLOAD)
        assert response.status_code == 200


class TestReceive:
    def test_missing_zapi_credentials(self, client, monkeypatch):
        monkeypatch.setattr(settings, "zapi_token", None)
        response = client.post(RECEIVE_URL, json=ZAPI_PAYLOAD)
        assert response.status_code == 500

    def test_success(self, client, pipeline, db):
        response = client.post(RECEIVE_URL, json=ZAPI_PAYLOAD)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "success"
        assert data["response"] == "😊 Bom dia, Maria!"
        assert data["user"] == "Maria"
        assert data["message_id"] == "abc123"
        assert data["message_sent"] is True
        assert "timestamp" in data
        pipeline.assert_called_once_with("5531999990000", "😊 Bom dia, Maria!")
        assert db.query(WhatsAppConversation).count() == 1

    def test_redelivery_is_ignored(self, client, pipeline):
        client.post(RECEIVE_URL, json=ZAPI_PAYLOAD)
        response = client.post(RECEIVE_URL, json=ZAPI_PAYLOAD)
        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        assert pipeline.call_count == 1

    def test_empty_body(self, client):
        response = client.post(RECEIVE_URL, content=b"")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ignored"
        assert data["reason"] == "empty_body"
        assert "phone" not in data

    def test_invalid_json(self, client):
        response = client.post(RECEIVE_URL, content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 200
        assert response.json()["status"] == "error"
        assert response.json()["reason"] == "invalid_json"

    def test_own_message(self, client, pipeline):
        response = client.post(RECEIVE_URL, json={**ZAPI_PAYLOAD, "fromMe": True})
        assert response.json()["reason"] == "own_message"
        pipeline.assert_not_called()

    def test_no_phone(self, client):
        payload = {k: v for k, v in ZAPI_PAYLOAD.items() if k != "phone"}
        response = client.post(RECEIVE_URL, json=payload)
        assert response.json()["reason"] == "no_phone"

    def test_nested_payload(self, client, pipeline):
        payload = {
            "data": {
                "key": {"remoteJid": "5531999990000@s.whatsapp.net", "id": "wamid-1"},
                "message": {"conversation": "Bom dia"},
                "pushName": "Maria",
            }
        }
        response = client.post(RECEIVE_URL, content=json.dumps(payload))
        assert response.json()["status"] == "success"
        assert response.json()["phone"] == "5531999990000"

    def test_unhandled_error_returns_200(self, client):
        with patch("app.routers.webhook.process_inbound_message", side_effect=RuntimeError("boom")):
            response = client.post(RECEIVE_URL, json=ZAPI_PAYLOAD)
        assert response.status_code == 200
        assert response.json()["status"] == "error"
        assert response.json()["reason"] == "internal_error"

    def test_legacy_route(self, client, pipeline):
        response = client.post("/whatsapp/webhook", json=ZAPI_PAYLOAD)
        assert response.status_code == 200
        assert response.json()["status"] == "success"


class TestProbe:
    def test_reports_configuration(self, client):
        response = client.get(RECEIVE_URL)
        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["has_zapi_instance"] is True
        assert data["has_webhook_secret"] is False


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
