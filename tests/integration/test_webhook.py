"""Testes de integração do webhook do Telegram.

- Validação do X-Telegram-Bot-Api-Secret-Token
- Rejeição de JSON malformado
- Updates não suportados ignorados com 200
- Update aceito processado em background (Bot API falsa)
"""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from vitrine_bot.adapters.telegram.signature import SECRET_TOKEN_HEADER
from vitrine_bot.api.app import create_app
from vitrine_bot.application import texts

WEBHOOK_SECRET = "test-webhook-secret"


def _command_update(update_id: int, text: str) -> dict:
    return {
        "update_id": update_id,
        "message": {
            "message_id": 1,
            "from": {"id": 7, "is_bot": False, "first_name": "Alice", "username": "alice"},
            "chat": {"id": 7, "type": "private"},
            "date": 0,
            "text": text,
        },
    }


@pytest.fixture()
def client_with_secret(settings, fake_telegram, fake_backend):
    """Cliente de teste com secret do webhook configurado."""
    secured = settings.model_copy(update={"telegram_webhook_secret": WEBHOOK_SECRET})
    app = create_app(
        secured,
        telegram_transport=fake_telegram.transport,
        backend_transport=fake_backend.transport,
    )
    with TestClient(app) as test_client:
        yield test_client


class TestSecretToken:
    def test_valid_secret_accepted(self, client_with_secret: TestClient):
        response = client_with_secret.post(
            "/webhooks/telegram",
            json=_command_update(1, "/help"),
            headers={SECRET_TOKEN_HEADER: WEBHOOK_SECRET},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "accepted"
        assert response.json()["secret_skipped"] is False

    def test_wrong_secret_rejected(self, client_with_secret: TestClient, fake_telegram):
        response = client_with_secret.post(
            "/webhooks/telegram",
            json=_command_update(1, "/help"),
            headers={SECRET_TOKEN_HEADER: "wrong"},
        )
        assert response.status_code == 401
        assert fake_telegram.calls == []

    def test_missing_secret_rejected(self, client_with_secret: TestClient):
        response = client_with_secret.post("/webhooks/telegram", json=_command_update(1, "/help"))
        assert response.status_code == 401

    def test_secret_skipped_when_not_configured(self, client: TestClient):
        response = client.post("/webhooks/telegram", json=_command_update(1, "/help"))
        assert response.status_code == 200
        assert response.json()["secret_skipped"] is True


class TestPayloadValidation:
    def test_malformed_json(self, client: TestClient):
        response = client.post(
            "/webhooks/telegram",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "invalid_json"

    def test_non_object_body(self, client: TestClient):
        response = client.post("/webhooks/telegram", content=json.dumps([1, 2]))
        assert response.status_code == 400

    def test_unsupported_update_ignored(self, client: TestClient, fake_telegram):
        response = client.post(
            "/webhooks/telegram",
            json={"update_id": 5, "edited_message": {"message_id": 1}},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        assert fake_telegram.calls == []


class TestBackgroundProcessing:
    def test_help_command_answered(self, client: TestClient, fake_telegram):
        response = client.post("/webhooks/telegram", json=_command_update(10, "/help"))

        assert response.json()["update_id"] == 10
        assert fake_telegram.texts() == [texts.help_text("Vitrine")]

    def test_tap_edits_message_and_answers(self, client: TestClient, fake_telegram):
        update = {
            "update_id": 11,
            "callback_query": {
                "id": "cb-1",
                "from": {"id": 7, "username": "alice"},
                "message": {"message_id": 40, "chat": {"id": 7}},
                "data": "main_menu",
            },
        }

        client.post("/webhooks/telegram", json=update)

        methods = [name for name, _ in fake_telegram.calls]
        assert methods == ["answerCallbackQuery", "editMessageText"]
        assert fake_telegram.calls[1][1]["message_id"] == 40

    def test_session_visible_in_health(self, client: TestClient):
        update = {
            "update_id": 12,
            "callback_query": {
                "id": "cb-2",
                "from": {"id": 7, "username": "alice"},
                "message": {"message_id": 40, "chat": {"id": 7}},
                "data": "shop",
            },
        }
        client.post("/webhooks/telegram", json=update)

        health = client.get("/health").json()
        assert health["sessions"] == 1
        assert health["admission"]["active_users"] == 1
