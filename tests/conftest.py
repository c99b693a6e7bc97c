from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from vitrine_bot.adapters.telegram.models import EventKind, InboundEvent, InlineKeyboard, SentMessage
from vitrine_bot.api.app import create_app
from vitrine_bot.config.settings import Settings, get_settings

BOT_TOKEN = "123456:TEST-TOKEN"
BACKEND_URL = "http://backend.test/api"


class FakeClock:
    """Relógio monotônico controlado pelo teste."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingPresenter:
    """Presenter em memória: grava envios, edições, respostas e documentos.

    `edit_errors` / `send_errors` são consumidos em ordem, um por chamada.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[int, str, InlineKeyboard | None]] = []
        self.edits: list[tuple[int, int, str, InlineKeyboard | None]] = []
        self.answers: list[tuple[str, str | None]] = []
        self.documents: list[tuple[int, str, bytes]] = []
        self.shown: list[str] = []
        self.edit_errors: list[Exception] = []
        self.send_errors: list[Exception] = []
        self._next_id = 500

    async def send_message(
        self, chat_id: int, text: str, markup: InlineKeyboard | None = None
    ) -> SentMessage:
        self.sent.append((chat_id, text, markup))
        if self.send_errors:
            raise self.send_errors.pop(0)
        self.shown.append(text)
        self._next_id += 1
        return SentMessage(chat_id=chat_id, message_id=self._next_id)

    async def edit_message(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        markup: InlineKeyboard | None = None,
    ) -> SentMessage:
        self.edits.append((chat_id, message_id, text, markup))
        if self.edit_errors:
            raise self.edit_errors.pop(0)
        self.shown.append(text)
        return SentMessage(chat_id=chat_id, message_id=message_id)

    async def answer_interaction(self, interaction_id: str, text: str | None = None) -> None:
        self.answers.append((interaction_id, text))

    async def send_document(
        self, chat_id: int, filename: str, content: bytes, caption: str | None = None
    ) -> SentMessage:
        self.documents.append((chat_id, filename, content))
        self._next_id += 1
        return SentMessage(chat_id=chat_id, message_id=self._next_id)

    @property
    def last_text(self) -> str | None:
        return self.shown[-1] if self.shown else None


class FakeBackend:
    """Backend da loja servido por httpx.MockTransport.

    `routes[(método, path)]` aceita um httpx.Response ou um callable
    (request -> Response). Toda requisição fica em `requests`.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], httpx.Response | Callable[[httpx.Request], httpx.Response]] = {
            ("POST", "/api/users"): httpx.Response(200, json={"user": {"username": "alice"}}),
            ("GET", "/api/categories"): httpx.Response(
                200,
                json={
                    "categories": [
                        {"id": "C", "name": "Classic", "price": 5},
                        {"id": "P", "name": "Premium", "price": 12},
                    ]
                },
            ),
            ("GET", "/api/products"): httpx.Response(200, json={"count": 7}),
            ("POST", "/api/checkout"): httpx.Response(
                200,
                json={"filename": "order-1.txt", "download_ref": "/files/order-1.txt", "size": 2048},
            ),
            ("GET", "/api/files/order-1.txt"): httpx.Response(200, content=b"item-1\nitem-2\n"),
            ("GET", "/api/wallet/alice"): httpx.Response(
                200,
                json={"balance": 42.5, "transactions": [{"type": "deposit", "amount": 50}]},
            ),
            ("GET", "/api/currencies"): httpx.Response(
                200, json={"currencies": [{"code": "BTC", "name": "Bitcoin"}]}
            ),
            ("POST", "/api/deposit"): httpx.Response(
                200,
                json={
                    "data": {
                        "paymentData": {"address": "bc1-test-address", "amount": "0.0005"},
                        "transactionId": "tx-1",
                        "status": "pending",
                    }
                },
            ),
        }

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        if callable(route):
            return route(request)
        # Cópia: uma Response não deve ser entregue duas vezes
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content)


class FakeTelegram:
    """Bot API servida por httpx.MockTransport; grava (método, payload)."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self._next_id = 900

    def handle(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        content_type = request.headers.get("content-type", "")
        payload = json.loads(request.content) if "json" in content_type else None
        self.calls.append((method, payload))
        if method in ("sendMessage", "sendDocument"):
            self._next_id += 1
            return httpx.Response(200, json={"ok": True, "result": {"message_id": self._next_id}})
        if method == "getUpdates":
            return httpx.Response(200, json={"ok": True, "result": []})
        return httpx.Response(200, json={"ok": True, "result": True})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def texts(self, method: str = "sendMessage") -> list[str]:
        return [payload["text"] for name, payload in self.calls if name == method and payload]


class EventFactory:
    """Monta InboundEvent como o normalizer produziria."""

    def __init__(self, user_id: int = 7, chat_id: int = 7, username: str | None = "alice") -> None:
        self.user_id = user_id
        self.chat_id = chat_id
        self.username = username
        self._update_id = 0

    def _next(self) -> int:
        self._update_id += 1
        return self._update_id

    def tap(self, data: str, message_id: int | None = 10, **overrides: Any) -> InboundEvent:
        fields = {
            "update_id": self._next(),
            "kind": EventKind.TAP,
            "user_id": self.user_id,
            "chat_id": self.chat_id,
            "username": self.username,
            "first_name": "Alice",
            "action_data": data,
            "interaction_id": f"cb-{self._update_id}",
            "message_id": message_id,
        }
        fields.update(overrides)
        return InboundEvent(**fields)

    def text(self, text: str, **overrides: Any) -> InboundEvent:
        fields = {
            "update_id": self._next(),
            "kind": EventKind.TEXT,
            "user_id": self.user_id,
            "chat_id": self.chat_id,
            "username": self.username,
            "first_name": "Alice",
            "text": text,
        }
        fields.update(overrides)
        return InboundEvent(**fields)

    def command(self, command: str, **overrides: Any) -> InboundEvent:
        fields = {
            "update_id": self._next(),
            "kind": EventKind.COMMAND,
            "user_id": self.user_id,
            "chat_id": self.chat_id,
            "username": self.username,
            "first_name": "Alice",
            "command": command,
            "text": "",
        }
        fields.update(overrides)
        return InboundEvent(**fields)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings() -> Settings:
    """Settings mínimos e válidos, sem ler .env."""
    return Settings(
        _env_file=None,
        telegram_bot_token=BOT_TOKEN,
        backend_api_base_url=BACKEND_URL,
        backend_max_retries=0,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def presenter() -> RecordingPresenter:
    return RecordingPresenter()


@pytest.fixture()
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def fake_telegram() -> FakeTelegram:
    return FakeTelegram()


@pytest.fixture()
def events() -> EventFactory:
    return EventFactory()


@pytest.fixture()
def client(settings, fake_telegram, fake_backend):
    """TestClient com Bot API e backend falsos (lifespan ativo)."""
    app = create_app(
        settings,
        telegram_transport=fake_telegram.transport,
        backend_transport=fake_backend.transport,
    )
    with TestClient(app) as test_client:
        yield test_client
