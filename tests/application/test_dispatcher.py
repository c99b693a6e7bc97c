"""Testes ponta a ponta do WorkflowDispatcher.

Presenter em memória + backend em httpx.MockTransport; relógio controlado
para admission control e TTL das sessões.
"""

from __future__ import annotations

from dataclasses import dataclass
from unittest.mock import AsyncMock

import httpx
import pytest

from vitrine_bot.application import texts
from vitrine_bot.application.dispatcher import WorkflowDispatcher
from vitrine_bot.application.mutation_guard import MutationGuard
from vitrine_bot.domain.admission import AdmissionControl
from vitrine_bot.domain.errors import EditTargetInvalid
from vitrine_bot.domain.workflow import WorkflowStep
from vitrine_bot.infra.backend_client import create_backend_client
from vitrine_bot.infra.session_store import InMemorySessionStore


@dataclass
class Harness:
    dispatcher: WorkflowDispatcher
    sessions: InMemorySessionStore
    admission: AdmissionControl
    guard: MutationGuard


@pytest.fixture
def harness(settings, clock, presenter, fake_backend) -> Harness:
    admission = AdmissionControl(clock=clock)
    sessions = InMemorySessionStore(ttl_seconds=settings.session_ttl_seconds, clock=clock)
    guard = MutationGuard(presenter, clock=clock, sleep=AsyncMock())
    dispatcher = WorkflowDispatcher(
        settings=settings,
        admission=admission,
        sessions=sessions,
        guard=guard,
        backend=create_backend_client(settings, transport=fake_backend.transport),
        presenter=presenter,
    )
    return Harness(dispatcher, sessions, admission, guard)


async def _walk_to_quantity(harness: Harness, events) -> None:
    """Loja → categoria C → pula ano → estado CA (7 disponíveis)."""
    for data in ("shop", "category_0", "skip_year", "state_CA"):
        await harness.dispatcher.handle(events.tap(data))


class TestPurchaseFlow:
    @pytest.mark.asyncio
    async def test_full_purchase(self, harness, events, presenter, fake_backend, clock):
        await _walk_to_quantity(harness, events)

        session = harness.sessions.get(events.user_id)
        assert session == {
            "step": WorkflowStep.ENTERING_QUANTITY,
            "filters": {"base": "C", "state": "CA"},
            "available_quantity": 7,
        }
        products = fake_backend.calls("GET", "/api/products")[0]
        assert dict(products.url.params) == {"username": "alice", "base": "C", "state": "CA"}

        # Acima do disponível: re-pergunta citando 7, sessão intacta
        await harness.dispatcher.handle(events.text("9"))
        assert presenter.last_text == texts.quantity_exceeds(7)
        assert harness.sessions.get(events.user_id) == session

        clock.advance(5)
        await harness.dispatcher.handle(events.text("5"))
        assert harness.sessions.get(events.user_id) == {
            "step": WorkflowStep.CONFIRMING_CHECKOUT,
            "filters": {"base": "C", "state": "CA"},
            "quantity": 5,
            "available_quantity": 7,
        }
        assert presenter.last_text == texts.confirm_checkout(5, {"base": "C", "state": "CA"})

        await harness.dispatcher.handle(events.tap("checkout_5"))

        checkout = fake_backend.calls("POST", "/api/checkout")
        assert len(checkout) == 1
        assert fake_backend.body(checkout[0]) == {
            "username": "alice",
            "quantity": 5,
            "filters": {"base": "C", "state": "CA"},
        }
        assert harness.sessions.get(events.user_id) is None
        assert presenter.documents == [(7, "order-1.txt", b"item-1\nitem-2\n")]

    @pytest.mark.asyncio
    async def test_year_range_recorded_in_filters(self, harness, events):
        for data in ("shop", "category_1", "year_range_1960_1964"):
            await harness.dispatcher.handle(events.tap(data))

        session = harness.sessions.get(events.user_id)
        assert session["step"] == WorkflowStep.SELECTING_STATE
        assert session["filters"] == {"base": "P", "year_from": 1960, "year_to": 1964}

    @pytest.mark.asyncio
    async def test_no_results_returns_to_idle(self, harness, events, presenter, fake_backend):
        fake_backend.routes[("GET", "/api/products")] = httpx.Response(200, json={"count": 0})

        await _walk_to_quantity(harness, events)

        assert harness.sessions.get(events.user_id) is None
        assert presenter.last_text == texts.NO_RESULTS

    @pytest.mark.asyncio
    async def test_invalid_quantity_reprompts(self, harness, events, presenter):
        await _walk_to_quantity(harness, events)

        await harness.dispatcher.handle(events.text("abc"))

        assert presenter.last_text == texts.invalid_quantity(7)
        assert harness.sessions.get(events.user_id)["step"] == WorkflowStep.ENTERING_QUANTITY

    @pytest.mark.asyncio
    async def test_non_ascii_digit_reprompts(self, harness, events, presenter):
        """'²' é dígito para str.isdigit, mas não é um número inteiro."""
        await _walk_to_quantity(harness, events)

        await harness.dispatcher.handle(events.text("²"))

        assert presenter.last_text == texts.invalid_quantity(7)
        assert harness.sessions.get(events.user_id)["step"] == WorkflowStep.ENTERING_QUANTITY

    @pytest.mark.asyncio
    async def test_checkout_failure_keeps_session(self, harness, events, presenter, fake_backend, clock):
        fake_backend.routes[("POST", "/api/checkout")] = httpx.Response(
            400, json={"message": "Insufficient balance"}
        )
        await _walk_to_quantity(harness, events)
        await harness.dispatcher.handle(events.text("2"))

        await harness.dispatcher.handle(events.tap("checkout_2"))

        assert presenter.last_text == texts.checkout_failed("Insufficient balance")
        assert harness.sessions.get(events.user_id)["step"] == WorkflowStep.CONFIRMING_CHECKOUT
        assert presenter.documents == []

    @pytest.mark.asyncio
    async def test_download_failure_reports_file_not_sent(self, harness, events, presenter, fake_backend):
        fake_backend.routes[("GET", "/api/files/order-1.txt")] = httpx.Response(500, json={})
        await _walk_to_quantity(harness, events)
        await harness.dispatcher.handle(events.text("1"))

        await harness.dispatcher.handle(events.tap("checkout_1"))

        assert presenter.last_text == texts.FILE_SEND_FAILED
        assert harness.sessions.get(events.user_id) is None

    @pytest.mark.asyncio
    async def test_menu_discards_filters(self, harness, events, presenter):
        await _walk_to_quantity(harness, events)

        await harness.dispatcher.handle(events.tap("main_menu"))

        assert harness.sessions.get(events.user_id) is None
        assert presenter.last_text == texts.main_menu("Vitrine")


class TestStaleSessions:
    @pytest.mark.asyncio
    async def test_region_without_category_is_stale(self, harness, events, presenter, fake_backend):
        await harness.dispatcher.handle(events.tap("state_CA"))

        assert presenter.last_text == texts.SESSION_EXPIRED
        assert harness.sessions.get(events.user_id) is None
        assert fake_backend.requests == []

    @pytest.mark.asyncio
    async def test_unknown_region_is_stale(self, harness, events, presenter, fake_backend):
        for data in ("shop", "category_0", "skip_year"):
            await harness.dispatcher.handle(events.tap(data))
        before = harness.sessions.get(events.user_id)

        await harness.dispatcher.handle(events.tap("state_ZZ"))

        assert presenter.last_text == texts.SESSION_EXPIRED
        assert harness.sessions.get(events.user_id) == before
        assert fake_backend.calls("GET", "/api/products") == []

    @pytest.mark.asyncio
    async def test_expired_session_is_stale(self, harness, events, presenter, clock):
        for data in ("shop", "category_0"):
            await harness.dispatcher.handle(events.tap(data))
        clock.advance(31 * 60)

        await harness.dispatcher.handle(events.tap("skip_year"))

        assert presenter.last_text == texts.SESSION_EXPIRED

    @pytest.mark.asyncio
    async def test_checkout_with_different_quantity_is_stale(self, harness, events, presenter, fake_backend):
        await _walk_to_quantity(harness, events)
        await harness.dispatcher.handle(events.text("3"))

        await harness.dispatcher.handle(events.tap("checkout_4"))

        assert presenter.last_text == texts.SESSION_EXPIRED
        assert fake_backend.calls("POST", "/api/checkout") == []


class TestTapAdmission:
    @pytest.mark.asyncio
    async def test_twenty_first_tap_throttled(self, harness, events, presenter):
        for _ in range(20):
            await harness.dispatcher.handle(events.tap("no_action"))

        await harness.dispatcher.handle(events.tap("no_action"))

        assert presenter.answers[-1][1] == texts.THROTTLED_TAP
        assert [text for _, text in presenter.answers[:20]] == [None] * 20

    @pytest.mark.asyncio
    async def test_tap_already_in_flight_is_dropped(self, harness, events, presenter, fake_backend):
        event = events.tap("shop")
        harness.guard.try_acquire(harness.guard.tap_key(event.user_id, "shop", event.message_id))

        await harness.dispatcher.handle(event)

        assert presenter.answers == [(event.interaction_id, texts.DUPLICATE_TAP)]
        assert fake_backend.requests == []

    @pytest.mark.asyncio
    async def test_tap_lock_released_after_handling(self, harness, events):
        event = events.tap("shop")
        await harness.dispatcher.handle(event)
        assert harness.guard.is_held(harness.guard.tap_key(event.user_id, "shop", 10)) is False

    @pytest.mark.asyncio
    async def test_unknown_action(self, harness, events, presenter):
        await harness.dispatcher.handle(events.tap("admin_panel"))
        assert presenter.answers[-1][1] == texts.COMING_SOON
        assert presenter.shown == []

    @pytest.mark.asyncio
    async def test_category_toast(self, harness, events, presenter):
        await harness.dispatcher.handle(events.tap("shop"))
        await harness.dispatcher.handle(events.tap("category_0"))
        assert presenter.answers[-1][1] == texts.CATEGORY_SELECTED


class TestRendering:
    @pytest.mark.asyncio
    async def test_edit_target_gone_falls_back_to_send(self, harness, events, presenter):
        presenter.edit_errors.append(EditTargetInvalid("message to edit not found", 400))

        await harness.dispatcher.handle(events.tap("main_menu"))

        assert len(presenter.sent) == 1
        assert presenter.last_text == texts.main_menu("Vitrine")

    @pytest.mark.asyncio
    async def test_backend_down_shows_unavailable(self, harness, events, presenter, fake_backend):
        fake_backend.routes[("GET", "/api/categories")] = httpx.Response(503, json={})

        await harness.dispatcher.handle(events.tap("shop"))

        assert presenter.last_text == texts.SERVICE_UNAVAILABLE
        assert harness.sessions.get(events.user_id) is None

    @pytest.mark.asyncio
    async def test_backend_down_mid_flow_keeps_session(self, harness, events, presenter, fake_backend):
        for data in ("shop", "category_0", "skip_year"):
            await harness.dispatcher.handle(events.tap(data))
        fake_backend.routes[("GET", "/api/products")] = httpx.Response(503, json={})

        await harness.dispatcher.handle(events.tap("state_CA"))

        assert presenter.last_text == texts.SERVICE_UNAVAILABLE
        session = harness.sessions.get(events.user_id)
        assert session["step"] == WorkflowStep.SELECTING_STATE
        assert "state" not in session["filters"]

    @pytest.mark.asyncio
    async def test_backend_down_replaces_loading_message(self, harness, events, presenter, fake_backend):
        fake_backend.routes[("GET", "/api/wallet/alice")] = httpx.Response(502, json={})

        await harness.dispatcher.handle(events.command("wallet"))

        assert [text for _, text, _ in presenter.sent] == [texts.LOADING]
        assert presenter.edits[-1][1] == 501
        assert presenter.edits[-1][2] == texts.SERVICE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_unexpected_error_shows_generic_message(self, harness, events, presenter, monkeypatch):
        async def explode(*args, **kwargs):
            raise RuntimeError("bug")

        monkeypatch.setattr(harness.dispatcher._shop, "open_shop", explode)

        await harness.dispatcher.handle(events.tap("shop"))

        assert presenter.last_text == texts.GENERIC_ERROR


class TestCommands:
    @pytest.mark.asyncio
    async def test_start_registers_user(self, harness, events, presenter, fake_backend):
        await harness.dispatcher.handle(events.command("start"))

        assert len(fake_backend.calls("POST", "/api/users")) == 1
        assert presenter.sent[0][1] == texts.LOADING
        assert presenter.last_text == texts.welcome("Vitrine", "Alice")

    @pytest.mark.asyncio
    async def test_start_requires_username(self, harness, events, presenter, fake_backend):
        await harness.dispatcher.handle(events.command("start", username=None))

        assert presenter.last_text == texts.USERNAME_REQUIRED
        assert fake_backend.requests == []

    @pytest.mark.asyncio
    async def test_start_rate_limited_per_command(self, harness, events, presenter):
        for _ in range(5):
            await harness.dispatcher.handle(events.command("start"))

        await harness.dispatcher.handle(events.command("start"))
        assert presenter.last_text == texts.THROTTLED_COMMAND

        # /help tem janela própria
        await harness.dispatcher.handle(events.command("help"))
        assert presenter.last_text == texts.help_text("Vitrine")

    @pytest.mark.asyncio
    async def test_wallet(self, harness, events, presenter):
        await harness.dispatcher.handle(events.command("wallet"))
        assert "42.50" in presenter.last_text

    @pytest.mark.asyncio
    async def test_status_reports_step(self, harness, events, presenter):
        await harness.dispatcher.handle(events.tap("shop"))
        await harness.dispatcher.handle(events.command("status"))

        assert "selecting_category" in presenter.last_text
        assert "• tap: 1" in presenter.last_text

    @pytest.mark.asyncio
    async def test_clear_resets_session_and_limits(self, harness, events, presenter):
        await harness.dispatcher.handle(events.tap("shop"))
        await harness.dispatcher.handle(events.command("clear"))

        assert harness.sessions.get(events.user_id) is None
        assert harness.admission.user_status(events.user_id).counts == {}
        assert presenter.last_text == texts.SESSION_CLEARED

    @pytest.mark.asyncio
    async def test_unknown_command_points_to_menu(self, harness, events, presenter):
        await harness.dispatcher.handle(events.command("admin"))
        assert presenter.last_text == texts.USE_MENU


class TestText:
    @pytest.mark.asyncio
    async def test_text_while_idle_points_to_menu(self, harness, events, presenter):
        await harness.dispatcher.handle(events.text("hello"))
        assert presenter.last_text == texts.USE_MENU

    @pytest.mark.asyncio
    async def test_rapid_repeat_is_dropped_silently(self, harness, events, presenter, clock):
        await harness.dispatcher.handle(events.text("hello"))
        clock.advance(1)
        await harness.dispatcher.handle(events.text("hello"))

        assert len(presenter.shown) == 1

    @pytest.mark.asyncio
    async def test_text_flood_throttled(self, harness, events, presenter, clock):
        for _ in range(15):
            await harness.dispatcher.handle(events.text("hi"))
            clock.advance(2.5)

        await harness.dispatcher.handle(events.text("hi"))
        assert presenter.last_text == texts.THROTTLED_TEXT


class TestDeposit:
    @pytest.mark.asyncio
    async def test_preset_amount(self, harness, events, presenter, fake_backend):
        await harness.dispatcher.handle(events.command("deposit"))
        assert presenter.last_text == texts.CHOOSE_CURRENCY

        await harness.dispatcher.handle(events.tap("currency_btc"))
        await harness.dispatcher.handle(events.tap("amount_btc_50"))

        body = fake_backend.body(fake_backend.calls("POST", "/api/deposit")[0])
        assert body["amount"] == 50.0
        assert body["currency"] == "btc"
        assert "bc1-test-address" in presenter.last_text

    @pytest.mark.asyncio
    async def test_custom_amount(self, harness, events, presenter, fake_backend, clock):
        await harness.dispatcher.handle(events.tap("deposit_custom_btc"))
        assert harness.sessions.get(events.user_id) == {
            "step": WorkflowStep.ENTERING_DEPOSIT_AMOUNT,
            "deposit_currency": "btc",
        }

        await harness.dispatcher.handle(events.text("5"))
        assert presenter.last_text == texts.invalid_amount(10.0, 10000.0)
        assert fake_backend.calls("POST", "/api/deposit") == []

        clock.advance(5)
        await harness.dispatcher.handle(events.text("$25"))

        body = fake_backend.body(fake_backend.calls("POST", "/api/deposit")[0])
        assert body["amount"] == 25.0
        assert harness.sessions.get(events.user_id) is None

    @pytest.mark.asyncio
    async def test_custom_amount_failure_keeps_session(self, harness, events, presenter, fake_backend, clock):
        """Depois da falha o usuário só redigita o valor."""
        success = fake_backend.routes[("POST", "/api/deposit")]
        fake_backend.routes[("POST", "/api/deposit")] = httpx.Response(
            502, json={"message": "Payment provider down"}
        )
        await harness.dispatcher.handle(events.tap("deposit_custom_btc"))

        await harness.dispatcher.handle(events.text("25"))

        assert presenter.last_text == texts.deposit_failed("Payment provider down")
        assert harness.sessions.get(events.user_id) == {
            "step": WorkflowStep.ENTERING_DEPOSIT_AMOUNT,
            "deposit_currency": "btc",
        }

        fake_backend.routes[("POST", "/api/deposit")] = success
        clock.advance(5)
        await harness.dispatcher.handle(events.text("30"))

        assert len(fake_backend.calls("POST", "/api/deposit")) == 2
        assert harness.sessions.get(events.user_id) is None

    @pytest.mark.asyncio
    async def test_currency_code_with_dot(self, harness, events, presenter, fake_backend):
        await harness.dispatcher.handle(events.tap("currency_usdt.trc20"))
        await harness.dispatcher.handle(events.tap("amount_usdt.trc20_50"))

        body = fake_backend.body(fake_backend.calls("POST", "/api/deposit")[0])
        assert body["currency"] == "usdt.trc20"

    @pytest.mark.asyncio
    async def test_deposit_failure(self, harness, events, presenter, fake_backend):
        fake_backend.routes[("POST", "/api/deposit")] = httpx.Response(
            502, json={"message": "Payment provider down"}
        )
        await harness.dispatcher.handle(events.tap("amount_btc_50"))
        assert presenter.last_text == texts.deposit_failed("Payment provider down")
