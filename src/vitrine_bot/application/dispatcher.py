"""WorkflowDispatcher: ponto de entrada de todo evento inbound.

Fluxo por evento:
1. AdmissionControl.admit(usuário, categoria); AdmissionRejected ⇒ aviso, fim
2. Toques: MutationGuard.hold(tap_key); já em voo ⇒ responde e descarta
3. Decodifica o gatilho (parse_action / passo atual para texto livre)
4. Roteia para o fluxo (ShopFlow / WalletFlow / menus)
5. StaleSession ⇒ aviso "recomeçar"; erro inesperado ⇒ "algo deu errado"
   (BackendUnavailable é tratado dentro dos fluxos, na tela de loading)

Cada evento roda em sua própria task; nenhum evento cancela outro.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from vitrine_bot.adapters.telegram import keyboards
from vitrine_bot.adapters.telegram.models import EventKind, InboundEvent
from vitrine_bot.application import texts
from vitrine_bot.application.context import BotPresenter, FlowContext, Screen
from vitrine_bot.application.shop_flow import ShopFlow
from vitrine_bot.application.wallet_flow import WalletFlow
from vitrine_bot.domain.admission import AdmissionControl, EventCategory
from vitrine_bot.domain.errors import AdmissionRejected, StaleSession
from vitrine_bot.domain.workflow import (
    ButtonTrigger,
    CategoryChosen,
    CheckoutConfirmed,
    CurrencyChosen,
    DepositAmountChosen,
    DepositCustomAmount,
    NoAction,
    OpenDeposit,
    OpenHelp,
    OpenShop,
    OpenWallet,
    RegionChosen,
    RegionSkipped,
    ReturnToMenu,
    WorkflowStep,
    YearRangeChosen,
    YearSkipped,
    current_step,
    parse_action,
)
from vitrine_bot.observability.logging import get_logger
from vitrine_bot.observability.middleware import bind_correlation_id

if TYPE_CHECKING:
    from vitrine_bot.application.mutation_guard import MutationGuard
    from vitrine_bot.config.settings import Settings
    from vitrine_bot.infra.backend_client import ShopBackendClient
    from vitrine_bot.infra.session_store import InMemorySessionStore

logger: logging.Logger = get_logger(__name__)

# Comando → campo de Settings com o limite próprio (janela "command:<nome>")
COMMAND_LIMITS: dict[str, str] = {
    "start": "admission_start_max_events",
    "wallet": "admission_wallet_max_events",
    "deposit": "admission_deposit_max_events",
    "help": "admission_help_max_events",
    "status": "admission_status_max_events",
}

# Texto do toast ao responder o toque (None = apenas remove o spinner)
TAP_TOASTS: dict[type, str] = {
    CategoryChosen: texts.CATEGORY_SELECTED,
    RegionChosen: texts.REGION_SELECTED,
}


class WorkflowDispatcher:
    """Recebe InboundEvent normalizado e executa o workflow."""

    def __init__(
        self,
        settings: Settings,
        admission: AdmissionControl,
        sessions: InMemorySessionStore,
        guard: MutationGuard,
        backend: ShopBackendClient,
        presenter: BotPresenter,
    ) -> None:
        self._settings = settings
        self._admission = admission
        self._sessions = sessions
        self._guard = guard
        self._ctx = FlowContext(
            settings=settings,
            admission=admission,
            sessions=sessions,
            guard=guard,
            backend=backend,
            presenter=presenter,
        )
        self._shop = ShopFlow(self._ctx)
        self._wallet = WalletFlow(self._ctx)

    async def handle(self, event: InboundEvent) -> None:
        """Processa um evento. Nunca lança (erros viram mensagens/logs)."""
        with bind_correlation_id(f"update-{event.update_id}"):
            logger.debug(
                "Inbound event",
                extra={"user_id": event.user_id, "kind": str(event.kind)},
            )
            try:
                if event.kind == EventKind.TAP:
                    await self._handle_tap(event)
                elif event.kind == EventKind.COMMAND:
                    await self._handle_command(event)
                else:
                    await self._handle_text(event)
            except AdmissionRejected:
                await self._notify_throttled(event)
            except Exception:
                # Falha ao enviar o próprio aviso (transporte fora do ar)
                logger.exception(
                    "Event handling failed",
                    extra={"user_id": event.user_id, "kind": str(event.kind)},
                )

    # ------------------------------------------------------------------
    # Admissão
    # ------------------------------------------------------------------

    def _admit(self, event: InboundEvent, category: str, max_events: int) -> None:
        """Registra o evento na janela; lança AdmissionRejected se esgotada."""
        if not self._admission.admit(
            event.user_id, category, max_events, self._settings.admission_window_seconds
        ):
            raise AdmissionRejected(str(event.user_id), category)

    async def _notify_throttled(self, event: InboundEvent) -> None:
        if event.kind == EventKind.TAP:
            await self._guard.safe_answer(event.interaction_id, texts.THROTTLED_TAP)
        elif event.kind == EventKind.COMMAND:
            await self._guard.safe_send(event.chat_id, texts.THROTTLED_COMMAND)
        else:
            await self._guard.safe_send(event.chat_id, texts.THROTTLED_TEXT)

    # ------------------------------------------------------------------
    # Toques
    # ------------------------------------------------------------------

    async def _handle_tap(self, event: InboundEvent) -> None:
        self._admit(event, EventCategory.TAP, self._settings.admission_tap_max_events)

        key = self._guard.tap_key(event.user_id, event.action_data, event.message_id)
        with self._guard.hold(key) as acquired:
            if not acquired:
                await self._guard.safe_answer(event.interaction_id, texts.DUPLICATE_TAP)
                return

            trigger = parse_action(event.action_data)
            if trigger is None:
                logger.info("Unknown action", extra={"user_id": event.user_id})
                await self._guard.safe_answer(event.interaction_id, texts.COMING_SOON)
                return

            await self._guard.safe_answer(event.interaction_id, TAP_TOASTS.get(type(trigger)))
            screen = FlowContext.screen_for(event)
            try:
                await self._route_tap(event, screen, trigger)
            except StaleSession as exc:
                logger.info(
                    "Stale session for trigger",
                    extra={"user_id": event.user_id, "trigger": exc.trigger},
                )
                await self._ctx.show_stale(screen)
            except Exception:
                logger.exception(
                    "Tap handler failed",
                    extra={"user_id": event.user_id, "trigger": type(trigger).__name__},
                )
                await self._ctx.show_error(screen)

    async def _route_tap(
        self, event: InboundEvent, screen: Screen, trigger: ButtonTrigger
    ) -> None:
        shop, wallet = self._shop, self._wallet
        match trigger:
            case OpenShop():
                await shop.open_shop(event, screen)
            case CategoryChosen():
                await shop.choose_category(event, screen, trigger)
            case YearRangeChosen() | YearSkipped():
                await shop.choose_year(event, screen, trigger)
            case RegionChosen() | RegionSkipped():
                await shop.choose_region(event, screen, trigger)
            case CheckoutConfirmed():
                await shop.confirm_checkout(event, screen, trigger)
            case ReturnToMenu():
                await self._show_main_menu(event, screen)
            case OpenWallet():
                await wallet.show_wallet(event, screen)
            case OpenDeposit():
                await wallet.open_deposit(event, screen)
            case CurrencyChosen():
                await wallet.choose_currency(event, screen, trigger)
            case DepositAmountChosen():
                await wallet.choose_amount(event, screen, trigger)
            case DepositCustomAmount():
                await wallet.ask_custom_amount(event, screen, trigger)
            case OpenHelp():
                await self._show_help(screen)
            case NoAction():
                pass

    # ------------------------------------------------------------------
    # Comandos
    # ------------------------------------------------------------------

    def _admit_command(self, event: InboundEvent, command: str) -> None:
        s = self._settings
        limit_field = COMMAND_LIMITS.get(command)
        if limit_field is None:
            self._admit(event, str(EventCategory.COMMAND), s.admission_command_max_events)
        else:
            self._admit(event, f"{EventCategory.COMMAND}:{command}", getattr(s, limit_field))

    async def _handle_command(self, event: InboundEvent) -> None:
        command = event.command or ""
        screen = Screen(event.chat_id)
        self._admit_command(event, command)

        try:
            match command:
                case "start":
                    await self._start(event, screen)
                case "wallet":
                    await self._wallet.show_wallet(event, screen)
                case "deposit":
                    await self._wallet.open_deposit(event, screen)
                case "help":
                    await self._show_help(screen)
                case "status":
                    await self._show_status(event, screen)
                case "clear":
                    self._sessions.clear(event.user_id)
                    self._admission.reset_user(event.user_id)
                    await self._ctx.show(screen, texts.SESSION_CLEARED)
                case _:
                    await self._ctx.show(screen, texts.USE_MENU, keyboards.main_menu())
        except Exception:
            logger.exception(
                "Command handler failed",
                extra={"user_id": event.user_id, "command": command},
            )
            await self._ctx.show_error(screen)

    async def _start(self, event: InboundEvent, screen: Screen) -> None:
        username = await self._ctx.require_username(event, screen)
        if username is None:
            return

        screen = await self._ctx.loading(screen)
        async with self._ctx.unavailable_on(screen):
            (await self._ctx.backend.create_or_fetch_user(username)).unwrap()
            await self._ctx.show(
                screen,
                texts.welcome(self._settings.bot_display_name, event.first_name),
                keyboards.main_menu(),
            )

    async def _show_main_menu(self, event: InboundEvent, screen: Screen) -> None:
        """Voltar ao menu descarta filtros (sessão volta a idle)."""
        self._sessions.clear(event.user_id)
        await self._ctx.show(
            screen, texts.main_menu(self._settings.bot_display_name), keyboards.main_menu()
        )

    async def _show_help(self, screen: Screen) -> None:
        s = self._settings
        await self._ctx.show(
            screen,
            texts.help_text(s.bot_display_name),
            keyboards.help_menu(s.support_contact_url, s.channel_url),
        )

    async def _show_status(self, event: InboundEvent, screen: Screen) -> None:
        session = self._sessions.get(event.user_id)
        step = str(current_step(session)) if session else None
        await self._ctx.show(
            screen,
            texts.status(
                step,
                self._sessions.age_minutes(event.user_id),
                self._admission.user_status(event.user_id).counts,
                self._sessions.stats(),
            ),
        )

    # ------------------------------------------------------------------
    # Texto livre
    # ------------------------------------------------------------------

    async def _handle_text(self, event: InboundEvent) -> None:
        s = self._settings
        self._admit(event, EventCategory.TEXT, s.admission_text_max_events)

        if self._admission.is_duplicate(
            event.user_id, EventCategory.TEXT, s.admission_text_min_interval_seconds
        ):
            return

        screen = Screen(event.chat_id)
        session = self._sessions.get(event.user_id)
        try:
            match current_step(session):
                case WorkflowStep.ENTERING_QUANTITY:
                    await self._shop.enter_quantity(event, session)
                case WorkflowStep.ENTERING_DEPOSIT_AMOUNT:
                    await self._wallet.enter_amount(event, session)
                case _:
                    await self._ctx.show(screen, texts.USE_MENU, keyboards.main_menu())
        except StaleSession:
            await self._ctx.show_stale(screen)
        except Exception:
            logger.exception("Text handler failed", extra={"user_id": event.user_id})
            await self._ctx.show_error(screen)
