"""Contexto compartilhado pelos fluxos e helpers de renderização."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from vitrine_bot.adapters.telegram import keyboards
from vitrine_bot.adapters.telegram.models import EventKind, InboundEvent, InlineKeyboard, SentMessage
from vitrine_bot.application import texts
from vitrine_bot.application.mutation_guard import Presenter
from vitrine_bot.domain.errors import BackendUnavailable
from vitrine_bot.observability.logging import get_logger

if TYPE_CHECKING:
    from vitrine_bot.application.mutation_guard import MutationGuard
    from vitrine_bot.config.settings import Settings
    from vitrine_bot.domain.admission import AdmissionControl
    from vitrine_bot.infra.backend_client import ShopBackendClient
    from vitrine_bot.infra.session_store import InMemorySessionStore

logger: logging.Logger = get_logger(__name__)


class BotPresenter(Presenter, Protocol):
    """Presenter que também envia documentos (arquivo da compra)."""

    async def send_document(
        self, chat_id: int, filename: str, content: bytes, caption: str | None = None
    ) -> SentMessage: ...


@dataclass(frozen=True, slots=True)
class Screen:
    """Onde renderizar: mensagem existente (editar) ou nenhuma (enviar)."""

    chat_id: int
    message_id: int | None = None


@dataclass(slots=True)
class FlowContext:
    settings: Settings
    admission: AdmissionControl
    sessions: InMemorySessionStore
    guard: MutationGuard
    backend: ShopBackendClient
    presenter: BotPresenter

    @staticmethod
    def screen_for(event: InboundEvent) -> Screen:
        """Toques editam a mensagem do botão; o resto envia mensagem nova."""
        if event.kind == EventKind.TAP and event.message_id is not None:
            return Screen(event.chat_id, event.message_id)
        return Screen(event.chat_id)

    async def show(
        self,
        screen: Screen,
        text: str,
        markup: InlineKeyboard | None = None,
    ) -> SentMessage | None:
        if screen.message_id is not None:
            return await self.guard.safe_mutate(screen.chat_id, screen.message_id, text, markup)
        return await self.guard.safe_send(screen.chat_id, text, markup)

    async def loading(self, screen: Screen, text: str = texts.LOADING) -> Screen:
        """Mostra texto de espera e retorna a tela a ser editada depois."""
        sent = await self.show(screen, text)
        if screen.message_id is None and sent is not None:
            return Screen(screen.chat_id, sent.message_id)
        return screen

    async def require_username(self, event: InboundEvent, screen: Screen) -> str | None:
        """Username do Telegram identifica o usuário no backend."""
        if event.username:
            return event.username
        await self.show(screen, texts.USERNAME_REQUIRED)
        return None

    async def show_stale(self, screen: Screen) -> None:
        await self.show(screen, texts.SESSION_EXPIRED, keyboards.back_to_shop())

    async def show_unavailable(self, screen: Screen, markup: InlineKeyboard | None = None) -> None:
        await self.show(screen, texts.SERVICE_UNAVAILABLE, markup or keyboards.back_to_main())

    @asynccontextmanager
    async def unavailable_on(
        self, screen: Screen, markup: InlineKeyboard | None = None
    ) -> AsyncIterator[None]:
        """BackendUnavailable dentro do bloco vira aviso em `screen`.

        A sessão não é tocada: o usuário volta ao menu estável e repete.
        """
        try:
            yield
        except BackendUnavailable as exc:
            logger.warning(
                "Backend unavailable",
                extra={"chat_id": screen.chat_id, "status_code": exc.status_code},
            )
            await self.show_unavailable(screen, markup)

    async def show_error(self, screen: Screen) -> None:
        """'Algo deu errado': tenta editar, cai para envio. Nunca lança."""
        try:
            sent = None
            if screen.message_id is not None:
                sent = await self.guard.safe_mutate(
                    screen.chat_id, screen.message_id, texts.GENERIC_ERROR, keyboards.back_to_main()
                )
            if sent is None:
                await self.guard.safe_send(
                    screen.chat_id, texts.GENERIC_ERROR, keyboards.back_to_main()
                )
        except Exception as exc:
            logger.error(
                "Failed to render error message",
                extra={"chat_id": screen.chat_id, "error_type": type(exc).__name__},
            )
