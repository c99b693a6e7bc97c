"""MutationGuard: no máximo uma mutação em voo por mensagem/toque.

Responsabilidades:
- Locks nomeados sem espera (try_acquire/release/hold)
- safe_mutate: editar uma mensagem com fallback para envio quando o alvo
  não pode mais ser editado
- safe_send / safe_answer com a política de retry do transporte
- Cache do último message_id por chat (mensagem "canônica")

A tomada e a liberação de um lock não têm ponto de suspensão entre o
teste e a escrita, então são atômicas no event loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable, Iterator
from contextlib import contextmanager
from typing import Any, Protocol, TypeVar

from vitrine_bot.adapters.telegram.models import InlineKeyboard, SentMessage
from vitrine_bot.domain.errors import EditTargetInvalid, TransportTransient
from vitrine_bot.observability.logging import get_logger, log_fallback

logger: logging.Logger = get_logger(__name__)

T = TypeVar("T")

TRUNCATE_SUFFIX = "..."


class Presenter(Protocol):
    """Porta de saída usada pelo guard (implementada pelo cliente Telegram)."""

    async def send_message(
        self, chat_id: int, text: str, markup: InlineKeyboard | None = None
    ) -> SentMessage: ...

    async def edit_message(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        markup: InlineKeyboard | None = None,
    ) -> SentMessage: ...

    async def answer_interaction(self, interaction_id: str, text: str | None = None) -> None: ...


def truncate_text(text: str, max_length: int = 4096) -> str:
    """Corta em (max - 6) e acrescenta '...' quando excede o limite."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 6] + TRUNCATE_SUFFIX


class MutationGuard:
    """Serializa mutações visíveis de mensagens e toques repetidos."""

    def __init__(
        self,
        presenter: Presenter,
        max_message_length: int = 4096,
        retry_delay_seconds: float = 1.0,
        cache_max_entries: int = 100,
        cache_keep_entries: int = 50,
        stale_lock_seconds: float = 120.0,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self._presenter = presenter
        self._max_length = max_message_length
        self._retry_delay = retry_delay_seconds
        self._cache_max = cache_max_entries
        self._cache_keep = cache_keep_entries
        self._stale_lock = stale_lock_seconds
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._held: dict[Hashable, float] = {}
        # chat_id -> message_id; ordem de inserção = recência
        self._last_messages: dict[int, int] = {}

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def try_acquire(self, key: Hashable) -> bool:
        """Marca a chave como em voo; False se já estiver."""
        if key in self._held:
            return False
        self._held[key] = self._clock()
        return True

    def release(self, key: Hashable) -> None:
        self._held.pop(key, None)

    def is_held(self, key: Hashable) -> bool:
        return key in self._held

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[bool]:
        """Context manager: retorna se adquiriu; libera só o que tomou."""
        acquired = self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)

    @staticmethod
    def tap_key(user_id: int | str, action_data: str | None, message_id: int | None) -> tuple:
        return ("tap", str(user_id), action_data or "", message_id)

    @staticmethod
    def edit_key(chat_id: int, message_id: int) -> tuple:
        return ("edit", chat_id, message_id)

    # ------------------------------------------------------------------
    # Mutações
    # ------------------------------------------------------------------

    def _remember(self, chat_id: int, message_id: int) -> None:
        self._last_messages.pop(chat_id, None)
        self._last_messages[chat_id] = message_id

    def last_message_id(self, chat_id: int) -> int | None:
        return self._last_messages.get(chat_id)

    async def _with_transient_retry(
        self, operation: str, call: Callable[[], Awaitable[T]]
    ) -> T:
        try:
            return await call()
        except TransportTransient as exc:
            logger.warning(
                "Transient transport failure, retrying once",
                extra={"operation": operation, "status_code": exc.status_code},
            )
            await self._sleep(self._retry_delay)
            return await call()

    async def safe_mutate(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        markup: InlineKeyboard | None = None,
    ) -> SentMessage | None:
        """Edita a mensagem; se o alvo for inválido, envia uma nova.

        Returns:
            Mensagem resultante, ou None se já houver edição em voo
            para o mesmo (chat_id, message_id)

        Raises:
            TransportTransient: falhou também na segunda tentativa
            TransportError: demais erros do transporte
        """
        key = self.edit_key(chat_id, message_id)
        if not self.try_acquire(key):
            logger.debug(
                "Edit already in flight, skipping",
                extra={"chat_id": chat_id, "message_id": message_id},
            )
            return None

        body = truncate_text(text, self._max_length)
        try:
            try:
                edited = await self._with_transient_retry(
                    "edit_message",
                    lambda: self._presenter.edit_message(chat_id, message_id, body, markup),
                )
                self._remember(chat_id, edited.message_id)
                return edited
            except EditTargetInvalid as exc:
                log_fallback(
                    logger,
                    "safe_mutate",
                    reason="edit_target_invalid",
                    chat_id=chat_id,
                    status_code=exc.status_code,
                )
                sent = await self._with_transient_retry(
                    "send_message",
                    lambda: self._presenter.send_message(chat_id, body, markup),
                )
                self._remember(chat_id, sent.message_id)
                return sent
        finally:
            self.release(key)

    async def safe_send(
        self,
        chat_id: int,
        text: str,
        markup: InlineKeyboard | None = None,
    ) -> SentMessage:
        body = truncate_text(text, self._max_length)
        sent = await self._with_transient_retry(
            "send_message",
            lambda: self._presenter.send_message(chat_id, body, markup),
        )
        self._remember(chat_id, sent.message_id)
        return sent

    async def safe_answer(self, interaction_id: str | None, text: str | None = None) -> None:
        """Responde ao toque (remove o spinner). Nunca lança."""
        if not interaction_id:
            return
        try:
            await self._presenter.answer_interaction(interaction_id, text)
        except Exception as exc:
            logger.warning(
                "Failed to answer interaction",
                extra={"error_type": type(exc).__name__},
            )

    # ------------------------------------------------------------------
    # Manutenção
    # ------------------------------------------------------------------

    def cleanup(self) -> dict[str, int]:
        """Remove locks presos e apara o cache de message_id.

        Locks mais antigos que stale_lock_seconds pertencem a tasks que já
        não existem. Com mais de cache_max_entries chats no cache, mantém
        os cache_keep_entries mais recentes.
        """
        now = self._clock()
        stale = [key for key, since in self._held.items() if now - since > self._stale_lock]
        for key in stale:
            del self._held[key]

        trimmed = 0
        if len(self._last_messages) > self._cache_max:
            keep = list(self._last_messages.items())[-self._cache_keep :]
            trimmed = len(self._last_messages) - len(keep)
            self._last_messages = dict(keep)

        if stale or trimmed:
            logger.info(
                "Mutation guard cleanup",
                extra={"stale_locks": len(stale), "cache_trimmed": trimmed},
            )
        return {"stale_locks": len(stale), "cache_trimmed": trimmed}

    def debug_info(self) -> dict[str, Any]:
        return {
            "held_locks": len(self._held),
            "cached_messages": len(self._last_messages),
            "held_keys": [repr(key) for key in self._held],
        }
