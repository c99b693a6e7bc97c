"""Runner de long polling (alternativa ao webhook).

Cada update vira uma task própria; `max_concurrent` limita quantas ficam
em voo. O offset avança assim que o update é recebido: a entrega é
no máximo uma vez.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from vitrine_bot.adapters.telegram.client import TelegramBotClient
from vitrine_bot.adapters.telegram.models import InboundEvent
from vitrine_bot.adapters.telegram.normalizer import normalize_update
from vitrine_bot.domain.errors import TransportError
from vitrine_bot.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class PollingRunner:
    def __init__(
        self,
        client: TelegramBotClient,
        handler: Callable[[InboundEvent], Awaitable[None]],
        timeout_seconds: int = 10,
        max_concurrent: int = 32,
        error_backoff_seconds: float = 3.0,
    ) -> None:
        self._client = client
        self._handler = handler
        self._timeout = timeout_seconds
        self._max_concurrent = max_concurrent
        self._error_backoff = error_backoff_seconds
        self._offset: int | None = None
        self._in_flight: set[asyncio.Task] = set()
        self._stopping = asyncio.Event()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def stop(self) -> None:
        self._stopping.set()

    def dispatch(self, update: dict[str, Any]) -> asyncio.Task | None:
        """Normaliza o update e agenda o handler em uma task própria."""
        update_id = update.get("update_id")
        if isinstance(update_id, int):
            self._offset = max(self._offset or 0, update_id + 1)

        event = normalize_update(update)
        if event is None:
            return None

        task = asyncio.create_task(self._handler(event))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def poll_once(self) -> int:
        """Uma chamada getUpdates; retorna quantos updates chegaram."""
        updates = await self._client.get_updates(offset=self._offset, timeout=self._timeout)
        for update in updates:
            self.dispatch(update)
        return len(updates)

    async def run(self) -> None:
        logger.info(
            "Polling runner started",
            extra={"timeout_seconds": self._timeout, "max_concurrent": self._max_concurrent},
        )
        while not self._stopping.is_set():
            if len(self._in_flight) >= self._max_concurrent:
                await asyncio.wait(self._in_flight, return_when=asyncio.FIRST_COMPLETED)
                continue
            try:
                await self.poll_once()
            except TransportError as exc:
                logger.warning(
                    "getUpdates failed",
                    extra={"status_code": exc.status_code, "error_class": type(exc).__name__},
                )
                await asyncio.sleep(self._error_backoff)

        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        logger.info("Polling runner stopped")
