"""Admission control: janela deslizante por usuário e supressão de repetições.

Implementa:
- Rate limit por (usuário, categoria) com janela deslizante
- Detecção de repetição rápida (mesmo tipo de pedido em intervalo curto)
- Varredura periódica que mantém em memória apenas usuários ativos

Todas as operações são síncronas: nenhuma suspende o event loop, então cada
check-then-act é atômico em relação às outras tasks.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from vitrine_bot.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

STATUS_WINDOW_SECONDS = 60.0


class EventCategory(StrEnum):
    """Categorias de eventos com cotas independentes."""

    COMMAND = "command"
    TAP = "tap"
    TEXT = "text"


@dataclass(slots=True)
class UserAdmissionStatus:
    """Contagem recente de eventos aceitos de um usuário."""

    counts: dict[str, int]
    last_activity: float | None


class AdmissionControl:
    """Rate limiter de janela deslizante + supressor de repetições.

    Nunca lança exceção; ausência de estado anterior = não limitado.
    A janela de um par (usuário, categoria) só registra eventos admitidos,
    então uma rajada rejeitada não consome cota.
    """

    def __init__(
        self,
        retention_seconds: float = 300.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._retention = retention_seconds
        self._clock = clock or time.monotonic
        self._windows: dict[tuple[str, str], list[float]] = {}
        self._last_seen: dict[tuple[str, str], float] = {}

    def admit(
        self,
        user_id: str | int,
        category: str,
        max_events: int,
        window_seconds: float,
    ) -> bool:
        """Registra o evento se houver cota; retorna False se limitado."""
        now = self._clock()
        key = (str(user_id), str(category))

        events = self._windows.setdefault(key, [])
        cutoff = now - window_seconds
        events[:] = [ts for ts in events if ts > cutoff]

        if len(events) >= max_events:
            logger.warning(
                "Admission rejected",
                extra={
                    "user_id": key[0],
                    "category": key[1],
                    "event_count": len(events),
                    "max_events": max_events,
                    "window_seconds": window_seconds,
                },
            )
            return False

        events.append(now)
        return True

    def is_duplicate(
        self,
        user_id: str | int,
        request_type: str,
        min_interval_seconds: float,
    ) -> bool:
        """True se o último pedido do mesmo tipo foi há menos de min_interval.

        O timestamp armazenado é sempre atualizado para agora.
        """
        now = self._clock()
        key = (str(user_id), str(request_type))
        last = self._last_seen.get(key)
        self._last_seen[key] = now

        if last is not None and (now - last) < min_interval_seconds:
            logger.debug(
                "Duplicate request suppressed",
                extra={"user_id": key[0], "request_type": key[1]},
            )
            return True
        return False

    def sweep(self) -> int:
        """Remove janelas sem eventos vivos e repetições antigas.

        Returns:
            Quantidade de entradas removidas
        """
        now = self._clock()
        cutoff = now - self._retention
        cleaned = 0

        for key in list(self._windows):
            live = [ts for ts in self._windows[key] if ts > cutoff]
            if live:
                self._windows[key] = live
            else:
                del self._windows[key]
                cleaned += 1

        for key, last in list(self._last_seen.items()):
            if last <= cutoff:
                del self._last_seen[key]
                cleaned += 1

        if cleaned:
            logger.info("Admission sweep removed entries", extra={"cleaned": cleaned})
        return cleaned

    def user_status(self, user_id: str | int) -> UserAdmissionStatus:
        """Eventos aceitos no último minuto, por categoria.

        Janelas qualificadas ("command:start") somam na categoria base.
        """
        now = self._clock()
        uid = str(user_id)
        counts: dict[str, int] = {}
        last_activity: float | None = None

        for (owner, category), events in self._windows.items():
            if owner != uid:
                continue
            recent = [ts for ts in events if now - ts < STATUS_WINDOW_SECONDS]
            base = category.split(":", 1)[0]
            counts[base] = counts.get(base, 0) + len(recent)
            if recent:
                last_activity = max(last_activity or recent[-1], recent[-1])

        return UserAdmissionStatus(counts=counts, last_activity=last_activity)

    def reset_user(self, user_id: str | int) -> None:
        """Zera janelas e repetições de um usuário."""
        uid = str(user_id)
        for key in [k for k in self._windows if k[0] == uid]:
            del self._windows[key]
        for key in [k for k in self._last_seen if k[0] == uid]:
            del self._last_seen[key]
        logger.info("Admission limits reset", extra={"user_id": uid})

    def stats(self) -> dict[str, int]:
        """Estatísticas agregadas para /status e health."""
        active = {owner for owner, _ in self._windows}
        return {
            "active_users": len(active),
            "window_entries": len(self._windows),
            "duplicate_entries": len(self._last_seen),
        }
