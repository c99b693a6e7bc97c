"""SessionStore: estado de workflow por usuário com TTL de inatividade.

Contrato + implementação em memória. Sem persistência entre reinícios:
o estado é de curta duração e pode ser perdido sem dano (o usuário
recomeça pelo menu).
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any

from vitrine_bot.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 30 * 60


class SessionStore(ABC):
    """Contrato abstrato para o estado de workflow de cada usuário."""

    @abstractmethod
    def set(self, user_id: str | int, state: Mapping[str, Any]) -> None:
        """Substitui o estado inteiro e carimba o horário."""
        ...

    @abstractmethod
    def get(self, user_id: str | int) -> dict[str, Any] | None:
        """Retorna o estado vivo, ou None se ausente/expirado."""
        ...

    @abstractmethod
    def merge(self, user_id: str | int, partial: Mapping[str, Any]) -> dict[str, Any]:
        """Mescla (raso) sobre o estado existente e grava."""
        ...

    @abstractmethod
    def clear(self, user_id: str | int) -> bool:
        """Remove o estado incondicionalmente."""
        ...

    @abstractmethod
    def sweep_expired(self) -> int:
        """Remove todas as entradas expiradas."""
        ...


class InMemorySessionStore(SessionStore):
    """Armazenamento em memória, um dict por processo.

    Nenhum método suspende o event loop, então get/merge/set são atômicos
    em relação às outras tasks.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock or time.monotonic
        self._sessions: dict[str, tuple[dict[str, Any], float]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def set(self, user_id: str | int, state: Mapping[str, Any]) -> None:
        self._sessions[str(user_id)] = (dict(state), self._clock())
        logger.debug(
            "Session saved (in-memory)",
            extra={"user_id": str(user_id), "step": state.get("step")},
        )

    def get(self, user_id: str | int) -> dict[str, Any] | None:
        key = str(user_id)
        entry = self._sessions.get(key)
        if entry is None:
            return None

        state, updated_at = entry
        if self._clock() - updated_at > self._ttl:
            del self._sessions[key]
            logger.debug("Session expired (in-memory)", extra={"user_id": key})
            return None

        return dict(state)

    def merge(self, user_id: str | int, partial: Mapping[str, Any]) -> dict[str, Any]:
        merged = self.get(user_id) or {}
        merged.update(partial)
        self.set(user_id, merged)
        return dict(merged)

    def clear(self, user_id: str | int) -> bool:
        key = str(user_id)
        if key in self._sessions:
            del self._sessions[key]
            logger.debug("Session cleared (in-memory)", extra={"user_id": key})
            return True
        return False

    def sweep_expired(self) -> int:
        now = self._clock()
        expired = [
            key
            for key, (_, updated_at) in self._sessions.items()
            if now - updated_at > self._ttl
        ]
        for key in expired:
            del self._sessions[key]

        if expired:
            logger.info("Expired sessions removed", extra={"cleaned": len(expired)})
        return len(expired)

    def exists(self, user_id: str | int) -> bool:
        return self.get(user_id) is not None

    def age_minutes(self, user_id: str | int) -> int | None:
        """Minutos desde a última escrita (None se não houver sessão)."""
        entry = self._sessions.get(str(user_id))
        if entry is None:
            return None
        return int((self._clock() - entry[1]) // 60)

    def clear_all(self) -> int:
        count = len(self._sessions)
        self._sessions.clear()
        logger.info("All sessions cleared", extra={"cleared": count})
        return count

    def stats(self) -> dict[str, Any]:
        """Total de sessões e idades (minutos) média, mais antiga e mais nova."""
        if not self._sessions:
            return {"total": 0, "average_age": 0, "oldest": 0, "newest": 0}

        now = self._clock()
        ages = [(now - updated_at) / 60 for _, updated_at in self._sessions.values()]
        return {
            "total": len(ages),
            "average_age": round(sum(ages) / len(ages)),
            "oldest": round(max(ages)),
            "newest": round(min(ages)),
        }

    def __len__(self) -> int:
        return len(self._sessions)
