"""Modelos normalizados para a Telegram Bot API.

Responsabilidade:
- Estruturar updates do webhook / getUpdates
- Reduzir command, text e callback_query a um evento comum
- Preservar apenas o necessário para o workflow (sem payload bruto)
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class EventKind(StrEnum):
    COMMAND = "command"
    TEXT = "text"
    TAP = "tap"


class InboundEvent(BaseModel):
    """Evento inbound consumido pelo dispatcher.

    - command: `command` sem a barra ("start"), `text` com os argumentos
    - text: `text` com o conteúdo digitado
    - tap: `action_data` (callback_data), `interaction_id` e `message_id`
      da mensagem que contém o botão
    """

    update_id: int
    kind: EventKind
    user_id: int
    chat_id: int
    username: str | None = None
    first_name: str | None = None
    text: str | None = None
    command: str | None = None
    action_data: str | None = None
    interaction_id: str | None = None
    message_id: int | None = None


class SentMessage(BaseModel):
    """Mensagem aceita pelo Telegram (send/edit)."""

    chat_id: int
    message_id: int


class InlineButton(BaseModel):
    """Botão inline: callback_data ou url (exclusivos)."""

    text: str
    callback_data: str | None = None
    url: str | None = None

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class InlineKeyboard(BaseModel):
    """Teclado inline em linhas de botões."""

    rows: list[list[InlineButton]] = Field(default_factory=list)

    def to_api(self) -> dict[str, Any]:
        return {
            "inline_keyboard": [[button.to_api() for button in row] for row in self.rows]
        }
