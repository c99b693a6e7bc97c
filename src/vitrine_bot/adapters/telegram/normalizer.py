from __future__ import annotations

import logging
from typing import Any

from vitrine_bot.adapters.telegram.models import EventKind, InboundEvent
from vitrine_bot.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _split_command(text: str) -> tuple[str, str]:
    """'/start@MyBot arg' -> ('start', 'arg')."""
    head, _, rest = text.partition(" ")
    command = head[1:].split("@", 1)[0].lower()
    return command, rest.strip()


def _from_message(update_id: int, message: dict[str, Any]) -> InboundEvent | None:
    sender = _mapping(message.get("from"))
    chat = _mapping(message.get("chat"))
    text = message.get("text")
    if not sender.get("id") or chat.get("id") is None or not isinstance(text, str):
        return None

    common = {
        "update_id": update_id,
        "user_id": sender["id"],
        "chat_id": chat["id"],
        "username": sender.get("username"),
        "first_name": sender.get("first_name"),
        "message_id": message.get("message_id"),
    }
    if text.startswith("/") and len(text) > 1:
        command, args = _split_command(text)
        return InboundEvent(kind=EventKind.COMMAND, command=command, text=args, **common)
    return InboundEvent(kind=EventKind.TEXT, text=text, **common)


def _from_callback(update_id: int, query: dict[str, Any]) -> InboundEvent | None:
    sender = _mapping(query.get("from"))
    message = _mapping(query.get("message"))
    chat = _mapping(message.get("chat"))
    if not sender.get("id") or chat.get("id") is None or not query.get("id"):
        return None

    return InboundEvent(
        update_id=update_id,
        kind=EventKind.TAP,
        user_id=sender["id"],
        chat_id=chat["id"],
        username=sender.get("username"),
        first_name=sender.get("first_name"),
        action_data=query.get("data"),
        interaction_id=str(query["id"]),
        message_id=message.get("message_id"),
    )


def normalize_update(payload: dict[str, Any]) -> InboundEvent | None:
    """Normaliza um update do Telegram em InboundEvent.

    Tipos não suportados (fotos, edições, membros de grupo...) retornam None.
    """
    update_id = payload.get("update_id")
    if not isinstance(update_id, int):
        return None

    if isinstance(payload.get("message"), dict):
        event = _from_message(update_id, payload["message"])
    elif isinstance(payload.get("callback_query"), dict):
        event = _from_callback(update_id, payload["callback_query"])
    else:
        event = None

    if event is None:
        logger.debug("Update ignored", extra={"update_id": update_id})
    return event
