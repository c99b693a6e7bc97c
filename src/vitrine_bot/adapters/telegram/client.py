"""Cliente da Telegram Bot API.

Estende HttpClient genérico com comportamentos específicos do Telegram:
- Envelope {"ok": ..., "result": ..., "description": ...}
- Classificação de erros em exceções de domínio:
  EditTargetInvalid (alvo de edição inválido), TransportTransient
  (rate limit, 5xx, timeout, conexão) e TransportError (demais)
- Sem retry interno: a política de retry fica no MutationGuard
- Token do bot nunca aparece em logs
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from vitrine_bot.adapters.telegram.models import InlineKeyboard, SentMessage
from vitrine_bot.domain.errors import EditTargetInvalid, TransportError, TransportTransient
from vitrine_bot.infra.http import HttpClient, HttpClientConfig, HttpError
from vitrine_bot.observability.logging import get_logger

if TYPE_CHECKING:
    from vitrine_bot.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

EDIT_TARGET_ERROR_PHRASES = (
    "message to edit not found",
    "message_id_invalid",
    "message is not modified",
    "message can't be edited",
)


def _describe(exc: HttpError) -> tuple[str, float | None]:
    """Extrai description e retry_after do corpo de erro do Telegram."""
    response = exc.response
    if response is None:
        return str(exc), None
    try:
        body = response.json()
    except ValueError:
        return str(exc), None
    if not isinstance(body, dict):
        return str(exc), None
    parameters = body.get("parameters") or {}
    retry_after = parameters.get("retry_after")
    return str(body.get("description") or exc), (
        float(retry_after) if retry_after is not None else None
    )


def classify_error(exc: HttpError) -> TransportError:
    """Converte HttpError em exceção de transporte do domínio."""
    description, retry_after = _describe(exc)
    lowered = description.lower()

    if any(phrase in lowered for phrase in EDIT_TARGET_ERROR_PHRASES):
        return EditTargetInvalid(description, status_code=exc.status_code)

    if (
        exc.status_code is None
        or exc.status_code == 429
        or exc.status_code >= 500
        or "retry after" in lowered
    ):
        return TransportTransient(
            description, status_code=exc.status_code, retry_after=retry_after
        )

    return TransportError(description, status_code=exc.status_code)


def _markup(markup: InlineKeyboard | None) -> dict[str, Any] | None:
    return markup.to_api() if markup is not None else None


class TelegramBotClient(HttpClient):
    """Cliente HTTP especializado para a Telegram Bot API."""

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        max_message_length: int = 4096,
    ) -> None:
        super().__init__(config)
        self.max_message_length = max_message_length

    async def _call(
        self,
        method: str,
        payload: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Any:
        """Executa um método da Bot API e retorna `result`."""
        try:
            response = await self.post(f"/{method}", json=payload, **kwargs)
        except HttpError as exc:
            error = classify_error(exc)
            logger.warning(
                "Telegram API error",
                extra={
                    "api_method": method,
                    "status_code": exc.status_code,
                    "error_class": type(error).__name__,
                },
            )
            raise error from exc

        try:
            body = response.json()
        except ValueError as exc:
            logger.error("Invalid Telegram response JSON", extra={"api_method": method})
            raise TransportError("Invalid response JSON") from exc

        if not body.get("ok"):
            raise TransportError(str(body.get("description") or "Request not ok"))
        return body.get("result")

    async def send_message(
        self,
        chat_id: int,
        text: str,
        markup: InlineKeyboard | None = None,
    ) -> SentMessage:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if markup is not None:
            payload["reply_markup"] = _markup(markup)
        result = await self._call("sendMessage", payload)
        return SentMessage(chat_id=chat_id, message_id=result["message_id"])

    async def edit_message(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        markup: InlineKeyboard | None = None,
    ) -> SentMessage:
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
        }
        if markup is not None:
            payload["reply_markup"] = _markup(markup)
        await self._call("editMessageText", payload)
        return SentMessage(chat_id=chat_id, message_id=message_id)

    async def answer_interaction(self, interaction_id: str, text: str | None = None) -> None:
        payload: dict[str, Any] = {"callback_query_id": interaction_id}
        if text:
            payload["text"] = text
        await self._call("answerCallbackQuery", payload)

    async def send_document(
        self,
        chat_id: int,
        filename: str,
        content: bytes,
        caption: str | None = None,
    ) -> SentMessage:
        data: dict[str, Any] = {"chat_id": str(chat_id)}
        if caption:
            data["caption"] = caption
        result = await self._call(
            "sendDocument",
            data=data,
            files={"document": (filename, content)},
        )
        return SentMessage(chat_id=chat_id, message_id=result["message_id"])

    async def get_updates(
        self,
        offset: int | None = None,
        timeout: int = 10,
    ) -> list[dict[str, Any]]:
        """Long polling; o timeout HTTP cobre o timeout do Telegram."""
        payload: dict[str, Any] = {
            "timeout": timeout,
            "allowed_updates": ["message", "callback_query"],
        }
        if offset is not None:
            payload["offset"] = offset
        result = await self._call(
            "getUpdates", payload, timeout=httpx.Timeout(timeout + 10.0)
        )
        return list(result or [])

    async def set_webhook(self, url: str, secret_token: str | None = None) -> bool:
        payload: dict[str, Any] = {
            "url": url,
            "allowed_updates": ["message", "callback_query"],
        }
        if secret_token:
            payload["secret_token"] = secret_token
        result = await self._call("setWebhook", payload)
        logger.info("Webhook registered")
        return bool(result)

    async def delete_webhook(self) -> bool:
        """Necessário antes de usar getUpdates se houver webhook ativo."""
        return bool(await self._call("deleteWebhook", {}))


def create_telegram_client(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> TelegramBotClient:
    """Factory do cliente Telegram configurado via Settings.

    Args:
        settings: Configurações da aplicação
        transport: Transport httpx alternativo (testes)
    """
    config = HttpClientConfig(
        timeout_seconds=float(settings.telegram_request_timeout_seconds),
        max_retries=0,
        default_headers={
            "User-Agent": f"{settings.service_name}/{settings.version}",
        },
        base_url=settings.telegram_api_endpoint,
        transport=transport,
    )

    logger.info(
        "Telegram client created",
        extra={"timeout_seconds": config.timeout_seconds},
    )

    return TelegramBotClient(
        config=config,
        max_message_length=settings.telegram_max_message_length,
    )
