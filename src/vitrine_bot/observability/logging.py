"""Logging estruturado do bot.

Produção: uma linha JSON por evento (python-json-logger), com `service`,
`correlation_id` (update do Telegram ou request HTTP) e os campos de
`extra`. Desenvolvimento: mesma informação em texto legível.

Nunca logar texto digitado pelo usuário; apenas ids numéricos.
"""

from __future__ import annotations

import logging
import re

from pythonjsonlogger.json import JsonFormatter

from vitrine_bot.observability.middleware import get_correlation_id

JSON_FIELDS = "%(asctime)s %(levelname)s %(name)s %(message)s %(correlation_id)s %(service)s"
TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(correlation_id)s] %(name)s: %(message)s"

# Token do bot aparece em URLs da Bot API: /bot<id>:<segredo>/método
_BOT_TOKEN_RE = re.compile(r"bot\d+:[A-Za-z0-9_-]+")

# Bibliotecas que logam URLs completas em INFO
_NOISY_LOGGERS = ("httpx", "httpcore")


def mask_bot_token(text: str) -> str:
    return _BOT_TOKEN_RE.sub("bot<redacted>", text)


class ServiceContextFilter(logging.Filter):
    """Preenche `service` e `correlation_id`; mascara token do bot na mensagem."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id() or "-"
        record.service = self._service_name
        if isinstance(record.msg, str) and "bot" in record.msg:
            record.msg = mask_bot_token(record.msg)
        return True


def configure_logging(level: str, service_name: str, json_output: bool = True) -> None:
    """Instala um único handler no root logger.

    Args:
        level: Nível mínimo ("DEBUG", "INFO", ...)
        service_name: Valor do campo `service`
        json_output: False usa formato texto (desenvolvimento local)
    """
    if json_output:
        formatter: logging.Formatter = JsonFormatter(
            JSON_FIELDS,
            rename_fields={"levelname": "level", "name": "logger"},
        )
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(ServiceContextFilter(service_name))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_fallback(
    logger: logging.Logger,
    component: str,
    reason: str | None = None,
    **fields: object,
) -> None:
    """Registra em INFO que um caminho alternativo foi usado.

    Exemplo: edição inválida em `safe_mutate` que virou envio de mensagem
    nova. `fields` carrega ids (chat_id, status_code), nunca texto.
    """
    extra: dict[str, object] = {"fallback_used": True, "component": component, **fields}
    if reason:
        extra["reason"] = reason
    logger.info("Fallback applied for %s", component, extra=extra)
