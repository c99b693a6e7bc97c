"""Configurações centralizadas do vitrine_bot.

Este módulo exporta:
- Settings: classe de configuração via variáveis de ambiente
- get_settings: função cacheada para obter instância única
- Constantes da Telegram Bot API

Uso típico:
    from vitrine_bot.config import get_settings
"""

from vitrine_bot.config.settings import (
    TELEGRAM_API_BASE_URL,
    TELEGRAM_MAX_CALLBACK_DATA_BYTES,
    TELEGRAM_MAX_MESSAGE_LENGTH,
    TELEGRAM_SECRET_TOKEN_PATTERN,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "TELEGRAM_API_BASE_URL",
    "TELEGRAM_MAX_CALLBACK_DATA_BYTES",
    "TELEGRAM_MAX_MESSAGE_LENGTH",
    "TELEGRAM_SECRET_TOKEN_PATTERN",
]
