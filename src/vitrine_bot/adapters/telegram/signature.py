"""Autenticação do webhook do Telegram.

O Telegram não assina o corpo: ele repete em cada POST o `secret_token`
registrado no setWebhook, no header X-Telegram-Bot-Api-Secret-Token.
Sem secret configurado (desenvolvimento), a checagem é pulada.
"""

from __future__ import annotations

import hmac
from collections.abc import Mapping
from dataclasses import dataclass

SECRET_TOKEN_HEADER = "x-telegram-bot-api-secret-token"


@dataclass(frozen=True, slots=True)
class SecretTokenCheck:
    accepted: bool
    skipped: bool = False
    reason: str | None = None


SKIPPED = SecretTokenCheck(accepted=True, skipped=True)


def check_secret_token(headers: Mapping[str, str], expected: str | None) -> SecretTokenCheck:
    if not expected:
        return SKIPPED

    received = headers.get(SECRET_TOKEN_HEADER, "")
    if not received:
        return SecretTokenCheck(accepted=False, reason="missing_secret_token")

    # Comparação em tempo constante
    if hmac.compare_digest(received.encode(), expected.encode()):
        return SecretTokenCheck(accepted=True)
    return SecretTokenCheck(accepted=False, reason="secret_token_mismatch")
