"""Taxonomia de erros do bot.

Cada erro tem um ponto de tratamento definido:
- AdmissionRejected: aviso de limite no WorkflowDispatcher
- ValidationFailed: tratado onde é detectado (re-pergunta)
- StaleSession: aviso de "recomeçar", sem mutação de estado
- EditTargetInvalid: recuperado dentro do safe_mutate (fallback para envio)
- BackendUnavailable: mensagem genérica com caminho de volta ao menu
  (FlowContext.unavailable_on)
- TransportTransient: uma nova tentativa, depois propagado
"""

from __future__ import annotations


class AdmissionRejected(Exception):
    """Evento rejeitado por cota ou repetição."""

    def __init__(self, user_id: str, category: str) -> None:
        super().__init__(f"admission rejected for category {category}")
        self.user_id = user_id
        self.category = category


class StaleSession(Exception):
    """Gatilho chegou sem o estado predecessor exigido (ou sessão expirada)."""

    def __init__(self, trigger: str, expected: str | None = None) -> None:
        detail = f"stale session for {trigger}"
        if expected:
            detail += f" (expected step {expected})"
        super().__init__(detail)
        self.trigger = trigger
        self.expected = expected


class ValidationFailed(Exception):
    """Entrada do usuário inválida (quantidade, valor de depósito)."""

    pass


class BackendUnavailable(Exception):
    """Backend indisponível: timeout, conexão ou status não-2xx."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportError(Exception):
    """Erro genérico retornado pelo transporte (Telegram)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EditTargetInvalid(TransportError):
    """Mensagem alvo não pode ser editada (não encontrada, sem mudança, etc.)."""

    pass


class TransportTransient(TransportError):
    """Falha transitória do transporte (timeout, conexão, rate limit)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code)
        self.retry_after = retry_after
