"""Configurações da aplicação via variáveis de ambiente.

Todas as configurações são carregadas de env vars (ou arquivo .env).
Nunca hardcode o token do bot ou valores sensíveis.
"""

from __future__ import annotations

import re
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

# -----------------------------------------------------------------------------
# Constantes da Telegram Bot API
# Referência: https://core.telegram.org/bots/api
# -----------------------------------------------------------------------------
TELEGRAM_API_BASE_URL: str = "https://api.telegram.org"
TELEGRAM_MAX_MESSAGE_LENGTH: int = 4096
TELEGRAM_MAX_CALLBACK_DATA_BYTES: int = 64
# secret_token do setWebhook: 1-256 caracteres A-Z, a-z, 0-9, _ e -
TELEGRAM_SECRET_TOKEN_PATTERN: re.Pattern[str] = re.compile(r"[A-Za-z0-9_-]{1,256}")


class Settings(BaseSettings):
    """Configurações lidas do ambiente."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Aplicação
    service_name: str = "vitrine_bot"
    version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    bot_display_name: str = "Vitrine"
    support_contact_url: str | None = None  # botão "Contact Support" do /help
    channel_url: str | None = None  # botão "Join Channel" do /help

    # Telegram Bot API
    telegram_bot_token: str | None = None
    telegram_api_base_url: str = TELEGRAM_API_BASE_URL
    telegram_webhook_secret: str | None = None  # X-Telegram-Bot-Api-Secret-Token
    telegram_webhook_url: str | None = None  # URL pública do webhook
    telegram_request_timeout_seconds: float = 30.0
    telegram_max_message_length: int = TELEGRAM_MAX_MESSAGE_LENGTH
    telegram_polling_timeout_seconds: int = 10  # long polling do getUpdates
    telegram_polling_max_concurrent: int = 32  # updates em voo no modo polling

    # Backend da loja (REST)
    backend_api_base_url: str = "http://localhost:3000/api"
    backend_timeout_seconds: float = 10.0
    backend_checkout_timeout_seconds: float = 15.0
    backend_max_retries: int = 1  # apenas para GETs (idempotentes)
    backend_retry_backoff_seconds: float = 0.5

    # Sessão de workflow
    session_ttl_minutes: int = 30  # Timeout de inatividade
    session_sweep_interval_seconds: int = 600

    # Admission control (janela deslizante por usuário e categoria)
    admission_window_seconds: float = 60.0
    admission_tap_max_events: int = 20
    admission_text_max_events: int = 15
    admission_text_min_interval_seconds: float = 2.0  # repetição de texto
    admission_start_max_events: int = 5
    admission_wallet_max_events: int = 10
    admission_deposit_max_events: int = 8
    admission_help_max_events: int = 5
    admission_status_max_events: int = 3
    admission_command_max_events: int = 10  # comandos sem limite próprio
    admission_sweep_interval_seconds: int = 120
    admission_retention_seconds: int = 300

    # MutationGuard
    transient_retry_delay_seconds: float = 1.0
    guard_cleanup_interval_seconds: int = 300
    guard_message_cache_max_entries: int = 100
    guard_message_cache_keep_entries: int = 50

    # Política do workflow (valores de produto, não contratos)
    min_deposit: float = 10.0
    max_deposit: float = 10000.0
    deposit_amount_options: list[int] = [20, 30, 40, 50, 60, 70, 80, 90, 100, 150, 200, 300, 400, 500]
    year_range_start: int = 1940
    year_range_end: int = 2005
    year_range_step: int = 5
    region_options: list[str] = [
        "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
        "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
        "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
        "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
        "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
    ]
    recent_transactions_limit: int = 5

    @property
    def telegram_api_endpoint(self) -> str:
        """Retorna a URL base dos métodos do bot (base + token)."""
        return f"{self.telegram_api_base_url}/bot{self.telegram_bot_token}"

    @property
    def session_ttl_seconds(self) -> float:
        """TTL da sessão em segundos."""
        return float(self.session_ttl_minutes * 60)

    @property
    def is_production(self) -> bool:
        """Retorna True se ambiente é produção."""
        return self.environment.lower() in ("production", "prod")

    @property
    def is_staging(self) -> bool:
        """Retorna True se ambiente é staging."""
        return self.environment.lower() in ("staging", "stage")

    @property
    def is_development(self) -> bool:
        """Retorna True se ambiente é desenvolvimento."""
        return self.environment.lower() in ("development", "dev", "local")

    def validate_telegram_config(self) -> list[str]:
        """Valida se configurações mínimas do Telegram estão presentes.

        Retorna lista de erros (vazia = tudo OK).
        """
        errors: list[str] = []
        if not self.telegram_bot_token:
            errors.append("TELEGRAM_BOT_TOKEN não configurado")
        if (self.is_staging or self.is_production) and not self.telegram_webhook_secret:
            errors.append("TELEGRAM_WEBHOOK_SECRET obrigatório em staging/production")
        if self.telegram_webhook_secret and not TELEGRAM_SECRET_TOKEN_PATTERN.fullmatch(
            self.telegram_webhook_secret
        ):
            errors.append("TELEGRAM_WEBHOOK_SECRET aceita apenas A-Z, a-z, 0-9, _ e - (até 256)")
        if self.telegram_webhook_url and not self.telegram_webhook_url.startswith("https://"):
            errors.append("TELEGRAM_WEBHOOK_URL deve usar https")
        if not 0 < self.telegram_max_message_length <= TELEGRAM_MAX_MESSAGE_LENGTH:
            errors.append(
                f"TELEGRAM_MAX_MESSAGE_LENGTH deve estar entre 1 e {TELEGRAM_MAX_MESSAGE_LENGTH}"
            )
        return errors

    def validate_backend_config(self) -> list[str]:
        """Valida configuração do backend da loja."""
        errors: list[str] = []
        if not self.backend_api_base_url:
            errors.append("BACKEND_API_BASE_URL não configurado")
        elif not self.backend_api_base_url.startswith(("http://", "https://")):
            errors.append("BACKEND_API_BASE_URL deve começar com http:// ou https://")
        if self.backend_timeout_seconds <= 0 or self.backend_checkout_timeout_seconds <= 0:
            errors.append("Timeouts do backend devem ser positivos")
        if self.backend_max_retries < 0:
            errors.append("BACKEND_MAX_RETRIES deve ser >= 0")
        return errors

    def validate_session_config(self) -> list[str]:
        """Valida TTL e intervalo de varredura das sessões."""
        errors: list[str] = []
        if self.session_ttl_minutes <= 0:
            errors.append("SESSION_TTL_MINUTES deve ser > 0")
        if self.session_sweep_interval_seconds <= 0:
            errors.append("SESSION_SWEEP_INTERVAL_SECONDS deve ser > 0")
        return errors

    def validate_admission_config(self) -> list[str]:
        """Valida limites de admission control."""
        errors: list[str] = []
        limits = {
            "ADMISSION_TAP_MAX_EVENTS": self.admission_tap_max_events,
            "ADMISSION_TEXT_MAX_EVENTS": self.admission_text_max_events,
            "ADMISSION_START_MAX_EVENTS": self.admission_start_max_events,
            "ADMISSION_WALLET_MAX_EVENTS": self.admission_wallet_max_events,
            "ADMISSION_DEPOSIT_MAX_EVENTS": self.admission_deposit_max_events,
            "ADMISSION_HELP_MAX_EVENTS": self.admission_help_max_events,
            "ADMISSION_STATUS_MAX_EVENTS": self.admission_status_max_events,
            "ADMISSION_COMMAND_MAX_EVENTS": self.admission_command_max_events,
        }
        for name, value in limits.items():
            if value < 1:
                errors.append(f"{name} deve ser >= 1")
        if self.admission_window_seconds <= 0:
            errors.append("ADMISSION_WINDOW_SECONDS deve ser > 0")
        if self.admission_retention_seconds < self.admission_window_seconds:
            errors.append("ADMISSION_RETENTION_SECONDS deve cobrir a janela de admissão")
        return errors

    def validate_workflow_policy(self) -> list[str]:
        """Valida constantes de produto usadas pelo workflow."""
        errors: list[str] = []
        if self.min_deposit <= 0:
            errors.append("MIN_DEPOSIT deve ser > 0")
        if self.max_deposit < self.min_deposit:
            errors.append("MAX_DEPOSIT deve ser >= MIN_DEPOSIT")
        if self.year_range_end < self.year_range_start or self.year_range_step < 1:
            errors.append("Faixa de anos inválida (YEAR_RANGE_START/END/STEP)")
        if not self.region_options:
            errors.append("REGION_OPTIONS não pode ser vazio")
        return errors

    def validate_all(self) -> list[str]:
        """Agrega todas as validações (usado no bootstrap)."""
        errors: list[str] = []
        errors.extend(self.validate_telegram_config())
        errors.extend(self.validate_backend_config())
        errors.extend(self.validate_session_config())
        errors.extend(self.validate_admission_config())
        errors.extend(self.validate_workflow_policy())
        return errors


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Retorna uma instância cacheada de Settings.

    A cache garante que mesmo múltiplas injeções não criam novos objetos.
    """
    return Settings()
