"""Factory do runtime do bot.

Responsabilidades:
- Conhecer infra e settings
- Construir os componentes compartilhados (um de cada por processo)
- Retornar um BotRuntime pronto para webhook ou polling

Não conter lógica de negócio.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from vitrine_bot.adapters.telegram.client import TelegramBotClient, create_telegram_client
from vitrine_bot.application.dispatcher import WorkflowDispatcher
from vitrine_bot.application.maintenance import MaintenanceScheduler, create_maintenance_scheduler
from vitrine_bot.application.mutation_guard import MutationGuard
from vitrine_bot.config.settings import Settings, get_settings
from vitrine_bot.domain.admission import AdmissionControl
from vitrine_bot.infra.backend_client import ShopBackendClient, create_backend_client
from vitrine_bot.infra.session_store import InMemorySessionStore
from vitrine_bot.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class BotRuntime:
    settings: Settings
    admission: AdmissionControl
    sessions: InMemorySessionStore
    guard: MutationGuard
    telegram: TelegramBotClient
    backend: ShopBackendClient
    dispatcher: WorkflowDispatcher
    maintenance: MaintenanceScheduler

    async def aclose(self) -> None:
        """Para a manutenção e fecha os clientes HTTP."""
        await self.maintenance.stop()
        await self.telegram.close()
        await self.backend.close()


def build_runtime(
    settings: Settings | None = None,
    *,
    telegram_transport: httpx.AsyncBaseTransport | None = None,
    backend_transport: httpx.AsyncBaseTransport | None = None,
) -> BotRuntime:
    """Constrói o BotRuntime a partir de Settings.

    Transports alternativos permitem testes com httpx.MockTransport.
    """
    settings = settings or get_settings()

    admission = AdmissionControl(retention_seconds=float(settings.admission_retention_seconds))
    sessions = InMemorySessionStore(ttl_seconds=settings.session_ttl_seconds)
    telegram = create_telegram_client(settings, transport=telegram_transport)
    backend = create_backend_client(settings, transport=backend_transport)
    guard = MutationGuard(
        telegram,
        max_message_length=settings.telegram_max_message_length,
        retry_delay_seconds=settings.transient_retry_delay_seconds,
        cache_max_entries=settings.guard_message_cache_max_entries,
        cache_keep_entries=settings.guard_message_cache_keep_entries,
    )
    dispatcher = WorkflowDispatcher(
        settings=settings,
        admission=admission,
        sessions=sessions,
        guard=guard,
        backend=backend,
        presenter=telegram,
    )
    maintenance = create_maintenance_scheduler(settings, admission, sessions, guard)

    logger.debug("factory: bot runtime built")
    return BotRuntime(
        settings=settings,
        admission=admission,
        sessions=sessions,
        guard=guard,
        telegram=telegram,
        backend=backend,
        dispatcher=dispatcher,
        maintenance=maintenance,
    )
