"""Fábrica da aplicação FastAPI.

Sem instância em nível de módulo: servir com
`uvicorn vitrine_bot.api.app:create_app --factory` ou `python -m vitrine_bot serve`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from vitrine_bot.api.routes import router
from vitrine_bot.application.factories import build_runtime
from vitrine_bot.config.settings import Settings, get_settings
from vitrine_bot.observability.logging import configure_logging, get_logger
from vitrine_bot.observability.middleware import CorrelationIdMiddleware

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    telegram_transport: httpx.AsyncBaseTransport | None = None,
    backend_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Cria a aplicação FastAPI."""
    settings = settings or get_settings()
    configure_logging(
        settings.log_level, settings.service_name, json_output=not settings.is_development
    )

    validation_errors = settings.validate_all()
    if validation_errors:
        error_msg = "; ".join(validation_errors)
        raise ValueError(f"Configuração inválida: {error_msg}")

    runtime = build_runtime(
        settings,
        telegram_transport=telegram_transport,
        backend_transport=backend_transport,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        runtime.maintenance.start()
        try:
            yield
        finally:
            await runtime.aclose()

    app = FastAPI(title=settings.service_name, version=settings.version, lifespan=lifespan)
    app.add_middleware(CorrelationIdMiddleware)
    app.include_router(router)

    app.state.settings = settings
    app.state.runtime = runtime
    app.state.dispatcher = runtime.dispatcher

    logger.info("Application created", extra={"environment": settings.environment})
    return app
