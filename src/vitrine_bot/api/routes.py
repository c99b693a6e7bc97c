"""Rotas HTTP: healthcheck e webhook do Telegram."""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from vitrine_bot.adapters.telegram.normalizer import normalize_update
from vitrine_bot.adapters.telegram.signature import check_secret_token
from vitrine_bot.api.dependencies import get_dispatcher, get_runtime, get_settings
from vitrine_bot.application.dispatcher import WorkflowDispatcher
from vitrine_bot.application.factories import BotRuntime
from vitrine_bot.config.settings import Settings
from vitrine_bot.observability.logging import get_logger
from vitrine_bot.observability.middleware import get_correlation_id

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
def health(
    settings: Settings = Depends(get_settings),
    runtime: BotRuntime = Depends(get_runtime),
) -> dict[str, Any]:
    """Healthcheck com contadores dos stores em memória."""
    return {
        "status": "ok",
        "service": settings.service_name,
        "version": settings.version,
        "sessions": len(runtime.sessions),
        "admission": runtime.admission.stats(),
        "maintenance_running": runtime.maintenance.running,
    }


@router.post("/webhooks/telegram")
async def telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    dispatcher: WorkflowDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """Recebe um update e agenda o processamento após a resposta.

    Responder 200 rápido evita reentregas do Telegram; o dispatcher roda
    como background task no mesmo event loop.
    """
    secret_check = check_secret_token(request.headers, settings.telegram_webhook_secret)
    if not secret_check.accepted:
        logger.warning("Webhook secret rejected", extra={"reason": secret_check.reason})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_secret_token")

    raw_body = await request.body()
    try:
        payload = json.loads(raw_body or b"{}")
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_json") from exc

    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_update")

    event = normalize_update(payload)
    if event is None:
        return {"ok": True, "status": "ignored", "correlation_id": get_correlation_id()}

    background_tasks.add_task(dispatcher.handle, event)
    return {
        "ok": True,
        "status": "accepted",
        "update_id": event.update_id,
        "correlation_id": get_correlation_id(),
        "secret_skipped": secret_check.skipped,
    }
