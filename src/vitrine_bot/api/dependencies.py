"""Dependências injetadas nas rotas."""

from __future__ import annotations

from fastapi import Request

from vitrine_bot.application.dispatcher import WorkflowDispatcher
from vitrine_bot.application.factories import BotRuntime
from vitrine_bot.config.settings import Settings


def get_settings(request: Request) -> Settings:
    """Retorna settings da aplicação."""

    return request.app.state.settings


def get_runtime(request: Request) -> BotRuntime:
    """Retorna o runtime (stores e clientes compartilhados)."""

    return request.app.state.runtime


def get_dispatcher(request: Request) -> WorkflowDispatcher:
    return request.app.state.dispatcher
