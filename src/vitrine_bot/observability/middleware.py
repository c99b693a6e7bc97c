"""Correlation id por unidade de trabalho.

Duas origens:
- request HTTP (webhook, health): header `X-Correlation-ID` ou um novo id
- update do Telegram: `bind_correlation_id(f"update-{update_id}")`

O valor vive num ContextVar; tasks asyncio herdam uma cópia do contexto,
então updates processados em paralelo não se misturam nos logs.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

CORRELATION_HEADER = "x-correlation-id"

_current: ContextVar[str] = ContextVar("vitrine_correlation_id", default="")


def get_correlation_id() -> str:
    return _current.get()


@contextmanager
def bind_correlation_id(correlation_id: str | None = None) -> Iterator[str]:
    """Define o correlation id até o fim do bloco (gera um se ausente)."""
    value = correlation_id or uuid.uuid4().hex
    token = _current.set(value)
    try:
        yield value
    finally:
        _current.reset(token)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Propaga o header de correlação e o devolve na resposta."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        with bind_correlation_id(request.headers.get(CORRELATION_HEADER)) as correlation_id:
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
