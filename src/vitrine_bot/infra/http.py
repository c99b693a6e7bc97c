"""Cliente HTTP assíncrono compartilhado (Bot API e backend da loja).

- Retry só para métodos idempotentes (GET por padrão); POST nunca repete
- Espera entre tentativas: backoff exponencial, ou o Retry-After do servidor
- Status não-2xx e falhas de transporte viram HttpError
- URLs nos logs passam por mask_bot_token
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from vitrine_bot.observability.logging import get_logger, mask_bot_token

if TYPE_CHECKING:
    from vitrine_bot.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class HttpClientConfig:
    timeout_seconds: float = 30.0
    max_retries: int = 1
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 10.0
    retry_methods: frozenset[str] = frozenset({"GET"})
    default_headers: dict[str, str] = field(default_factory=dict)
    base_url: str = ""
    transport: httpx.AsyncBaseTransport | None = None


class HttpError(Exception):
    """Falha de uma requisição.

    `status_code` é None para timeout/conexão. `response` guarda a resposta
    de erro para quem precisa ler o corpo (description da Bot API,
    `message` do backend).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        is_retryable: bool = False,
        response: httpx.Response | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.is_retryable = is_retryable
        self.response = response


def retry_delay(
    attempt: int,
    config: HttpClientConfig,
    response: httpx.Response | None = None,
) -> float:
    """Segundos até a próxima tentativa (attempt começa em 0)."""
    delay = config.backoff_base_seconds * (2**attempt)
    if response is not None:
        try:
            delay = max(delay, float(response.headers.get("retry-after", 0)))
        except (TypeError, ValueError):
            pass
    return min(delay, config.backoff_max_seconds)


def _to_http_error(exc: httpx.HTTPError) -> HttpError:
    if isinstance(exc, httpx.TimeoutException):
        return HttpError("Timeout", is_retryable=True)
    return HttpError("Connection error", is_retryable=True)


def _status_error(response: httpx.Response) -> HttpError:
    return HttpError(
        f"HTTP {response.status_code}",
        status_code=response.status_code,
        is_retryable=response.status_code in RETRYABLE_STATUS,
        response=response,
    )


class HttpClient:
    """Wrapper de httpx.AsyncClient criado sob demanda.

        async with HttpClient(config) as http:
            response = await http.get("/categories")
    """

    def __init__(self, config: HttpClientConfig | None = None) -> None:
        self._config = config or HttpClientConfig()
        self._client: httpx.AsyncClient | None = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            cfg = self._config
            self._client = httpx.AsyncClient(
                base_url=cfg.base_url,
                timeout=httpx.Timeout(cfg.timeout_seconds),
                headers=cfg.default_headers,
                transport=cfg.transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Executa a requisição.

        Raises:
            HttpError: status não-2xx, ou falha de transporte após as tentativas
        """
        client = self._ensure_client()
        cfg = self._config
        attempts = 1 + (cfg.max_retries if method.upper() in cfg.retry_methods else 0)
        safe_url = mask_bot_token(url)

        for attempt in range(attempts):
            response: httpx.Response | None = None
            try:
                response = await client.request(method, url, **kwargs)
            except httpx.HTTPError as exc:
                error = _to_http_error(exc)
            else:
                if response.is_success:
                    return response
                error = _status_error(response)

            last_attempt = attempt + 1 == attempts
            logger.warning(
                "HTTP request failed",
                extra={
                    "method": method,
                    "url": safe_url,
                    "status_code": error.status_code,
                    "error": str(error),
                    "attempt": attempt + 1,
                    "will_retry": error.is_retryable and not last_attempt,
                },
            )
            if not error.is_retryable or last_attempt:
                raise error
            await asyncio.sleep(retry_delay(attempt, cfg, response))

        raise HttpError("Request not attempted")

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(
        self,
        url: str,
        json: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        return await self.request("POST", url, json=json, **kwargs)


def create_http_client(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HttpClient:
    """HttpClient apontado para o backend da loja."""
    return HttpClient(
        HttpClientConfig(
            timeout_seconds=float(settings.backend_timeout_seconds),
            max_retries=settings.backend_max_retries,
            backoff_base_seconds=float(settings.backend_retry_backoff_seconds),
            default_headers={"User-Agent": f"{settings.service_name}/{settings.version}"},
            base_url=settings.backend_api_base_url.rstrip("/"),
            transport=transport,
        )
    )
