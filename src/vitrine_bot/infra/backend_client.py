"""Cliente REST do backend da loja.

Toda chamada retorna BackendResult e nunca lança: timeout, falha de
conexão e status não-2xx viram `success=False` com uma mensagem curta.
Quem chama decide o texto mostrado ao usuário; `BackendResult.unwrap()`
converte a falha em BackendUnavailable para leituras sem tratamento próprio.

GETs são retentados (idempotentes); POSTs (checkout, depósito) nunca.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from vitrine_bot.domain.errors import BackendUnavailable
from vitrine_bot.infra.http import HttpClient, HttpError, create_http_client
from vitrine_bot.observability.logging import get_logger

if TYPE_CHECKING:
    from vitrine_bot.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

# Filtros aceitos pelo endpoint de produtos
PRODUCT_FILTER_KEYS = ("base", "state", "year_from", "year_to")


@dataclass(slots=True)
class BackendResult:
    """Resultado uniforme de uma chamada ao backend."""

    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    status_code: int | None = None

    def unwrap(self) -> dict[str, Any]:
        """Retorna `data`; lança BackendUnavailable se a chamada falhou."""
        if not self.success:
            raise BackendUnavailable(self.error or "Backend call failed", self.status_code)
        return self.data


def _error_message(exc: HttpError, fallback: str) -> str:
    """Extrai `message` do corpo de erro do backend, se houver."""
    response = exc.response
    if response is not None:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("message"), str):
            return body["message"]
    if exc.status_code is None:
        return "Unable to connect to server"
    return fallback


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {"items": body}


def build_product_query(username: str, filters: Mapping[str, Any]) -> dict[str, str]:
    """Monta query string do endpoint de produtos a partir dos filtros."""
    params = {"username": username}
    for key in PRODUCT_FILTER_KEYS:
        value = filters.get(key)
        if value not in (None, ""):
            params[key] = str(value)
    return params


class ShopBackendClient:
    """Operações do backend usadas pelo workflow."""

    def __init__(
        self,
        http: HttpClient,
        checkout_timeout_seconds: float = 15.0,
    ) -> None:
        self._http = http
        self._checkout_timeout = checkout_timeout_seconds

    async def close(self) -> None:
        await self._http.close()

    async def _call(
        self,
        operation: str,
        method: str,
        path: str,
        fallback_error: str,
        **kwargs: Any,
    ) -> BackendResult:
        try:
            if method == "GET":
                response = await self._http.get(path, **kwargs)
            else:
                response = await self._http.post(path, **kwargs)
        except HttpError as exc:
            error = _error_message(exc, fallback_error)
            logger.warning(
                "Backend call failed",
                extra={
                    "operation": operation,
                    "status_code": exc.status_code,
                    "retryable": exc.is_retryable,
                },
            )
            return BackendResult(success=False, error=error, status_code=exc.status_code)

        return BackendResult(
            success=True,
            data=_json_body(response),
            status_code=response.status_code,
        )

    async def create_or_fetch_user(self, username: str) -> BackendResult:
        result = await self._call(
            "create_or_fetch_user",
            "POST",
            "/users",
            "Failed to get user",
            json={"username": username},
        )
        if result.success:
            result.data = {"user": result.data.get("user", result.data)}
        return result

    async def get_wallet(self, username: str) -> BackendResult:
        result = await self._call(
            "get_wallet", "GET", f"/wallet/{username}", "Failed to get wallet"
        )
        if result.success:
            payload = result.data.get("data", result.data)
            result.data = {
                "balance": payload.get("balance", 0),
                "transactions": payload.get("transactions") or [],
            }
        return result

    async def list_categories(self) -> BackendResult:
        result = await self._call(
            "list_categories", "GET", "/categories", "Failed to get categories"
        )
        if result.success:
            result.data = {"categories": result.data.get("categories") or []}
        return result

    async def list_products(
        self, username: str, filters: Mapping[str, Any]
    ) -> BackendResult:
        """Consulta a quantidade disponível para os filtros."""
        result = await self._call(
            "list_products",
            "GET",
            "/products",
            "Failed to get products",
            params=build_product_query(username, filters),
        )
        if result.success:
            result.data = {
                "available_quantity": int(result.data.get("count") or 0),
                "products": result.data.get("products") or [],
            }
        return result

    async def checkout(
        self,
        username: str,
        filters: Mapping[str, Any],
        quantity: int,
    ) -> BackendResult:
        """Efetiva a compra. Nunca é retentado automaticamente."""
        result = await self._call(
            "checkout",
            "POST",
            "/checkout",
            "Checkout failed",
            json={"username": username, "quantity": quantity, "filters": dict(filters)},
            timeout=self._checkout_timeout,
        )
        if not result.success:
            return result

        filename = result.data.get("filename")
        download_ref = result.data.get("download_ref") or result.data.get("path")
        if not filename or not download_ref:
            logger.error("Checkout response missing artifact reference")
            return BackendResult(
                success=False,
                error="Invalid response: missing filename or download reference",
                status_code=result.status_code,
            )

        result.data = {
            "filename": filename,
            "download_ref": download_ref,
            "size": int(result.data.get("size") or 0),
            "message": result.data.get("message"),
        }
        logger.info(
            "Checkout completed",
            extra={"quantity": quantity, "artifact_size": result.data["size"]},
        )
        return result

    async def list_currencies(self) -> BackendResult:
        result = await self._call(
            "list_currencies", "GET", "/currencies", "Failed to get currencies"
        )
        if result.success:
            currencies = result.data.get("currencies", result.data.get("items")) or []
            result.data = {"currencies": currencies}
        return result

    async def create_deposit(
        self,
        amount: float,
        currency: str,
        username: str,
        note: str = "Bot deposit",
    ) -> BackendResult:
        result = await self._call(
            "create_deposit",
            "POST",
            "/deposit",
            "Failed to create deposit",
            json={
                "amount": amount,
                "currency": currency,
                "username": username,
                "description": note,
            },
        )
        if result.success:
            payload = result.data.get("data", result.data)
            result.data = {
                "payment": payload.get("payment") or payload.get("paymentData") or {},
                "transaction_id": payload.get("transaction_id") or payload.get("transactionId"),
                "status": payload.get("status"),
            }
        return result

    async def download_artifact(self, ref: str) -> BackendResult:
        """Baixa o arquivo da compra; `data["content"]` traz os bytes."""
        try:
            response = await self._http.get(ref)
        except HttpError as exc:
            logger.warning(
                "Artifact download failed",
                extra={"status_code": exc.status_code},
            )
            return BackendResult(
                success=False,
                error=_error_message(exc, "Failed to download file"),
                status_code=exc.status_code,
            )
        return BackendResult(
            success=True,
            data={"content": response.content},
            status_code=response.status_code,
        )


def create_backend_client(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ShopBackendClient:
    """Factory do cliente do backend configurado via Settings."""
    return ShopBackendClient(
        http=create_http_client(settings, transport=transport),
        checkout_timeout_seconds=float(settings.backend_checkout_timeout_seconds),
    )
