"""Testes para ShopBackendClient contra um backend em httpx.MockTransport."""

from __future__ import annotations

import httpx
import pytest

from vitrine_bot.domain.errors import BackendUnavailable
from vitrine_bot.infra.backend_client import (
    BackendResult,
    ShopBackendClient,
    build_product_query,
    create_backend_client,
)


@pytest.fixture
def backend(settings, fake_backend) -> ShopBackendClient:
    return create_backend_client(settings, transport=fake_backend.transport)


class TestBuildProductQuery:
    def test_only_known_non_empty_filters(self):
        params = build_product_query(
            "alice",
            {"base": "C", "state": "CA", "year_from": 1960, "year_to": None, "color": "red"},
        )
        assert params == {"username": "alice", "base": "C", "state": "CA", "year_from": "1960"}


class TestReads:
    @pytest.mark.asyncio
    async def test_list_categories(self, backend):
        result = await backend.list_categories()

        assert result.success is True
        assert [c["id"] for c in result.data["categories"]] == ["C", "P"]

    @pytest.mark.asyncio
    async def test_list_products_sends_filters(self, backend, fake_backend):
        result = await backend.list_products("alice", {"base": "C", "state": "CA"})

        assert result.data == {"available_quantity": 7, "products": []}
        request = fake_backend.calls("GET", "/api/products")[0]
        assert dict(request.url.params) == {"username": "alice", "base": "C", "state": "CA"}

    @pytest.mark.asyncio
    async def test_get_wallet(self, backend):
        result = await backend.get_wallet("alice")
        assert result.success is True
        assert result.data["balance"] == 42.5
        assert len(result.data["transactions"]) == 1

    @pytest.mark.asyncio
    async def test_get_wallet_unwraps_data_envelope(self, backend, fake_backend):
        fake_backend.routes[("GET", "/api/wallet/alice")] = httpx.Response(
            200, json={"data": {"balance": 3}}
        )
        result = await backend.get_wallet("alice")
        assert result.data == {"balance": 3, "transactions": []}

    @pytest.mark.asyncio
    async def test_list_currencies_accepts_bare_list(self, backend, fake_backend):
        fake_backend.routes[("GET", "/api/currencies")] = httpx.Response(200, json=["btc", "eth"])
        result = await backend.list_currencies()
        assert result.data == {"currencies": ["btc", "eth"]}


class TestFailures:
    """Falhas viram BackendResult(success=False), nunca exceção."""

    @pytest.mark.asyncio
    async def test_error_message_from_body(self, backend, fake_backend):
        fake_backend.routes[("POST", "/api/checkout")] = httpx.Response(
            400, json={"message": "Insufficient balance"}
        )
        result = await backend.checkout("alice", {"base": "C"}, 2)

        assert result == BackendResult(
            success=False, data={}, error="Insufficient balance", status_code=400
        )

    @pytest.mark.asyncio
    async def test_fallback_message_without_body(self, backend, fake_backend):
        fake_backend.routes[("GET", "/api/categories")] = httpx.Response(500, text="oops")
        result = await backend.list_categories()

        assert result.success is False
        assert result.error == "Failed to get categories"
        assert result.status_code == 500

    @pytest.mark.asyncio
    async def test_connection_failure(self, settings):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = create_backend_client(settings, transport=httpx.MockTransport(refuse))
        result = await client.list_categories()

        assert result.success is False
        assert result.error == "Unable to connect to server"
        assert result.status_code is None


class TestUnwrap:
    def test_success_returns_data(self):
        assert BackendResult(success=True, data={"count": 3}).unwrap() == {"count": 3}

    def test_failure_raises_backend_unavailable(self):
        result = BackendResult(success=False, error="Failed to get wallet", status_code=503)

        with pytest.raises(BackendUnavailable) as exc_info:
            result.unwrap()

        assert str(exc_info.value) == "Failed to get wallet"
        assert exc_info.value.status_code == 503


class TestCheckout:
    @pytest.mark.asyncio
    async def test_checkout_posts_filters_and_quantity(self, backend, fake_backend):
        result = await backend.checkout("alice", {"base": "C", "state": "CA"}, 5)

        assert result.success is True
        assert result.data == {
            "filename": "order-1.txt",
            "download_ref": "/files/order-1.txt",
            "size": 2048,
            "message": None,
        }
        request = fake_backend.calls("POST", "/api/checkout")[0]
        assert fake_backend.body(request) == {
            "username": "alice",
            "quantity": 5,
            "filters": {"base": "C", "state": "CA"},
        }

    @pytest.mark.asyncio
    async def test_checkout_not_retried(self, settings, fake_backend):
        fake_backend.routes[("POST", "/api/checkout")] = httpx.Response(503, json={})
        retrying = settings.model_copy(update={"backend_max_retries": 3})
        client = create_backend_client(retrying, transport=fake_backend.transport)

        result = await client.checkout("alice", {"base": "C"}, 1)

        assert result.success is False
        assert len(fake_backend.calls("POST", "/api/checkout")) == 1

    @pytest.mark.asyncio
    async def test_checkout_without_artifact_is_failure(self, backend, fake_backend):
        fake_backend.routes[("POST", "/api/checkout")] = httpx.Response(
            200, json={"message": "done"}
        )
        result = await backend.checkout("alice", {"base": "C"}, 1)

        assert result.success is False
        assert "missing filename" in result.error

    @pytest.mark.asyncio
    async def test_download_artifact(self, backend):
        result = await backend.download_artifact("/files/order-1.txt")
        assert result.success is True
        assert result.data["content"] == b"item-1\nitem-2\n"

    @pytest.mark.asyncio
    async def test_download_missing_artifact(self, backend):
        result = await backend.download_artifact("/files/missing.txt")
        assert result.success is False
        assert result.status_code == 404


class TestUsersAndDeposits:
    @pytest.mark.asyncio
    async def test_create_or_fetch_user(self, backend, fake_backend):
        result = await backend.create_or_fetch_user("alice")

        assert result.data == {"user": {"username": "alice"}}
        assert fake_backend.body(fake_backend.requests[0]) == {"username": "alice"}

    @pytest.mark.asyncio
    async def test_create_deposit_normalizes_payload(self, backend, fake_backend):
        result = await backend.create_deposit(25.0, "btc", "alice")

        assert result.data == {
            "payment": {"address": "bc1-test-address", "amount": "0.0005"},
            "transaction_id": "tx-1",
            "status": "pending",
        }
        body = fake_backend.body(fake_backend.calls("POST", "/api/deposit")[0])
        assert body == {
            "amount": 25.0,
            "currency": "btc",
            "username": "alice",
            "description": "Bot deposit",
        }
