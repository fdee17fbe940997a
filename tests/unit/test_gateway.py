"""Unit tests for the Cashfree gateway client."""

import base64
import hashlib
import hmac
from unittest.mock import PropertyMock, patch

import httpx
import pytest

from src.core.gateway import (
    CashfreeClient,
    GatewayConfig,
    GatewayEnvironment,
    GatewayError,
    GatewayTimeoutError,
    verify_webhook_signature,
)


def make_client(handler, environment=GatewayEnvironment.PRODUCTION, fallback=(), timeout=1.0) -> CashfreeClient:
    config = GatewayConfig(
        app_id="app-123",
        secret_key="secret-456",
        environment=environment,
        fallback_environments=fallback,
        timeout_seconds=timeout,
    )
    return CashfreeClient(config, transport=httpx.MockTransport(handler))


class TestGatewayConfig:
    def test_base_urls(self) -> None:
        assert GatewayEnvironment.PRODUCTION.base_url == "https://api.cashfree.com/pg"
        assert GatewayEnvironment.SANDBOX.base_url == "https://sandbox.cashfree.com/pg"

    def test_from_settings(self, test_settings) -> None:
        config = GatewayConfig.from_settings(test_settings)

        assert config.environment is GatewayEnvironment.SANDBOX
        assert config.app_id == "test-app-id"
        assert config.read_environments == (GatewayEnvironment.SANDBOX,)

    def test_read_environments_include_fallback(self) -> None:
        config = GatewayConfig(
            app_id="a",
            secret_key="s",
            fallback_environments=(GatewayEnvironment.SANDBOX,),
        )

        assert config.read_environments == (GatewayEnvironment.PRODUCTION, GatewayEnvironment.SANDBOX)


class TestVerifyWebhookSignature:
    """Tests for verify_webhook_signature."""

    BODY = b'{"type":"PAYMENT_SUCCESS_WEBHOOK"}'

    def sign(self, timestamp: str, body: bytes, secret: str = "secret-456") -> str:
        digest = hmac.new(secret.encode(), timestamp.encode() + body, hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    def test_valid_signature(self) -> None:
        signature = self.sign("1700000000", self.BODY)

        assert verify_webhook_signature(self.BODY, "1700000000", signature, "secret-456") is True

    def test_tampered_body(self) -> None:
        signature = self.sign("1700000000", self.BODY)

        assert verify_webhook_signature(self.BODY + b" ", "1700000000", signature, "secret-456") is False

    def test_wrong_secret(self) -> None:
        signature = self.sign("1700000000", self.BODY, secret="other")

        assert verify_webhook_signature(self.BODY, "1700000000", signature, "secret-456") is False

    def test_missing_parts(self) -> None:
        assert verify_webhook_signature(self.BODY, "", "sig", "secret-456") is False
        assert verify_webhook_signature(self.BODY, "1700000000", "", "secret-456") is False
        assert verify_webhook_signature(self.BODY, "1700000000", "sig", "") is False


class TestCashfreeClient:
    """Tests for CashfreeClient requests."""

    @pytest.mark.asyncio
    async def test_create_order_sends_credentials(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"payment_session_id": "session_1", "order_status": "ACTIVE"})

        client = make_client(handler)
        response = await client.create_order({"order_id": "order_1", "order_amount": 150.0})

        assert response["payment_session_id"] == "session_1"
        (request,) = seen
        assert request.method == "POST"
        assert str(request.url) == "https://api.cashfree.com/pg/orders"
        assert request.headers["x-client-id"] == "app-123"
        assert request.headers["x-client-secret"] == "secret-456"
        assert request.headers["x-api-version"] == "2023-08-01"

    @pytest.mark.asyncio
    async def test_error_response_raises_gateway_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "authentication Failed", "code": "request_failed"})

        with pytest.raises(GatewayError) as exc_info:
            await make_client(handler).create_order({"order_id": "order_1"})

        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "authentication Failed"

    @pytest.mark.asyncio
    async def test_create_order_never_uses_fallback(self) -> None:
        hosts: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            return httpx.Response(500, json={"message": "boom"})

        client = make_client(handler, fallback=(GatewayEnvironment.SANDBOX,))

        with pytest.raises(GatewayError):
            await client.create_order({"order_id": "order_1"})

        assert hosts == ["api.cashfree.com"]

    @pytest.mark.asyncio
    async def test_reads_fall_back_to_second_environment(self) -> None:
        hosts: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            if request.url.host == "api.cashfree.com":
                return httpx.Response(404, json={"message": "order not found"})
            return httpx.Response(200, json=[{"payment_status": "SUCCESS"}])

        client = make_client(handler, fallback=(GatewayEnvironment.SANDBOX,))
        payments = await client.fetch_payments("order_1")

        assert payments == [{"payment_status": "SUCCESS"}]
        assert hosts == ["api.cashfree.com", "sandbox.cashfree.com"]

    @pytest.mark.asyncio
    async def test_reads_raise_last_error_when_all_fail(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": f"not found in {request.url.host}"})

        client = make_client(handler, fallback=(GatewayEnvironment.SANDBOX,))

        with pytest.raises(GatewayError) as exc_info:
            await client.fetch_order("order_1")

        assert exc_info.value.message == "not found in sandbox.cashfree.com"

    @pytest.mark.asyncio
    async def test_reads_without_environments_raise_gateway_error(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json={}))

        with patch.object(GatewayConfig, "read_environments", new_callable=PropertyMock, return_value=()):
            with pytest.raises(GatewayError) as exc_info:
                await client.fetch_order("order_1")

        assert exc_info.value.message == "No gateway environment configured"

    @pytest.mark.asyncio
    async def test_reads_retry_transport_errors(self) -> None:
        attempts: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, json={"order_id": "order_1", "order_status": "PAID"})

        order = await make_client(handler).fetch_order("order_1")

        assert order["order_status"] == "PAID"
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_non_list_payments_is_empty(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        assert await make_client(handler).fetch_payments("order_1") == []

    @pytest.mark.asyncio
    async def test_timeout_is_bounded(self, fake_cashfree) -> None:
        fake_cashfree.delay_seconds = 0.5
        client = make_client(fake_cashfree.handler, timeout=0.05)

        with pytest.raises(GatewayTimeoutError) as exc_info:
            await client.create_order({"order_id": "order_1", "order_amount": 1})

        assert exc_info.value.message == "Payment gateway timeout"
