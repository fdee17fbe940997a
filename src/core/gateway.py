"""Cashfree payment gateway client.

The client is configured explicitly from a GatewayConfig and owned by the
application lifespan. Read-only calls may fall back to a second environment;
order creation only ever talks to the primary one so a gateway order is
never created twice.
"""

import asyncio
import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Retry configuration for idempotent reads
MAX_READ_ATTEMPTS = 2
MIN_WAIT_SECONDS = 0.5
MAX_WAIT_SECONDS = 2


class GatewayEnvironment(str, Enum):
    """Cashfree PG environments."""

    PRODUCTION = "production"
    SANDBOX = "sandbox"

    @property
    def base_url(self) -> str:
        if self is GatewayEnvironment.PRODUCTION:
            return "https://api.cashfree.com/pg"
        return "https://sandbox.cashfree.com/pg"


class GatewayError(Exception):
    """Gateway call failed or returned an error response."""

    def __init__(self, message: str, status_code: int | None = None, payload: Any = None) -> None:
        self.message = message
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


class GatewayTimeoutError(GatewayError):
    """Gateway call exceeded the configured bound."""


@dataclass(frozen=True)
class GatewayConfig:
    """Explicit gateway configuration."""

    app_id: str
    secret_key: str
    environment: GatewayEnvironment = GatewayEnvironment.PRODUCTION
    fallback_environments: tuple[GatewayEnvironment, ...] = ()
    api_version: str = "2023-08-01"
    timeout_seconds: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "GatewayConfig":
        """Create config from application settings."""
        settings = settings or get_settings()
        fallback: tuple[GatewayEnvironment, ...] = ()
        if settings.cashfree_fallback_environment:
            fallback = (GatewayEnvironment(settings.cashfree_fallback_environment),)
        return cls(
            app_id=settings.cashfree_app_id,
            secret_key=settings.cashfree_secret_key,
            environment=GatewayEnvironment(settings.cashfree_environment),
            fallback_environments=fallback,
            api_version=settings.cashfree_api_version,
            timeout_seconds=settings.gateway_timeout_seconds,
        )

    @property
    def read_environments(self) -> tuple[GatewayEnvironment, ...]:
        """Environments to try, in order, for read-only calls."""
        return (self.environment, *self.fallback_environments)


def verify_webhook_signature(
    raw_body: bytes,
    timestamp: str,
    signature: str,
    secret_key: str,
) -> bool:
    """Verify a Cashfree webhook signature.

    The signature is base64(HMAC-SHA256(timestamp + raw body)) keyed with the
    client secret.
    """
    if not (timestamp and signature and secret_key):
        return False
    message = timestamp.encode("utf-8") + raw_body
    digest = hmac.new(secret_key.encode("utf-8"), message, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("ascii")
    return hmac.compare_digest(expected, signature)


class CashfreeClient:
    """Async Cashfree PG client over httpx."""

    def __init__(
        self,
        config: GatewayConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        # Transport timeout stays above the per-call bound so the bound decides.
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_seconds + 5),
            transport=transport,
        )

    @property
    def environment(self) -> GatewayEnvironment:
        return self.config.environment

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "x-client-id": self.config.app_id,
            "x-client-secret": self.config.secret_key,
            "x-api-version": self.config.api_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self,
        environment: GatewayEnvironment,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> Any:
        url = f"{environment.base_url}{path}"
        try:
            response = await asyncio.wait_for(
                self._client.request(method, url, headers=self._headers(), json=json),
                timeout=self.config.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.error("Cashfree %s %s timed out after %.1fs", method, path, self.config.timeout_seconds)
            raise GatewayTimeoutError("Payment gateway timeout") from e

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {"message": response.text}
            message = payload.get("message") if isinstance(payload, dict) else None
            logger.error(
                "Cashfree %s %s failed (%s): %s",
                method,
                path,
                response.status_code,
                message or response.text,
            )
            raise GatewayError(
                message or f"Gateway returned HTTP {response.status_code}",
                status_code=response.status_code,
                payload=payload,
            )

        return response.json()

    @retry(
        stop=stop_after_attempt(MAX_READ_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _read(self, environment: GatewayEnvironment, path: str) -> Any:
        return await self._request(environment, "GET", path)

    async def _read_with_fallback(self, path: str) -> Any:
        last_error: GatewayError | None = None
        for environment in self.config.read_environments:
            try:
                return await self._read(environment, path)
            except httpx.TransportError as e:
                last_error = GatewayError(f"Gateway connection failed: {e}")
            except GatewayError as e:
                last_error = e
            if environment is not self.config.read_environments[-1]:
                logger.warning(
                    "Cashfree %s failed in %s, falling back: %s",
                    path,
                    environment.value,
                    last_error.message,
                )
        if last_error is None:
            raise GatewayError("No gateway environment configured")
        raise last_error

    async def create_order(self, order_request: dict[str, Any]) -> dict[str, Any]:
        """Create a gateway order and payment session.

        Args:
            order_request: Cashfree create-order body.

        Returns:
            dict: Gateway response containing payment_session_id and order_status.

        Raises:
            GatewayTimeoutError: If the call exceeds the configured bound.
            GatewayError: On any other gateway failure.
        """
        try:
            return await self._request(self.config.environment, "POST", "/orders", json=order_request)
        except httpx.TransportError as e:
            raise GatewayError(f"Gateway connection failed: {e}") from e

    async def fetch_order(self, order_id: str) -> dict[str, Any]:
        """Fetch a gateway order (order_status, order_amount)."""
        return await self._read_with_fallback(f"/orders/{order_id}")

    async def fetch_payments(self, order_id: str) -> list[dict[str, Any]]:
        """Fetch payment attempts for a gateway order, oldest first."""
        payments = await self._read_with_fallback(f"/orders/{order_id}/payments")
        return payments if isinstance(payments, list) else []


# Global client owned by the application lifespan
_gateway_client: CashfreeClient | None = None


def get_gateway_client() -> CashfreeClient:
    """Get or create the global gateway client."""
    global _gateway_client
    if _gateway_client is None:
        _gateway_client = CashfreeClient(GatewayConfig.from_settings())
    return _gateway_client


async def init_gateway_client() -> CashfreeClient:
    """Create the gateway client. Call at app startup."""
    client = get_gateway_client()
    if not client.config.app_id:
        logger.warning("Cashfree credentials not configured. Payment features will not work.")
    return client


async def shutdown_gateway_client() -> None:
    """Close the gateway client. Call at app shutdown."""
    global _gateway_client
    if _gateway_client:
        await _gateway_client.aclose()
        _gateway_client = None
