"""Checkout and order business logic service."""

import logging
import re
import time
from decimal import Decimal
from typing import Any, Iterable

from postgrest.exceptions import APIError

from src.core.config import get_settings
from src.core.gateway import CashfreeClient, GatewayError, get_gateway_client
from src.models.order import BuyerProfile
from src.services.catalog_service import CatalogService, resolve_team_event_name
from src.services.errors import UnknownTeamEventError
from src.services.order_service import OrderLedger

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER_PHONE = "9999999999"
DEFAULT_CUSTOMER_NAME = "Customer"


def sanitize_phone(phone: str | None) -> str:
    """Digits only, trimmed to the last 10 (strips country codes)."""
    digits = re.sub(r"\D", "", str(phone or DEFAULT_CUSTOMER_PHONE))
    return digits[-10:] if len(digits) > 10 else digits or DEFAULT_CUSTOMER_PHONE


def gateway_amount(total: Decimal) -> float:
    return float(total.quantize(Decimal("0.01")))


class CheckoutService:
    """Service for gateway checkout and order management."""

    def __init__(
        self,
        gateway: CashfreeClient | None = None,
        catalog: CatalogService | None = None,
        ledger: OrderLedger | None = None,
    ) -> None:
        """Initialize checkout service with clients."""
        self.settings = get_settings()
        self.gateway = gateway or get_gateway_client()
        self.catalog = catalog or CatalogService()
        self.ledger = ledger or OrderLedger()

    def build_order_request(self, order: dict[str, Any]) -> dict[str, Any]:
        """Build the gateway create-order body for a persisted order."""
        buyer = order.get("buyer_profile") or {}
        return {
            "order_id": order["order_id"],
            "order_amount": gateway_amount(Decimal(str(order["total_amount"]))),
            "order_currency": order.get("currency", "INR"),
            "customer_details": {
                "customer_id": f"cust_{int(time.time() * 1000)}",
                "customer_name": buyer.get("name") or DEFAULT_CUSTOMER_NAME,
                "customer_email": buyer.get("email"),
                "customer_phone": sanitize_phone(buyer.get("phone")),
            },
            "order_meta": {
                "return_url": f"{self.settings.ticket_base_url}/payment/success?order_id={order['order_id']}",
            },
        }

    async def create_order(
        self,
        buyer_profile: BuyerProfile,
        items: Iterable[Any],
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Price a cart, persist a pending order and open a gateway session.

        The order is saved before the gateway is called so every gateway
        order has a ledger entry. If the gateway call fails the order is
        marked failed instead of being left pending.

        Args:
            buyer_profile: Buyer-supplied profile.
            items: Cart lines exposing name, category and quantity. Client
                prices are never read.
            metadata: Request metadata (user agent, client IP).

        Returns:
            dict: order_id, payment_session_id, order_status, amount,
                currency and environment.

        Raises:
            ItemNotFoundError: If any cart line is not in the catalog.
            UnknownTeamEventError: If a team roster names an event not in the cart.
            PersistenceError: If the order cannot be saved.
            GatewayTimeoutError: If the gateway does not answer in time.
            GatewayError: If the gateway rejects the order.
        """
        priced, total = await self.catalog.price_cart(items)
        logger.info("Final verified total: %s", total)

        unmatched = [
            key for key in (buyer_profile.get("team_members") or {}) if resolve_team_event_name(key, priced) is None
        ]
        if unmatched:
            raise UnknownTeamEventError(unmatched)

        order = await self.ledger.create(
            buyer_profile=buyer_profile,
            line_items=priced,
            total=total,
            environment=self.gateway.environment.value,
            metadata=metadata,
        )
        order_id = order["order_id"]

        try:
            response = await self.gateway.create_order(self.build_order_request(order))
        except GatewayError as e:
            logger.error("Gateway order creation failed for %s: %s", order_id, e.message)
            try:
                await self.ledger.mark_failed(order_id, e.message)
            except APIError as store_error:
                logger.error("Could not mark %s failed: %s", order_id, store_error)
            raise

        session_id = response.get("payment_session_id")
        logger.info("Gateway session created for %s: %s", order_id, session_id)
        if session_id:
            await self.ledger.attach_gateway_session(order_id, session_id)

        return {
            "order_id": order_id,
            "payment_session_id": session_id,
            "order_status": response.get("order_status"),
            "amount": gateway_amount(total),
            "currency": order.get("currency", "INR"),
            "environment": self.gateway.environment.value,
        }

    async def verify_order(self, order_id: str) -> list[dict[str, Any]]:
        """Fetch the gateway's payment attempts for an order.

        Raises:
            GatewayError: If the gateway cannot be reached in any environment.
        """
        return await self.gateway.fetch_payments(order_id)

    async def get_status(self, order_id: str) -> dict[str, Any]:
        """Summarize an order's payment state.

        The ledger is authoritative once the order is terminal; while it is
        pending the gateway's order status is consulted.

        Raises:
            OrderNotFoundError: If the order is not in the ledger.
        """
        order = await self.ledger.get(order_id)
        status = order["status"]
        gateway_status = None

        if status == "pending":
            try:
                gateway_order = await self.gateway.fetch_order(order_id)
                gateway_status = gateway_order.get("order_status")
            except GatewayError as e:
                logger.warning("Could not fetch gateway status for %s: %s", order_id, e.message)

        return {
            "order_id": order_id,
            "payment_status": status,
            "gateway_status": gateway_status,
            "total_amount": order.get("total_amount"),
            "currency": order.get("currency", "INR"),
            "line_items": order.get("line_items") or [],
            "credential_issued": bool(order.get("credential_issued")),
            "notification_sent": bool(order.get("notification_sent")),
            "environment": order.get("environment"),
        }
