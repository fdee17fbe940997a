"""Order ledger service.

The ledger is the only writer of the orders table. Status transitions are
conditional updates keyed on the current status, so two completion signals
racing for the same order cannot both win.
"""

import hashlib
import logging
import secrets
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from postgrest.exceptions import APIError

from src.core.supabase import first_row, get_supabase_client
from src.models.catalog import PricedItem
from src.models.order import BuyerProfile, OrderCreate, OrderLineItem
from src.services.errors import OrderNotFoundError, PersistenceError

logger = logging.getLogger(__name__)


def generate_order_id() -> str:
    """Generate an opaque order id such as "order_87dc80135ffa"."""
    digest = hashlib.sha256(secrets.token_bytes(16)).hexdigest()
    return f"order_{digest[:12]}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def payment_method_name(payment_method: Any) -> str:
    """Flatten a gateway payment method to a name.

    Webhooks send an object keyed by method ({"upi": {...}}); the payments
    API sends a plain string.
    """
    if isinstance(payment_method, dict):
        return next(iter(payment_method), "unknown")
    return str(payment_method)


class OrderLedger:
    """Service for order persistence and status transitions."""

    def __init__(self) -> None:
        """Initialize order ledger with the Supabase client."""
        self.client = get_supabase_client()

    async def create(
        self,
        buyer_profile: BuyerProfile,
        line_items: list[PricedItem],
        total: Decimal,
        environment: str,
        metadata: dict[str, Any] | None = None,
        currency: str = "INR",
    ) -> dict[str, Any]:
        """Persist a new pending order.

        Args:
            buyer_profile: Buyer-supplied profile data.
            line_items: Catalog-priced line items.
            total: Sum of the line item subtotals.
            environment: Gateway environment the order is created against.
            metadata: Request metadata (user agent, client IP).
            currency: ISO currency code.

        Returns:
            dict: The inserted order row.

        Raises:
            PersistenceError: If the insert fails.
        """
        items: list[OrderLineItem] = [
            OrderLineItem(
                catalog_id=item["catalog_id"],
                name=item["name"],
                unit_price=float(item["unit_price"]),
                quantity=item["quantity"],
            )
            for item in line_items
        ]

        order_data = OrderCreate(
            order_id=generate_order_id(),
            status="pending",
            line_items=items,
            total_amount=float(total),
            currency=currency,
            buyer_profile=buyer_profile,
            environment=environment,
            credential_issued=False,
            notification_sent=False,
            metadata=metadata or {},
        )

        try:
            response = self.client.table("orders").insert(dict(order_data)).execute()
        except APIError as e:
            logger.error("Failed to save order %s: %s", order_data["order_id"], e.message)
            raise PersistenceError(f"Could not save order: {e.message}") from e

        order = first_row(response)
        if not order:
            raise PersistenceError("Could not save order: empty insert response")

        logger.info("Order %s saved (pending), total %s %s", order["order_id"], total, currency)
        return order

    async def find_by_order_id(self, order_id: str) -> dict[str, Any] | None:
        """Get an order by its order id.

        Args:
            order_id: The ledger order id.

        Returns:
            dict | None: The order row or None if not found.
        """
        response = (
            self.client.table("orders")
            .select("*")
            .eq("order_id", order_id)
            .maybe_single()
            .execute()
        )
        return first_row(response)

    async def get(self, order_id: str) -> dict[str, Any]:
        """Get an order or raise OrderNotFoundError."""
        order = await self.find_by_order_id(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    async def find_recent(self, limit: int = 10) -> list[dict[str, Any]]:
        """Get the most recently created orders."""
        response = (
            self.client.table("orders")
            .select("*")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return response.data or []

    async def find_completed_unnotified(self, limit: int = 10) -> list[dict[str, Any]]:
        """Get completed orders whose confirmation was never delivered."""
        response = (
            self.client.table("orders")
            .select("*")
            .eq("status", "completed")
            .eq("notification_sent", False)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return response.data or []

    async def _update(self, order_id: str, update_data: dict[str, Any], status: str | None = None) -> dict[str, Any] | None:
        query = self.client.table("orders").update(update_data).eq("order_id", order_id)
        if status is not None:
            query = query.eq("status", status)
        return first_row(query.execute())

    async def attach_gateway_session(self, order_id: str, session_id: str) -> dict[str, Any] | None:
        """Record the gateway payment session id on an order."""
        return await self._update(order_id, {"gateway_session_id": session_id})

    async def stamp_gateway_metadata(
        self,
        order_id: str,
        transaction_id: str | None,
        payment_method: Any,
    ) -> dict[str, Any] | None:
        """Record gateway transaction details while the order is still pending.

        Returns:
            dict | None: The updated order, or None if it was no longer pending.
        """
        update_data: dict[str, Any] = {}
        if transaction_id is not None:
            update_data["transaction_id"] = str(transaction_id)
        if payment_method is not None:
            update_data["payment_method"] = payment_method_name(payment_method)
        if not update_data:
            return None
        return await self._update(order_id, update_data, status="pending")

    async def mark_completed(self, order_id: str) -> tuple[dict[str, Any], bool]:
        """Transition an order from pending to completed.

        The update only matches a pending row, so exactly one caller wins.
        Losers get the current row back.

        Args:
            order_id: The ledger order id.

        Returns:
            Tuple of (order row, transitioned). transitioned is False when the
            order was already completed (or otherwise not pending).

        Raises:
            OrderNotFoundError: If the order does not exist.
        """
        updated = await self._update(
            order_id,
            {"status": "completed", "completed_at": _now()},
            status="pending",
        )
        if updated:
            logger.info("Order %s marked as completed", order_id)
            return updated, True

        current = await self.get(order_id)
        logger.info("Order %s not pending (status=%s), completion skipped", order_id, current.get("status"))
        return current, False

    async def mark_failed(self, order_id: str, reason: str) -> tuple[dict[str, Any] | None, bool]:
        """Transition an order from pending to failed.

        Never overwrites a completed order.

        Returns:
            Tuple of (order row or None if missing, transitioned).
        """
        updated = await self._update(
            order_id,
            {"status": "failed", "failure_reason": reason},
            status="pending",
        )
        if updated:
            logger.info("Order %s marked as failed: %s", order_id, reason)
            return updated, True

        current = await self.find_by_order_id(order_id)
        if current:
            logger.info("Order %s not pending (status=%s), failure ignored", order_id, current.get("status"))
        else:
            logger.warning("Order not found for failure: %s", order_id)
        return current, False

    async def link_identity(
        self,
        order_id: str,
        identity_id: str,
        credential_image: str | None,
    ) -> dict[str, Any] | None:
        """Point an order at its buyer identity and copy the credential onto it."""
        return await self._update(
            order_id,
            {
                "identity_id": identity_id,
                "credential_issued": bool(credential_image),
                "credential_image": credential_image,
            },
        )

    async def mark_notified(self, order_id: str) -> dict[str, Any] | None:
        """Stamp the confirmation email as delivered."""
        return await self._update(
            order_id,
            {"notification_sent": True, "notification_sent_at": _now()},
        )
