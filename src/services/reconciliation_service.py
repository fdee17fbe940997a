"""Reconciliation triggers.

Three independent signals can report that an order was paid: the buyer's
redirect back from the gateway, the gateway webhook, and an operator
backfill. None of them trusts the others to have run.
"""

import logging
from typing import Any, Literal, TypedDict

from postgrest.exceptions import APIError

from src.core.gateway import CashfreeClient, GatewayError, get_gateway_client
from src.core.qr import EncodingError
from src.schemas.webhook import PAYMENT_FAILED_WEBHOOK, PAYMENT_SUCCESS_WEBHOOK, WebhookPayload
from src.services.credential_service import CredentialService
from src.services.email_service import EmailService
from src.services.errors import OrderNotFoundError
from src.services.identity_service import IdentityService
from src.services.order_service import OrderLedger
from src.services.registration_service import MaterializationResult, RegistrationService

logger = logging.getLogger(__name__)

PAYMENT_SUCCESS = "SUCCESS"

WebhookOutcome = Literal["processed", "already_processed", "failed", "ignored", "error"]


class BackfillOutcome(TypedDict, total=False):
    order_id: str
    status: Literal["sent", "skipped", "failed"]
    reason: str


def latest_payment_status(payments: list[dict[str, Any]]) -> str | None:
    """Status of the most recent payment attempt (the gateway lists oldest first)."""
    if not payments:
        return None
    return payments[-1].get("payment_status")


class ReconciliationService:
    """Entry points that feed completion signals into the materializer."""

    def __init__(
        self,
        gateway: CashfreeClient | None = None,
        registration: RegistrationService | None = None,
        ledger: OrderLedger | None = None,
        identities: IdentityService | None = None,
        credentials: CredentialService | None = None,
        email: EmailService | None = None,
    ) -> None:
        self.gateway = gateway or get_gateway_client()
        self.ledger = ledger or OrderLedger()
        self.identities = identities or IdentityService()
        self.credentials = credentials or CredentialService()
        self.email = email or EmailService()
        self.registration = registration or RegistrationService(
            ledger=self.ledger,
            identities=self.identities,
            credentials=self.credentials,
            email=self.email,
        )

    async def complete_from_redirect(self, order_id: str) -> MaterializationResult | None:
        """Check the gateway after the buyer's redirect and materialize if paid.

        Returns:
            MaterializationResult if the latest payment succeeded, otherwise
            None (still pending). Gateway errors count as pending and leave
            the order untouched.

        Raises:
            OrderNotFoundError: If the gateway reports success for an unknown order.
        """
        try:
            payments = await self.gateway.fetch_payments(order_id)
        except GatewayError as e:
            logger.warning("Could not verify payment for %s, treating as pending: %s", order_id, e.message)
            return None

        status = latest_payment_status(payments)
        if status != PAYMENT_SUCCESS:
            logger.info("Payment still pending for %s (latest status %s)", order_id, status)
            return None

        logger.info("Payment confirmed by gateway for %s", order_id)
        return await self.registration.materialize(order_id)

    async def handle_webhook(self, payload: WebhookPayload) -> WebhookOutcome:
        """Apply a structurally valid webhook.

        Never raises for processing failures; the caller always acknowledges
        a valid payload so the gateway stops redelivering.
        """
        order_id = payload.order_id

        if payload.type == PAYMENT_SUCCESS_WEBHOOK:
            if payload.data.payment.payment_status != PAYMENT_SUCCESS:
                logger.info(
                    "Success webhook for %s with payment status %s ignored",
                    order_id,
                    payload.data.payment.payment_status,
                )
                return "ignored"
            return await self._apply_success(payload)

        if payload.type == PAYMENT_FAILED_WEBHOOK:
            try:
                order, transitioned = await self.ledger.mark_failed(order_id, payload.failure_reason)
            except APIError as e:
                logger.error("Could not mark %s failed: %s", order_id, e.message)
                return "error"
            if order is None:
                return "ignored"
            return "failed" if transitioned else "already_processed"

        logger.info("Ignoring webhook type %s for %s", payload.type, order_id)
        return "ignored"

    async def _apply_success(self, payload: WebhookPayload) -> WebhookOutcome:
        order_id = payload.order_id
        payment = payload.data.payment
        try:
            await self.ledger.stamp_gateway_metadata(order_id, payment.cf_payment_id, payment.payment_method)
            result = await self.registration.materialize(order_id)
        except OrderNotFoundError:
            logger.warning("Webhook for unknown order %s", order_id)
            return "ignored"
        except Exception:
            logger.exception("Webhook processing failed for %s", order_id)
            return "error"

        if not result.success:
            logger.error("Webhook materialization failed for %s: %s", order_id, result.message)
            return "error"
        return "already_processed" if result.already_processed else "processed"

    async def backfill_notifications(
        self,
        limit: int = 10,
        order_id: str | None = None,
    ) -> list[BackfillOutcome]:
        """Re-send confirmations for completed orders that never got one.

        Does not re-run the materializer: identities are only looked up, and
        a credential is issued only when the identity has none.

        Args:
            limit: Maximum number of unnotified orders to process.
            order_id: Process only this order, even if already notified.

        Returns:
            list[BackfillOutcome]: One entry per order examined.
        """
        if order_id:
            orders = [await self.ledger.get(order_id)]
        else:
            orders = await self.ledger.find_completed_unnotified(limit)

        logger.info("Found %d orders needing email", len(orders))
        outcomes: list[BackfillOutcome] = []
        for order in orders:
            try:
                outcome = await self._backfill_one(order)
            except (APIError, EncodingError) as e:
                logger.error("Backfill failed for %s: %s", order["order_id"], e)
                outcome = {"order_id": order["order_id"], "status": "failed", "reason": str(e)}
            logger.info("Backfill %s: %s %s", order["order_id"], outcome["status"], outcome.get("reason", ""))
            outcomes.append(outcome)
        return outcomes

    async def _backfill_one(self, order: dict[str, Any]) -> BackfillOutcome:
        order_id = order["order_id"]
        if order.get("status") != "completed":
            return {"order_id": order_id, "status": "skipped", "reason": f"order is {order.get('status')}"}

        buyer_email = (order.get("buyer_profile") or {}).get("email")
        identity = await self.identities.resolve(order.get("identity_id"), buyer_email)
        if identity is None:
            return {"order_id": order_id, "status": "skipped", "reason": "identity not found"}

        try:
            image, newly_issued = self.credentials.issue(identity, order)
        except EncodingError as e:
            return {"order_id": order_id, "status": "failed", "reason": str(e)}
        if newly_issued:
            identity = await self.identities.attach_credential(identity, image, order_id)

        if order.get("identity_id") != identity["id"] or not order.get("credential_image"):
            await self.ledger.link_identity(order_id, identity["id"], identity.get("credential_image"))

        result = await self.email.send_registration_confirmation(
            to_email=identity["email"],
            name=identity.get("name"),
            events=identity.get("entitlements"),
            order_id=order_id,
            credential_image=identity.get("credential_image"),
        )
        if not result.get("success"):
            return {"order_id": order_id, "status": "failed", "reason": str(result.get("error"))}

        await self.ledger.mark_notified(order_id)
        await self.identities.mark_notified(identity["id"])
        return {"order_id": order_id, "status": "sent"}
