"""Webhook API routes for the payment gateway."""

import json
import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.core.config import get_settings
from src.core.gateway import verify_webhook_signature
from src.schemas.webhook import WebhookAck, WebhookPayload
from src.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


def _invalid(reason: str) -> JSONResponse:
    logger.warning("Rejected webhook: %s", reason)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=WebhookAck(status="Invalid Payload").model_dump(),
    )


@router.post(
    "/webhook",
    status_code=status.HTTP_200_OK,
    response_model=WebhookAck,
    responses={400: {"description": "Invalid payload or signature"}},
    summary="Handle payment gateway webhooks",
    description="Receives payment success/failure notifications. Always acknowledges a valid payload.",
)
async def payment_webhook(request: Request) -> WebhookAck | JSONResponse:
    """Handle gateway webhook events.

    Handles:
    - PAYMENT_SUCCESS_WEBHOOK: records the transaction and completes the order
    - PAYMENT_FAILED_WEBHOOK: marks a pending order failed
    Any other type is acknowledged and ignored.

    Args:
        request: FastAPI request object for reading raw body and headers.

    Returns:
        WebhookAck: {"status": "OK"} for every structurally valid payload.
    """
    raw_body = await request.body()
    settings = get_settings()

    if settings.cashfree_verify_webhooks:
        valid = verify_webhook_signature(
            raw_body,
            request.headers.get("x-webhook-timestamp", ""),
            request.headers.get("x-webhook-signature", ""),
            settings.cashfree_secret_key,
        )
        if not valid:
            return _invalid("bad or missing signature")

    try:
        payload = WebhookPayload.model_validate(json.loads(raw_body or b"null"))
    except ValueError as e:
        return _invalid(str(e).splitlines()[0])

    logger.info("Webhook received: %s for %s", payload.type, payload.order_id)

    outcome = await ReconciliationService().handle_webhook(payload)
    logger.info("Webhook %s for %s: %s", payload.type, payload.order_id, outcome)

    return WebhookAck(status="OK")
