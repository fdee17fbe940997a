"""Ticket credential API routes."""

import base64
import binascii
import logging
from typing import Any

from fastapi import APIRouter, Query, Response

from src.api.deps import GeneralRateLimit
from src.api.middleware.error_handler import AuthorizationError, NotFoundError
from src.schemas.common import ApiResponse
from src.schemas.credential import CredentialFormat, CredentialResponse
from src.services.credential_service import CredentialService
from src.services.identity_service import IdentityService
from src.services.order_service import OrderLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/credentials", tags=["credentials"])


def _render(
    image_b64: str,
    output: CredentialFormat,
    payload: CredentialResponse,
) -> Response | ApiResponse:
    if output == "image":
        try:
            png = base64.b64decode(image_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.error("Stored credential is not valid base64: %s", str(e))
            raise NotFoundError("Credential not found") from e
        return Response(content=png, media_type="image/png")
    return ApiResponse(data=payload.model_dump())


@router.get(
    "/by-order/{order_id}",
    response_model=None,
    responses={
        200: {"content": {"image/png": {}}, "description": "Credential as JSON or PNG"},
        403: {"description": "Payment not completed"},
        404: {"description": "Order or credential not found"},
    },
    summary="Get ticket credential by order",
)
async def get_credential_by_order(
    order_id: str,
    _: GeneralRateLimit,
    output: CredentialFormat = Query(default="json", alias="format"),
) -> Response | ApiResponse:
    """Return the ticket credential for a completed order.

    Raises:
        NotFoundError: 404 if the order or its credential does not exist.
        AuthorizationError: 403 if the order is not completed.
    """
    order: dict[str, Any] | None = await OrderLedger().find_by_order_id(order_id)
    if not order:
        raise NotFoundError("Order not found")

    if order.get("status") != "completed":
        logger.warning("Credential requested for %s order %s", order.get("status"), order_id)
        raise AuthorizationError("Access denied: Payment not completed")

    image = order.get("credential_image")
    if not image:
        raise NotFoundError("Credential not found for this order")

    buyer = order.get("buyer_profile") or {}
    payload = CredentialResponse(
        identity_id=order.get("identity_id"),
        order_id=order_id,
        name=buyer.get("name"),
        email=buyer.get("email"),
        credential_image=image,
        verification_url=CredentialService().build_verification_url(order_id),
        payment_status=order.get("status"),
    )
    return _render(image, output, payload)


@router.get(
    "/{identity_id}",
    response_model=None,
    responses={
        200: {"content": {"image/png": {}}, "description": "Credential as JSON or PNG"},
        404: {"description": "Identity or credential not found"},
    },
    summary="Get ticket credential by identity",
)
async def get_credential_by_identity(
    identity_id: str,
    _: GeneralRateLimit,
    output: CredentialFormat = Query(default="json", alias="format"),
) -> Response | ApiResponse:
    """Return an identity's ticket credential.

    Raises:
        NotFoundError: 404 if the identity or its credential does not exist.
    """
    identity = await IdentityService().get_by_id(identity_id)
    if not identity or not identity.get("credential_image"):
        raise NotFoundError("Credential not found")

    order_id = identity.get("credential_order_id")
    payload = CredentialResponse(
        identity_id=identity["id"],
        order_id=order_id,
        name=identity.get("name"),
        email=identity.get("email"),
        credential_image=identity["credential_image"],
        verification_url=CredentialService().build_verification_url(order_id),
    )
    return _render(identity["credential_image"], output, payload)
