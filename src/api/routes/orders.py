"""Order API routes: checkout, verification and redirect completion."""

import logging
from typing import Any

from fastapi import APIRouter, status

from src.api.deps import CheckoutRateLimit, GeneralRateLimit, RequestMetadata
from src.api.middleware.error_handler import NotFoundError, StoreError, UpstreamError, ValidationError
from src.core.gateway import GatewayError, GatewayTimeoutError
from src.schemas.checkout import (
    CompletionResponse,
    OrderCreate,
    OrderCreateResponse,
    OrderStatusResponse,
    OrderVerifyRequest,
)
from src.schemas.common import ApiResponse
from src.services.checkout_service import CheckoutService
from src.services.errors import ItemNotFoundError, OrderNotFoundError, PersistenceError, UnknownTeamEventError
from src.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create order",
    description="Prices the cart from the catalog, saves a pending order and opens a gateway payment session.",
)
async def create_order(
    data: OrderCreate,
    metadata: RequestMetadata,
    _: CheckoutRateLimit,
) -> ApiResponse:
    """Create a pending order and a gateway payment session.

    Raises:
        ValidationError: 400 if any cart item is not in the catalog or a
            team roster names an event not in the cart.
        StoreError: 500 if the order cannot be saved.
        UpstreamError: 502 if the gateway fails or times out.
    """
    service = CheckoutService()

    try:
        result = await service.create_order(
            buyer_profile=data.to_buyer_profile(),
            items=data.items,
            metadata=metadata,
        )
    except ItemNotFoundError as e:
        raise ValidationError(
            message=f"Following events not found in catalog: {', '.join(e.names)}. Cannot verify price.",
            details=[{"loc": ["body", "items"], "msg": f"Event not found: {name}", "type": "not_found"} for name in e.names],
        ) from e
    except UnknownTeamEventError as e:
        raise ValidationError(
            message=f"Team rosters reference events not in the cart: {', '.join(e.keys)}",
            details=[
                {"loc": ["body", "teamMembers", key], "msg": f"No cart item for team: {key}", "type": "not_found"}
                for key in e.keys
            ],
        ) from e
    except PersistenceError as e:
        raise StoreError("Could not save order. Please try again.") from e
    except GatewayTimeoutError as e:
        raise UpstreamError("Payment gateway timeout") from e
    except GatewayError as e:
        raise UpstreamError(f"Payment gateway error: {e.message}") from e

    return ApiResponse(message="Order created", data=OrderCreateResponse(**result).model_dump())


async def _verify(order_id: str) -> ApiResponse:
    service = CheckoutService()
    try:
        payments = await service.verify_order(order_id)
    except GatewayError as e:
        raise UpstreamError(e.message or "Order verification failed") from e
    return ApiResponse(
        message="Order verified",
        data={"order_id": order_id, "payments": payments, "environment": service.gateway.environment.value},
    )


@router.get(
    "/{order_id}/verify",
    response_model=ApiResponse,
    summary="Verify order payments",
    description="Returns the gateway's payment attempts for an order.",
)
async def verify_order(order_id: str, _: GeneralRateLimit) -> ApiResponse:
    return await _verify(order_id)


@router.post(
    "/verify",
    response_model=ApiResponse,
    summary="Verify order payments (body)",
)
async def verify_order_body(data: OrderVerifyRequest, _: GeneralRateLimit) -> ApiResponse:
    return await _verify(data.order_id)


@router.post(
    "/{order_id}/verify",
    response_model=ApiResponse,
    summary="Verify order payments",
)
async def verify_order_post(order_id: str, _: GeneralRateLimit) -> ApiResponse:
    return await _verify(order_id)


@router.get(
    "/{order_id}/status",
    response_model=ApiResponse,
    summary="Get order status",
    description="Ledger status of an order, with the gateway status while it is pending.",
)
async def get_order_status(order_id: str, _: GeneralRateLimit) -> ApiResponse:
    service = CheckoutService()
    try:
        result = await service.get_status(order_id)
    except OrderNotFoundError as e:
        raise NotFoundError("Order not found") from e
    return ApiResponse(data=OrderStatusResponse(**result).model_dump())


@router.get(
    "/{order_id}/complete",
    response_model=ApiResponse,
    summary="Complete order after redirect",
    description=(
        "Called by the payment success page. Confirms the payment with the gateway and, "
        "if paid, completes the registration. Safe to call repeatedly."
    ),
)
async def complete_order(order_id: str, _: GeneralRateLimit) -> ApiResponse:
    """Complete an order from the buyer's redirect.

    Raises:
        NotFoundError: 404 if the gateway reports a payment for an unknown order.
    """
    service = ReconciliationService()

    try:
        result = await service.complete_from_redirect(order_id)
    except OrderNotFoundError as e:
        raise NotFoundError("Order not found") from e

    if result is None:
        return ApiResponse(message="Payment is still pending", data={"order_id": order_id, "status": "pending"})

    order: dict[str, Any] = result.order or {}
    identity: dict[str, Any] = result.identity or {}
    completion = CompletionResponse(
        order_id=order_id,
        status=order.get("status", "pending"),
        already_processed=result.already_processed,
        notification_sent=result.notification_sent or bool(order.get("notification_sent")),
        identity_id=identity.get("id") or order.get("identity_id"),
        name=identity.get("name"),
        email=identity.get("email"),
    )

    if not result.success:
        return ApiResponse(success=False, message=result.message, data=completion.model_dump())

    message = "Payment already processed" if result.already_processed else "Payment processed successfully"
    return ApiResponse(message=message, data=completion.model_dump())
