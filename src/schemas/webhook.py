"""Cashfree webhook payload schemas."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

PAYMENT_SUCCESS_WEBHOOK = "PAYMENT_SUCCESS_WEBHOOK"
PAYMENT_FAILED_WEBHOOK = "PAYMENT_FAILED_WEBHOOK"

DEFAULT_FAILURE_REASON = "Payment Failed"


class WebhookOrder(BaseModel):
    model_config = ConfigDict(extra="allow")

    order_id: str = Field(min_length=1, description="Ledger order id")


class WebhookPayment(BaseModel):
    model_config = ConfigDict(extra="allow")

    payment_status: str | None = Field(default=None, description="SUCCESS, FAILED, USER_DROPPED, ...")
    cf_payment_id: str | int | None = Field(default=None, description="Gateway transaction id")
    payment_method: Any = Field(default=None, description="Method object keyed by method name")


class WebhookErrorDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    error_description: str | None = Field(default=None, description="Human readable failure reason")


class WebhookData(BaseModel):
    model_config = ConfigDict(extra="allow")

    order: WebhookOrder
    payment: WebhookPayment = Field(default_factory=WebhookPayment)
    error_details: WebhookErrorDetails | None = None


class WebhookPayload(BaseModel):
    """Payment webhook body.

    Only the fields the reconciliation needs are typed; the rest are kept.
    """

    model_config = ConfigDict(extra="allow")

    type: str = Field(description="Webhook event type")
    data: WebhookData

    @property
    def order_id(self) -> str:
        return self.data.order.order_id

    @property
    def failure_reason(self) -> str:
        details = self.data.error_details
        if details and details.error_description:
            return details.error_description
        return DEFAULT_FAILURE_REASON


class WebhookAck(BaseModel):
    """Webhook acknowledgement body."""

    status: Literal["OK", "Invalid Payload"] = "OK"
