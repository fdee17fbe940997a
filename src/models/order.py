"""Order model type definitions for database operations."""

from datetime import datetime
from typing import Any, Literal, TypedDict


# Order status values matching the orders.status check constraint
OrderStatus = Literal["pending", "completed", "failed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


class OrderLineItem(TypedDict):
    """Structure for a single priced line item.

    Stored as part of the line_items JSONB array. Name and price always come
    from the event catalog.
    """

    catalog_id: str
    name: str
    unit_price: float
    quantity: int


class TeamMemberEntry(TypedDict, total=False):
    """A roster entry submitted for a team event."""

    name: str
    email: str
    phone: str


class BuyerProfile(TypedDict, total=False):
    """Buyer-supplied profile data, stored as the buyer_profile JSONB column."""

    name: str
    email: str
    phone: str | None
    gender: str | None
    age: int | None
    institution: str | None
    address: str | None
    id_card: str | None
    referral_code: str | None
    team_members: dict[str, list[TeamMemberEntry]]
    form_data: dict[str, Any]


class Order(TypedDict):
    """Order table row representation."""

    id: str
    order_id: str
    status: OrderStatus
    line_items: list[OrderLineItem]
    total_amount: float
    currency: str
    buyer_profile: BuyerProfile
    environment: str
    gateway_session_id: str | None
    transaction_id: str | None
    payment_method: str | None
    identity_id: str | None
    credential_issued: bool
    credential_image: str | None
    notification_sent: bool
    notification_sent_at: datetime | None
    failure_reason: str | None
    metadata: dict
    completed_at: datetime | None
    created_at: datetime


class OrderCreate(TypedDict, total=False):
    """Data required to insert a new pending order."""

    order_id: str
    status: OrderStatus
    line_items: list[OrderLineItem]
    total_amount: float
    currency: str
    buyer_profile: BuyerProfile
    environment: str
    credential_issued: bool
    notification_sent: bool
    metadata: dict
