"""Checkout and order Pydantic schemas for API request/response models."""

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from src.models.order import BuyerProfile, TeamMemberEntry

# Order status literal type for validation
OrderStatus = Literal["pending", "completed", "failed"]


class CartItem(BaseModel):
    """A cart line as submitted by the checkout page.

    Any price the client sends is ignored; pricing comes from the catalog.
    """

    model_config = ConfigDict(extra="ignore")

    name: str = Field(
        min_length=1,
        validation_alias=AliasChoices("name", "title", "itemName"),
        description="Event name",
    )
    category: str | None = Field(default=None, description="Variant category, e.g. Boys, Girls, Open")
    quantity: int = Field(default=1, ge=1, description="Quantity")


class TeamMemberSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    email: EmailStr
    phone: str | None = None


class OrderCreate(BaseModel):
    """Schema for creating an order via POST /orders."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    customer_name: str = Field(min_length=1, description="Buyer name")
    customer_email: EmailStr = Field(description="Buyer email")
    customer_phone: str | None = Field(default=None, description="Buyer phone")
    customer_gender: str | None = None
    customer_age: int | None = Field(default=None, ge=0, le=150)
    university_name: str | None = Field(default=None, description="Institution")
    address: str | None = None
    university_id_card: str | None = Field(default=None, description="ID card reference")
    referral_code: str | None = None
    team_members: dict[str, list[TeamMemberSchema]] = Field(
        default_factory=dict,
        description="Team rosters keyed by event id or slug",
    )
    items: list[CartItem] = Field(min_length=1, description="Cart lines")

    def to_buyer_profile(self) -> BuyerProfile:
        """Map the form to the stored buyer profile."""
        team_members: dict[str, list[TeamMemberEntry]] = {
            key: [member.model_dump(exclude_none=True) for member in roster]
            for key, roster in self.team_members.items()
        }
        return BuyerProfile(
            name=self.customer_name,
            email=str(self.customer_email).lower(),
            phone=self.customer_phone,
            gender=self.customer_gender,
            age=self.customer_age,
            institution=self.university_name,
            address=self.address,
            id_card=self.university_id_card,
            referral_code=self.referral_code,
            team_members=team_members,
            form_data=self.model_dump(mode="json", by_alias=True, exclude={"items", "team_members"}),
        )


class OrderCreateResponse(BaseModel):
    """Schema for order creation response."""

    order_id: str = Field(description="Ledger order id")
    payment_session_id: str | None = Field(default=None, description="Gateway payment session id")
    order_status: str | None = Field(default=None, description="Gateway order status")
    amount: float = Field(description="Server-computed total")
    currency: str = Field(default="INR")
    environment: str = Field(description="Gateway environment")


class OrderStatusResponse(BaseModel):
    """Schema for GET /orders/{order_id}/status."""

    order_id: str
    payment_status: OrderStatus
    gateway_status: str | None = None
    total_amount: float | None = None
    currency: str = "INR"
    line_items: list[dict[str, Any]] = Field(default_factory=list)
    credential_issued: bool = False
    notification_sent: bool = False
    environment: str | None = None


class OrderVerifyRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    order_id: str = Field(min_length=1)


class CompletionResponse(BaseModel):
    """Schema for GET /orders/{order_id}/complete."""

    order_id: str
    status: OrderStatus
    already_processed: bool = False
    notification_sent: bool = False
    identity_id: str | None = None
    name: str | None = None
    email: str | None = None
