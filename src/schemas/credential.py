"""Ticket credential response schemas."""

from typing import Literal

from pydantic import BaseModel, Field

CredentialFormat = Literal["json", "image"]


class CredentialResponse(BaseModel):
    """JSON form of a ticket credential."""

    identity_id: str | None = Field(default=None, description="Identity holding the credential")
    order_id: str | None = Field(default=None, description="Order the credential points at")
    name: str | None = None
    email: str | None = None
    credential_image: str = Field(description="Base64-encoded PNG")
    verification_url: str = Field(description="URL encoded in the QR code")
    payment_status: str | None = None
