"""Identity model type definitions for database operations."""

from datetime import datetime
from typing import TypedDict


class TeamRegistration(TypedDict):
    """Leader-side reference to a team composition."""

    event_name: str
    team_name: str
    is_team_leader: bool
    team_composition_id: str


class Identity(TypedDict):
    """Identities table row representation.

    One row per email address, shared by every order that references it.
    """

    id: str
    email: str
    name: str | None
    phone: str | None
    gender: str | None
    age: int | None
    institution: str | None
    address: str | None
    id_card: str | None
    entitlements: list[str]
    credential_image: str | None
    credential_order_id: str | None
    validated: bool
    notification_sent: bool
    notification_sent_at: datetime | None
    team_registrations: list[TeamRegistration]
    created_at: datetime


# Profile fields an order may fill in on an identity
PROFILE_FIELDS: tuple[str, ...] = (
    "name",
    "phone",
    "gender",
    "age",
    "institution",
    "address",
    "id_card",
)
