"""Team composition type definitions for database operations."""

from datetime import datetime
from typing import Literal, TypedDict


class TeamLeader(TypedDict):
    identity_id: str
    name: str | None
    email: str
    has_entered: bool


class TeamMember(TypedDict):
    identity_id: str
    name: str | None
    email: str
    role: Literal["member"]


class TeamComposition(TypedDict):
    """team_compositions table row. Unique per (order_id, event_name)."""

    id: str
    order_id: str
    event_name: str
    team_name: str
    leader: TeamLeader
    members: list[TeamMember]
    total_members: int
    created_at: datetime
