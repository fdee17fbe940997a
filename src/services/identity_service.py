"""Identity (attendee) persistence and merge rules."""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Sequence

from postgrest.exceptions import APIError

from src.core.supabase import first_row, get_supabase_client, is_unique_violation
from src.models.identity import PROFILE_FIELDS, TeamRegistration

logger = logging.getLogger(__name__)

IdentityLookup = Callable[[str, str], Awaitable[dict[str, Any] | None]]


async def resolve_identity(
    keys: Sequence[tuple[str, Any]],
    lookup: IdentityLookup,
) -> dict[str, Any] | None:
    """Resolve an identity from an ordered list of lookup keys.

    Keys with empty values are skipped; the first key that finds a row wins.

    Args:
        keys: (field, value) pairs in priority order, e.g.
            [("id", order["identity_id"]), ("email", buyer_email)].
        lookup: Async callable returning the row for (field, value) or None.

    Returns:
        dict | None: The first identity found, or None.
    """
    for field, value in keys:
        if value in (None, ""):
            continue
        identity = await lookup(field, str(value))
        if identity:
            logger.debug("Identity resolved by %s", field)
            return identity
    return None


def union_entitlements(current: Iterable[str] | None, additions: Iterable[str]) -> list[str]:
    """Add entitlements without duplicates, preserving existing order."""
    result = list(dict.fromkeys(current or []))
    for name in additions:
        if name and name not in result:
            result.append(name)
    return result


def merge_profile(identity: dict[str, Any], profile: dict[str, Any]) -> dict[str, Any]:
    """Compute profile updates an order contributes to an identity.

    Present order values replace stored ones; missing or blank order values
    never blank an existing field.

    Returns:
        dict: Only the fields that change.
    """
    changes: dict[str, Any] = {}
    for field in PROFILE_FIELDS:
        value = profile.get(field)
        if value in (None, ""):
            continue
        if identity.get(field) != value:
            changes[field] = value
    return changes


class IdentityService:
    """Service for the identities table."""

    def __init__(self) -> None:
        """Initialize identity service with the Supabase client."""
        self.client = get_supabase_client()

    async def find_by(self, field: str, value: str) -> dict[str, Any] | None:
        """Get an identity by a unique field ("id" or "email")."""
        if field == "email":
            value = value.strip().lower()
        response = (
            self.client.table("identities")
            .select("*")
            .eq(field, value)
            .maybe_single()
            .execute()
        )
        return first_row(response)

    async def get_by_id(self, identity_id: str) -> dict[str, Any] | None:
        return await self.find_by("id", identity_id)

    async def resolve(self, identity_id: str | None, email: str | None) -> dict[str, Any] | None:
        """Resolve by durable reference first, then by email."""
        return await resolve_identity([("id", identity_id), ("email", email)], self.find_by)

    async def update(self, identity_id: str, update_data: dict[str, Any]) -> dict[str, Any] | None:
        if not update_data:
            return await self.get_by_id(identity_id)
        response = (
            self.client.table("identities")
            .update(update_data)
            .eq("id", identity_id)
            .execute()
        )
        return first_row(response)

    async def upsert(
        self,
        email: str,
        profile: dict[str, Any],
        entitlements: Iterable[str],
        validated: bool,
        existing: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create an identity or merge into the existing one.

        A concurrent creator for the same email makes the insert fail with a
        duplicate key; the row is then re-read and merged as an update.

        Args:
            email: Natural key.
            profile: Profile fields from the order or roster entry.
            entitlements: Events to add.
            validated: True for paying buyers. Never downgrades an identity.
            existing: Already-resolved row, if the caller has one.

        Returns:
            dict: The persisted identity.
        """
        entitlements = list(entitlements)
        email = email.strip().lower()

        if existing is None:
            existing = await self.find_by("email", email)

        if existing is None:
            row = {
                "email": email,
                **{field: profile.get(field) for field in PROFILE_FIELDS if profile.get(field) not in (None, "")},
                "entitlements": union_entitlements([], entitlements),
                "validated": validated,
                "notification_sent": False,
                "team_registrations": [],
            }
            try:
                response = self.client.table("identities").insert(row).execute()
                created = first_row(response)
                if created:
                    logger.info("Created identity for %s (validated=%s)", email, validated)
                    return created
            except APIError as e:
                if not is_unique_violation(e):
                    raise
                logger.info("Identity for %s created concurrently, merging instead", email)

            existing = await self.find_by("email", email)
            if existing is None:
                raise RuntimeError(f"Identity for {email} vanished after duplicate-key insert")

        changes = merge_profile(existing, profile)
        merged = union_entitlements(existing.get("entitlements"), entitlements)
        if merged != list(existing.get("entitlements") or []):
            changes["entitlements"] = merged
            logger.info("Added entitlements to %s: %s", email, [e for e in merged if e not in (existing.get("entitlements") or [])])
        if validated and not existing.get("validated"):
            changes["validated"] = True

        if not changes:
            return existing
        return await self.update(existing["id"], changes) or {**existing, **changes}

    async def attach_credential(
        self,
        identity: dict[str, Any],
        credential_image: str,
        order_id: str | None,
    ) -> dict[str, Any]:
        """Store a credential only if the identity has none yet.

        The update is conditional on credential_image being null, so a
        credential that was already issued elsewhere wins and is returned.
        """
        if identity.get("credential_image"):
            return identity

        response = (
            self.client.table("identities")
            .update({"credential_image": credential_image, "credential_order_id": order_id})
            .eq("id", identity["id"])
            .is_("credential_image", "null")
            .execute()
        )
        updated = first_row(response)
        if updated:
            return updated

        current = await self.get_by_id(identity["id"])
        logger.info("Credential for %s was issued concurrently, keeping existing", identity.get("email"))
        return current or identity

    async def add_team_registration(
        self,
        identity: dict[str, Any],
        registration: TeamRegistration,
    ) -> dict[str, Any]:
        """Record a leader-side team reference once per composition."""
        current = list(identity.get("team_registrations") or [])
        if any(r.get("team_composition_id") == registration["team_composition_id"] for r in current):
            return identity
        current.append(registration)
        return await self.update(identity["id"], {"team_registrations": current}) or identity

    async def mark_notified(self, identity_id: str) -> dict[str, Any] | None:
        return await self.update(
            identity_id,
            {"notification_sent": True, "notification_sent_at": datetime.now(timezone.utc).isoformat()},
        )
