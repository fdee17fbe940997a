"""Registration materializer.

Turns a paid order into its side effects: completed ledger entry, buyer
identity, team compositions, ticket credential and confirmation email.
Every completion signal (redirect poll, webhook, operator) goes through
materialize(), which is safe to call any number of times for the same order.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from postgrest.exceptions import APIError

from src.core.qr import EncodingError
from src.core.supabase import first_row, get_supabase_client, is_unique_violation
from src.models.team import TeamComposition, TeamMember
from src.services.catalog_service import resolve_team_event_name
from src.services.credential_service import CredentialService
from src.services.email_service import DEFAULT_ENTITLEMENT, EmailService, filter_entitlements
from src.services.identity_service import IdentityService
from src.services.order_service import OrderLedger

logger = logging.getLogger(__name__)


@dataclass
class MaterializationResult:
    """Outcome of a materialize() call."""

    success: bool
    already_processed: bool = False
    order: dict[str, Any] | None = None
    identity: dict[str, Any] | None = None
    message: str = ""
    notification_sent: bool = False
    warnings: list[str] = field(default_factory=list)


def order_entitlements(order: dict[str, Any]) -> list[str]:
    """Entitlements granted by an order's line items."""
    names = filter_entitlements(item.get("name") for item in order.get("line_items") or [])
    return names or [DEFAULT_ENTITLEMENT]


def buyer_profile_fields(buyer_profile: dict[str, Any]) -> dict[str, Any]:
    profile = dict(buyer_profile)
    form_data = buyer_profile.get("form_data") or {}
    if not profile.get("id_card") and form_data.get("id_card"):
        profile["id_card"] = form_data["id_card"]
    return profile


class RegistrationService:
    """Drives order -> identity -> team -> credential -> email for paid orders."""

    def __init__(
        self,
        ledger: OrderLedger | None = None,
        identities: IdentityService | None = None,
        credentials: CredentialService | None = None,
        email: EmailService | None = None,
    ) -> None:
        self.client = get_supabase_client()
        self.ledger = ledger or OrderLedger()
        self.identities = identities or IdentityService()
        self.credentials = credentials or CredentialService()
        self.email = email or EmailService()

    async def materialize(self, order_id: str) -> MaterializationResult:
        """Complete an order and produce its registration side effects.

        Only the caller that wins the pending -> completed transition runs
        the side effects; every other caller gets already_processed=True.
        Failures after the transition are logged and reported in the result
        message but never undo the completion.

        Args:
            order_id: Ledger order id.

        Returns:
            MaterializationResult: Outcome of the call.

        Raises:
            OrderNotFoundError: If no order exists for the id.
        """
        order = await self.ledger.get(order_id)

        if order["status"] == "completed":
            logger.info("Order %s already processed", order_id)
            return MaterializationResult(
                success=True, already_processed=True, order=order, message="Order already processed"
            )
        if order["status"] == "failed":
            logger.warning("Order %s is failed, not materializing", order_id)
            return MaterializationResult(success=False, order=order, message="Order has failed")

        order, transitioned = await self.ledger.mark_completed(order_id)
        if not transitioned:
            already = order.get("status") == "completed"
            return MaterializationResult(
                success=already,
                already_processed=already,
                order=order,
                message="Order already processed" if already else f"Order is {order.get('status')}",
            )

        result = MaterializationResult(success=True, order=order, message="Payment processed")
        entitlements = order_entitlements(order)
        buyer = buyer_profile_fields(order.get("buyer_profile") or {})

        identity = await self._guarded(
            result, "identity", self._materialize_buyer(order, buyer, entitlements)
        )
        result.identity = identity
        if identity is None:
            return result

        identity = await self._guarded(result, "credential", self._issue_credential(identity, order)) or identity
        result.identity = identity

        linked = await self._guarded(
            result,
            "order link",
            self.ledger.link_identity(order_id, identity["id"], identity.get("credential_image")),
        )
        if linked:
            result.order = linked

        team_members = buyer.get("team_members") or {}
        if team_members:
            identity = (
                await self._guarded(result, "teams", self._materialize_teams(order, identity, team_members))
                or identity
            )
            result.identity = identity

        await self._notify(result, identity, order_id)
        return result

    async def _guarded(self, result: MaterializationResult, step: str, awaitable: Any) -> Any:
        try:
            return await awaitable
        except (APIError, EncodingError, RuntimeError) as e:
            order_id = result.order.get("order_id") if result.order else None
            logger.error("Materialization step %r failed for order %s: %s", step, order_id, str(e))
            result.warnings.append(f"{step}: {e}")
            result.message = f"Payment processed with errors ({'; '.join(result.warnings)})"
            return None

    async def _materialize_buyer(
        self,
        order: dict[str, Any],
        buyer: dict[str, Any],
        entitlements: list[str],
    ) -> dict[str, Any]:
        email = buyer.get("email")
        existing = await self.identities.resolve(order.get("identity_id"), email)
        if existing is None and not email:
            raise RuntimeError("Order has no buyer email")
        return await self.identities.upsert(
            email=existing["email"] if existing else email,
            profile=buyer,
            entitlements=entitlements,
            validated=True,
            existing=existing,
        )

    async def _issue_credential(self, identity: dict[str, Any], order: dict[str, Any]) -> dict[str, Any]:
        image, newly_issued = self.credentials.issue(identity, order)
        if not newly_issued:
            return identity
        return await self.identities.attach_credential(identity, image, order.get("order_id"))

    async def _materialize_teams(
        self,
        order: dict[str, Any],
        leader: dict[str, Any],
        team_members: dict[str, list[dict[str, Any]]],
    ) -> dict[str, Any]:
        line_items = order.get("line_items") or []

        for key, roster in team_members.items():
            event_name = resolve_team_event_name(key, line_items)
            if event_name is None:
                logger.warning("Roster %r on order %s matches no line item, skipping", key, order["order_id"])
                continue
            composition = await self._find_composition(order["order_id"], event_name)
            if composition:
                logger.info("Team for %s on order %s already exists", event_name, order["order_id"])
                continue

            members: list[TeamMember] = []
            for entry in roster or []:
                if not entry.get("email"):
                    continue
                member = await self.identities.upsert(
                    email=entry["email"],
                    profile={"name": entry.get("name"), "phone": entry.get("phone")},
                    entitlements=[event_name],
                    validated=False,
                )
                members.append(
                    TeamMember(
                        identity_id=member["id"],
                        name=entry.get("name"),
                        email=member["email"],
                        role="member",
                    )
                )

            composition = await self._create_composition(order["order_id"], event_name, leader, members)
            if composition is None:
                continue

            leader = await self.identities.add_team_registration(
                leader,
                {
                    "event_name": event_name,
                    "team_name": composition["team_name"],
                    "is_team_leader": True,
                    "team_composition_id": str(composition["id"]),
                },
            )
            logger.info("Team %r created for %s (%d members)", composition["team_name"], event_name, len(members))

        return leader

    async def _find_composition(self, order_id: str, event_name: str) -> TeamComposition | None:
        response = (
            self.client.table("team_compositions")
            .select("*")
            .eq("order_id", order_id)
            .eq("event_name", event_name)
            .limit(1)
            .execute()
        )
        return first_row(response)

    async def _create_composition(
        self,
        order_id: str,
        event_name: str,
        leader: dict[str, Any],
        members: list[TeamMember],
    ) -> TeamComposition | None:
        row = {
            "order_id": order_id,
            "event_name": event_name,
            "team_name": f"{leader.get('name') or leader['email']}'s Team",
            "leader": {
                "identity_id": leader["id"],
                "name": leader.get("name"),
                "email": leader["email"],
                "has_entered": False,
            },
            "members": members,
            "total_members": len(members) + 1,
        }
        try:
            response = self.client.table("team_compositions").insert(row).execute()
        except APIError as e:
            if is_unique_violation(e):
                logger.info("Team for %s on order %s created concurrently", event_name, order_id)
                return None
            raise
        return first_row(response)

    async def _notify(self, result: MaterializationResult, identity: dict[str, Any], order_id: str) -> None:
        email_result = await self.email.send_registration_confirmation(
            to_email=identity["email"],
            name=identity.get("name"),
            events=identity.get("entitlements"),
            order_id=order_id,
            credential_image=identity.get("credential_image"),
        )
        if not email_result.get("success"):
            logger.error("Confirmation email failed for %s: %s", identity["email"], email_result.get("error"))
            result.warnings.append(f"notification: {email_result.get('error')}")
            return

        result.notification_sent = True
        order = await self._guarded(result, "notification stamp", self.ledger.mark_notified(order_id))
        if order:
            result.order = order
        await self._guarded(result, "notification stamp", self.identities.mark_notified(identity["id"]))
