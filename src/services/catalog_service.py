"""Event catalog pricing service."""

import logging
from decimal import Decimal
from typing import Any, Iterable

from src.core.supabase import first_row, get_supabase_client
from src.models.catalog import PricedItem
from src.services.errors import ItemNotFoundError

logger = logging.getLogger(__name__)

# Categories that mean "no specific variant"
GENERIC_CATEGORIES = frozenset({"open"})


def variant_name(name: str, category: str | None) -> str | None:
    """Build the catalog name for a categorised variant, e.g. "Chess (Boys)".

    Returns None when the category is absent or generic.
    """
    if not category or category.strip().lower() in GENERIC_CATEGORIES:
        return None
    return f"{name} ({category.strip().capitalize()})"


def resolve_team_event_name(key: str, line_items: Iterable[dict[str, Any]]) -> str | None:
    """Map a roster key to the event name of the matching line item.

    The checkout form keys rosters by catalog id or by a slugged name
    ("relay-race"). Returns None when no line item matches.
    """
    candidates = {key, key.replace("-", " ")}
    for item in line_items:
        if str(item.get("catalog_id")) in candidates or item.get("name") in candidates:
            return item["name"]
    return None


class CatalogService:
    """Resolves cart lines to authoritative catalog entries."""

    def __init__(self) -> None:
        """Initialize catalog service with the Supabase client."""
        self.client = get_supabase_client()

    async def get_event_by_name(self, name: str) -> dict[str, Any] | None:
        """Get an active catalog event by exact name.

        Args:
            name: Canonical event name.

        Returns:
            dict | None: The event row or None if not found.
        """
        response = (
            self.client.table("events")
            .select("*")
            .eq("name", name)
            .eq("active", True)
            .limit(1)
            .execute()
        )
        return first_row(response)

    async def list_events(self) -> list[dict[str, Any]]:
        """List all active catalog events ordered by name."""
        response = (
            self.client.table("events")
            .select("*")
            .eq("active", True)
            .order("name")
            .execute()
        )
        return response.data or []

    async def resolve(self, name: str, category: str | None = None) -> dict[str, Any] | None:
        """Resolve a cart line name to a catalog event.

        Tries the categorised variant first ("Football (Boys)"), then the
        plain name. First match wins.

        Args:
            name: Name submitted by the client.
            category: Optional category submitted by the client.

        Returns:
            dict | None: The matching event row, or None.
        """
        specific = variant_name(name, category)
        if specific:
            event = await self.get_event_by_name(specific)
            if event:
                return event

        return await self.get_event_by_name(name)

    async def price_cart(self, items: Iterable[Any]) -> tuple[list[PricedItem], Decimal]:
        """Price a cart using catalog prices only.

        Every line is resolved before anything is returned so the caller
        gets the complete list of unresolved names.

        Args:
            items: Cart lines exposing name, category and quantity.

        Returns:
            Tuple of (priced line items, total).

        Raises:
            ItemNotFoundError: If any line does not resolve.
        """
        priced: list[PricedItem] = []
        missing: list[str] = []
        total = Decimal("0")

        for item in items:
            event = await self.resolve(item.name, item.category)
            if not event:
                logger.warning(
                    "Event not found in catalog: %r (category %r)",
                    item.name,
                    item.category,
                )
                missing.append(item.name)
                continue

            unit_price = Decimal(str(event.get("price") or 0))
            quantity = int(item.quantity)
            total += unit_price * quantity
            priced.append(
                PricedItem(
                    catalog_id=str(event["id"]),
                    name=event["name"],
                    unit_price=unit_price,
                    quantity=quantity,
                )
            )
            logger.info("Verified %r @ %s x %d", event["name"], unit_price, quantity)

        if missing:
            raise ItemNotFoundError(missing)

        return priced, total
