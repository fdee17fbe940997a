"""Event catalog type definitions."""

from decimal import Decimal
from typing import TypedDict


class CatalogEvent(TypedDict):
    """events table row."""

    id: str
    name: str
    price: float
    category: str | None
    active: bool


class PricedItem(TypedDict):
    """A cart line resolved against the catalog."""

    catalog_id: str
    name: str
    unit_price: Decimal
    quantity: int
