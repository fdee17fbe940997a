"""Database model type definitions."""

from src.models.catalog import CatalogEvent, PricedItem
from src.models.identity import Identity, TeamRegistration
from src.models.order import BuyerProfile, Order, OrderLineItem, OrderStatus
from src.models.team import TeamComposition

__all__ = [
    "BuyerProfile",
    "CatalogEvent",
    "Identity",
    "Order",
    "OrderLineItem",
    "OrderStatus",
    "PricedItem",
    "TeamComposition",
    "TeamRegistration",
]
