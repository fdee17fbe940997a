"""Unit tests for CatalogService."""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from src.services.catalog_service import CatalogService, resolve_team_event_name, variant_name
from src.services.errors import ItemNotFoundError


def cart_item(name: str, category: str | None = None, quantity: int = 1) -> SimpleNamespace:
    return SimpleNamespace(name=name, category=category, quantity=quantity)


class TestVariantName:
    """Tests for variant_name helper."""

    def test_capitalizes_category(self) -> None:
        assert variant_name("Chess", "boys") == "Chess (Boys)"
        assert variant_name("Chess", "GIRLS") == "Chess (Girls)"

    def test_generic_category_has_no_variant(self) -> None:
        assert variant_name("Kabaddi", "Open") is None
        assert variant_name("Kabaddi", "open") is None

    def test_missing_category_has_no_variant(self) -> None:
        assert variant_name("Kabaddi", None) is None
        assert variant_name("Kabaddi", "") is None


class TestResolve:
    """Tests for CatalogService.resolve."""

    @pytest.mark.asyncio
    async def test_prefers_category_variant(self, catalog: list) -> None:
        event = await CatalogService().resolve("Chess", "boys")

        assert event is not None
        assert event["name"] == "Chess (Boys)"
        assert event["price"] == 150

    @pytest.mark.asyncio
    async def test_falls_back_to_plain_name(self, catalog: list) -> None:
        event = await CatalogService().resolve("Box Cricket", "Boys")

        assert event is not None
        assert event["name"] == "Box Cricket"

    @pytest.mark.asyncio
    async def test_open_category_uses_plain_name(self, catalog: list) -> None:
        event = await CatalogService().resolve("Kabaddi", "Open")

        assert event is not None
        assert event["name"] == "Kabaddi"

    @pytest.mark.asyncio
    async def test_inactive_event_not_resolved(self, catalog: list) -> None:
        assert await CatalogService().resolve("Retired Event") is None

    @pytest.mark.asyncio
    async def test_unknown_event_returns_none(self, catalog: list) -> None:
        assert await CatalogService().resolve("Quidditch", "Boys") is None


class TestPriceCart:
    """Tests for CatalogService.price_cart."""

    @pytest.mark.asyncio
    async def test_single_item_total(self, catalog: list) -> None:
        priced, total = await CatalogService().price_cart([cart_item("Chess", "Boys")])

        assert total == Decimal("150")
        assert len(priced) == 1
        assert priced[0]["name"] == "Chess (Boys)"
        assert priced[0]["unit_price"] == Decimal("150")
        assert priced[0]["quantity"] == 1

    @pytest.mark.asyncio
    async def test_total_is_sum_of_subtotals(self, catalog: list) -> None:
        items = [
            cart_item("Chess", "Boys", 2),
            cart_item("Basketball", "Boys"),
            cart_item("Kabaddi", "Open"),
        ]

        priced, total = await CatalogService().price_cart(items)

        assert total == sum(p["unit_price"] * p["quantity"] for p in priced)
        assert total == Decimal("1650")

    @pytest.mark.asyncio
    async def test_price_comes_from_catalog_only(self, catalog: list) -> None:
        item = cart_item("Chess", "Boys")
        item.price = 1

        _, total = await CatalogService().price_cart([item])

        assert total == Decimal("150")

    @pytest.mark.asyncio
    async def test_zero_price_event(self, catalog: list) -> None:
        _, total = await CatalogService().price_cart([cart_item("Chess", "Girls")])

        assert total == Decimal("0")

    @pytest.mark.asyncio
    async def test_reports_every_unresolved_name(self, catalog: list) -> None:
        items = [cart_item("Chess", "Boys"), cart_item("Quidditch"), cart_item("Sky Diving", "Girls")]

        with pytest.raises(ItemNotFoundError) as exc_info:
            await CatalogService().price_cart(items)

        assert exc_info.value.names == ["Quidditch", "Sky Diving"]
        assert "Quidditch" in str(exc_info.value)


class TestListEvents:
    """Tests for CatalogService.list_events."""

    @pytest.mark.asyncio
    async def test_lists_active_events_by_name(self, catalog: list) -> None:
        events = await CatalogService().list_events()

        names = [event["name"] for event in events]
        assert names == sorted(names)
        assert "Retired Event" not in names
        assert len(names) == 5


class TestResolveTeamEventName:
    """Tests for matching roster keys to line items."""

    ITEMS = [{"catalog_id": "evt-7", "name": "Box Cricket"}]

    def test_by_catalog_id(self) -> None:
        assert resolve_team_event_name("evt-7", self.ITEMS) == "Box Cricket"

    def test_by_slug(self) -> None:
        assert resolve_team_event_name("Box-Cricket", self.ITEMS) == "Box Cricket"

    def test_unmatched_key(self) -> None:
        assert resolve_team_event_name("Grand Finale VIP", self.ITEMS) is None
        assert resolve_team_event_name("relay-race", []) is None
