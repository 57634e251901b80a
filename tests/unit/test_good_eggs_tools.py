"""
Tests for the Good Eggs tools and the shared browser session.
"""

import pytest

from pulse_mcp.core.config import GoodEggsConfig
from pulse_mcp.core.errors import ToolError
from pulse_mcp.good_eggs.client import GroceryItem, absolute_url, product_slug
from pulse_mcp.good_eggs.mocks import BASE, MockGoodEggsClient
from pulse_mcp.good_eggs.server import BrowserSession, create_tools


APPLES = f"{BASE}/organic-honeycrisp-apples"
MILK = f"{BASE}/whole-milk"


def past_orders():
    return {
        "Tue, Jan 2": [
            GroceryItem(MILK, "Whole Milk", "Clover", "$6.99", quantity="1 qt", quantity_ordered=2),
            GroceryItem(APPLES, "Organic Honeycrisp Apples", "From Our Farmers", "$4.99", quantity="1 lb"),
        ],
    }


class TestHelpers:

    def test_absolute_url(self):
        assert absolute_url("/product/whole-milk") == "https://www.goodeggs.com/product/whole-milk"
        assert absolute_url(MILK) == MILK

    def test_product_slug(self):
        assert product_slug("https://www.goodeggs.com/product/whole-milk/") == "whole-milk"

    def test_config_defaults(self, clean_environment):
        config = GoodEggsConfig.from_environment({"GOOD_EGGS_USERNAME": "me@example.com"})
        assert config.headless is True
        assert config.timeout == 30000
        assert config.missing_variables() == ["GOOD_EGGS_PASSWORD"]

    def test_config_overrides(self):
        config = GoodEggsConfig.from_environment({"HEADLESS": "false", "TIMEOUT": "5000"})
        assert config.headless is False
        assert config.timeout == 5000


class TestBrowserSession:

    @pytest.mark.asyncio
    async def test_logs_in_once(self):
        created = []

        def factory():
            created.append(MockGoodEggsClient())
            return created[-1]

        session = BrowserSession(factory)
        first = await session.get()
        second = await session.get()
        assert first is second
        assert len(created) == 1
        assert first.calls.count(("initialize",)) == 1

    @pytest.mark.asyncio
    async def test_failed_login_closes_browser_and_retries(self):
        failing = MockGoodEggsClient(login_error=RuntimeError(
            "Login failed - still on signin page. Check your credentials."))
        working = MockGoodEggsClient()
        clients = [failing, working]
        session = BrowserSession(lambda: clients.pop(0))

        with pytest.raises(RuntimeError, match="Login failed"):
            await session.get()
        assert failing.closed
        assert not session.is_ready

        assert await session.get() is working

    @pytest.mark.asyncio
    async def test_close(self):
        client = MockGoodEggsClient()
        session = BrowserSession(lambda: client)
        await session.get()
        await session.close()
        assert client.closed
        assert not session.is_ready


class TestGoodEggsTools:

    def setup_method(self):
        self.client = MockGoodEggsClient(favorites=[MILK], orders=past_orders())
        self.session = BrowserSession(lambda: self.client)
        self.tools = {t.name: t for t in create_tools(self.session.get)}

    @pytest.mark.asyncio
    async def test_search(self):
        text = await self.tools["search_for_grocery"].invoke({"query": "apples"})
        assert text.startswith('Found 2 groceries for "apples":')
        assert "1. **Organic Honeycrisp Apples**\n   Brand: From Our Farmers\n   Price: $4.99\n   Discount: 16% OFF" in text
        assert "2. **Organic Fuji Apples**" in text

    @pytest.mark.asyncio
    async def test_search_empty(self):
        text = await self.tools["search_for_grocery"].invoke({"query": "caviar"})
        assert text == 'No groceries found for "caviar". Try a different search term.'

    @pytest.mark.asyncio
    async def test_login_failure_reported(self):
        client = MockGoodEggsClient(login_error=RuntimeError("Login failed - still on signin page. Check your credentials."))
        tools = {t.name: t for t in create_tools(BrowserSession(lambda: client).get)}
        with pytest.raises(ToolError, match="Error searching for groceries: Login failed"):
            await tools["search_for_grocery"].invoke({"query": "milk"})

    @pytest.mark.asyncio
    async def test_favorites(self):
        text = await self.tools["get_favorites"].invoke({})
        assert text.startswith("Found 1 favorite items:")
        assert "**Whole Milk**" in text

    @pytest.mark.asyncio
    async def test_favorites_empty(self):
        self.client.favorites = []
        text = await self.tools["get_favorites"].invoke({})
        assert text.startswith("No favorite items found.")

    @pytest.mark.asyncio
    async def test_details(self):
        text = await self.tools["get_grocery_details"].invoke({"grocery_url": APPLES})
        assert text.startswith("**Organic Honeycrisp Apples**\nBrand: From Our Farmers\nPrice: $4.99")
        assert "Original Price: $5.97" in text
        assert "Available for delivery: Sun 1/4, Mon 1/5" in text
        assert text.endswith(f"URL: {APPLES}")

    @pytest.mark.asyncio
    async def test_add_to_cart(self):
        text = await self.tools["add_to_cart"].invoke({"grocery_url": MILK, "quantity": 3})
        assert text == "Successfully added 3 x Whole Milk to cart"
        assert self.client.cart == {MILK: 3}

    @pytest.mark.asyncio
    async def test_add_to_cart_quantity_bounds(self):
        with pytest.raises(ToolError, match="quantity"):
            await self.tools["add_to_cart"].invoke({"grocery_url": MILK, "quantity": 100})

    @pytest.mark.asyncio
    async def test_freebies(self):
        text = await self.tools["search_for_freebie_groceries"].invoke({})
        assert text.startswith("Found 2 deals/freebies:")
        assert "Discount: 100% OFF" in text

    @pytest.mark.asyncio
    async def test_past_orders(self):
        text = await self.tools["get_list_of_past_order_dates"].invoke({})
        assert text == "Found 1 past orders:\n\n1. **Tue, Jan 2**\n   Total: $11.98\n   Items: 2"

    @pytest.mark.asyncio
    async def test_past_order_groceries(self):
        text = await self.tools["get_past_order_groceries"].invoke({"past_order_date": "Tue, Jan 2"})
        assert text.startswith("Found 2 items from order on Tue, Jan 2:")
        assert "   Quantity Ordered: 2\n   Unit: 1 qt" in text
        assert "   Quantity Ordered: 1\n   Unit: 1 lb" in text

    @pytest.mark.asyncio
    async def test_past_order_unknown_date(self):
        text = await self.tools["get_past_order_groceries"].invoke({"past_order_date": "Jan 1"})
        assert text == "No items found for order on Jan 1. Make sure the date matches exactly."

    @pytest.mark.asyncio
    async def test_favorite_toggle(self):
        assert await self.tools["add_favorite"].invoke({"grocery_url": MILK}) == "Whole Milk is already in favorites"
        assert await self.tools["add_favorite"].invoke({"grocery_url": APPLES}) == (
            "Successfully added Organic Honeycrisp Apples to favorites")
        assert await self.tools["remove_favorite"].invoke({"grocery_url": MILK}) == (
            "Successfully removed Whole Milk from favorites")
        assert self.client.favorites == [APPLES]

    @pytest.mark.asyncio
    async def test_remove_from_cart_missing_item(self):
        with pytest.raises(ToolError, match="Failed to remove from cart: Item not found in cart"):
            await self.tools["remove_from_cart"].invoke({"grocery_url": MILK})

    @pytest.mark.asyncio
    async def test_remove_from_cart(self):
        await self.tools["add_to_cart"].invoke({"grocery_url": MILK})
        text = await self.tools["remove_from_cart"].invoke({"grocery_url": "/product/whole-milk"})
        assert text == "Successfully removed Whole Milk from cart"
        assert self.client.cart == {}

    @pytest.mark.asyncio
    async def test_unknown_product(self):
        with pytest.raises(ToolError, match="Error getting grocery details: Product not found"):
            await self.tools["get_grocery_details"].invoke({"grocery_url": "/product/unicorn"})

    @pytest.mark.asyncio
    async def test_single_login_across_tools(self):
        await self.tools["get_favorites"].invoke({})
        await self.tools["search_for_grocery"].invoke({"query": "milk"})
        assert self.client.calls.count(("initialize",)) == 1
