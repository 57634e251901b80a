#!/usr/bin/env python3
"""
Good Eggs MCP Server

Searches groceries, manages favorites and the cart, and looks up past
orders on goodeggs.com through a logged-in browser session.
"""

from typing import Awaitable, Callable, List, Optional

from pydantic import Field

from .. import __version__
from ..core.config import GoodEggsConfig, require_environment
from ..core.errors import ToolError
from ..core.state import SingleSlotCache
from ..core.tooling import EmptyInput, ToolInput, ToolSpec, build_server, run_main, run_stdio
from ..utils.logger import get_logger
from .client import CartResult, GoodEggsClient, GroceryItem, PlaywrightGoodEggsClient

SERVER_NAME = "good-eggs-mcp-server"

logger = get_logger("good-eggs-mcp-server")

ClientFactory = Callable[[], GoodEggsClient]
ReadyClient = Callable[[], Awaitable[GoodEggsClient]]


class BrowserSession:
    """
    One logged-in client shared by every tool call.

    A failed login closes the browser and leaves the slot empty, so the next
    call starts a fresh login.
    """

    def __init__(self, client_factory: ClientFactory):
        self._factory = client_factory
        self._slot = SingleSlotCache(self._login)

    async def _login(self) -> GoodEggsClient:
        client = self._factory()
        try:
            await client.initialize()
        except Exception:
            logger.warning("Good Eggs login failed, closing browser")
            await client.close()
            raise
        return client

    async def get(self) -> GoodEggsClient:
        return await self._slot.get()

    @property
    def is_ready(self) -> bool:
        return self._slot.is_populated

    async def close(self) -> None:
        client = self._slot.invalidate()
        if client is not None:
            await client.close()


class SearchGroceryInput(ToolInput):
    query: str = Field(min_length=1, description='Search query for groceries (e.g., "organic apples", "milk", "bread")')


class GroceryUrlInput(ToolInput):
    grocery_url: str = Field(min_length=1, description="The Good Eggs URL of the grocery item")


class AddToCartInput(GroceryUrlInput):
    quantity: int = Field(1, ge=1, le=99, description="Quantity to add (default: 1)")


class PastOrderInput(ToolInput):
    past_order_date: str = Field(min_length=1, description="Order date exactly as returned by get_list_of_past_order_dates")


def format_items(items: List[GroceryItem], discount: bool = False, ordered: bool = False) -> str:
    entries = []
    for i, item in enumerate(items, 1):
        lines = [f"{i}. **{item.name}**", f"   Brand: {item.brand or 'N/A'}"]
        if ordered:
            lines.append(f"   Quantity Ordered: {item.quantity_ordered or 1}")
            lines.append(f"   Unit: {item.quantity or 'N/A'}")
        lines.append(f"   Price: {item.price or 'N/A'}")
        if discount or item.discount:
            lines.append(f"   Discount: {item.discount or 'N/A'}")
        lines.append(f"   URL: {item.url}")
        entries.append("\n".join(lines))
    return "\n\n".join(entries)


def _result_text(result: CartResult, failure_prefix: str) -> str:
    if not result.success:
        raise ToolError(f"{failure_prefix}: {result.message}")
    return result.message


def create_tools(get_client: ReadyClient) -> List[ToolSpec]:

    async def search_for_grocery(params: SearchGroceryInput) -> str:
        try:
            results = await (await get_client()).search_groceries(params.query)
        except Exception as e:
            raise ToolError(f"Error searching for groceries: {e}") from e
        if not results:
            return f'No groceries found for "{params.query}". Try a different search term.'
        return f'Found {len(results)} groceries for "{params.query}":\n\n{format_items(results)}'

    async def get_favorites(params: EmptyInput) -> str:
        try:
            results = await (await get_client()).get_favorites()
        except Exception as e:
            raise ToolError(f"Error getting favorites: {e}") from e
        if not results:
            return "No favorite items found. Add items to your favorites on Good Eggs to see them here."
        return f"Found {len(results)} favorite items:\n\n{format_items(results)}"

    async def get_grocery_details(params: GroceryUrlInput) -> str:
        try:
            details = await (await get_client()).get_grocery_details(params.grocery_url)
        except Exception as e:
            raise ToolError(f"Error getting grocery details: {e}") from e

        lines = [f"**{details.name}**", f"Brand: {details.brand or 'N/A'}", f"Price: {details.price or 'N/A'}"]
        if details.original_price:
            lines.append(f"Original Price: {details.original_price}")
        if details.discount:
            lines.append(f"Discount: {details.discount}")
        if details.description:
            lines.append(f"\nDescription: {details.description}")
        if details.product_details:
            lines.append(f"\nProduct Details: {details.product_details}")
        if details.availability:
            lines.append(f"\nAvailable for delivery: {', '.join(details.availability)}")
        lines.append(f"\nURL: {details.url}")
        return "\n".join(lines)

    async def add_to_cart(params: AddToCartInput) -> str:
        try:
            result = await (await get_client()).add_to_cart(params.grocery_url, params.quantity)
        except Exception as e:
            raise ToolError(f"Error adding to cart: {e}") from e
        return _result_text(result, "Failed to add to cart")

    async def search_for_freebie_groceries(params: EmptyInput) -> str:
        try:
            results = await (await get_client()).search_freebie_groceries()
        except Exception as e:
            raise ToolError(f"Error searching for freebies: {e}") from e
        if not results:
            return "No free items or deals currently available."
        return f"Found {len(results)} deals/freebies:\n\n{format_items(results, discount=True)}"

    async def get_list_of_past_order_dates(params: EmptyInput) -> str:
        try:
            orders = await (await get_client()).get_past_order_dates()
        except Exception as e:
            raise ToolError(f"Error getting past order dates: {e}") from e
        if not orders:
            return "No past orders found."
        entries = []
        for i, order in enumerate(orders, 1):
            parts = [f"{i}. **{order.date}**"]
            if order.total:
                parts.append(f"   Total: {order.total}")
            if order.item_count:
                parts.append(f"   Items: {order.item_count}")
            entries.append("\n".join(parts))
        return f"Found {len(orders)} past orders:\n\n" + "\n\n".join(entries)

    async def get_past_order_groceries(params: PastOrderInput) -> str:
        try:
            results = await (await get_client()).get_past_order_groceries(params.past_order_date)
        except Exception as e:
            raise ToolError(f"Error getting past order groceries: {e}") from e
        if not results:
            return f"No items found for order on {params.past_order_date}. Make sure the date matches exactly."
        return (f"Found {len(results)} items from order on {params.past_order_date}:\n\n"
                f"{format_items(results, ordered=True)}")

    async def add_favorite(params: GroceryUrlInput) -> str:
        try:
            result = await (await get_client()).add_favorite(params.grocery_url)
        except Exception as e:
            raise ToolError(f"Error adding to favorites: {e}") from e
        return _result_text(result, "Failed to add to favorites")

    async def remove_favorite(params: GroceryUrlInput) -> str:
        try:
            result = await (await get_client()).remove_favorite(params.grocery_url)
        except Exception as e:
            raise ToolError(f"Error removing from favorites: {e}") from e
        return _result_text(result, "Failed to remove from favorites")

    async def remove_from_cart(params: GroceryUrlInput) -> str:
        try:
            result = await (await get_client()).remove_from_cart(params.grocery_url)
        except Exception as e:
            raise ToolError(f"Error removing from cart: {e}") from e
        return _result_text(result, "Failed to remove from cart")

    return [
        ToolSpec("search_for_grocery",
                 "Search for groceries on Good Eggs. Returns product URLs (for use with other tools), "
                 "names, brands, prices and any discounts.",
                 SearchGroceryInput, search_for_grocery),
        ToolSpec("get_favorites",
                 "Get the user's favorite grocery items on Good Eggs.",
                 EmptyInput, get_favorites),
        ToolSpec("get_grocery_details",
                 "Get details of a grocery item by its Good Eggs URL: prices, description and delivery "
                 "availability.",
                 GroceryUrlInput, get_grocery_details),
        ToolSpec("add_to_cart",
                 "Add a grocery item to the shopping cart. Quantity defaults to 1.",
                 AddToCartInput, add_to_cart, is_write=True),
        ToolSpec("search_for_freebie_groceries",
                 "Find free and discounted items on the Good Eggs deals page.",
                 EmptyInput, search_for_freebie_groceries),
        ToolSpec("get_list_of_past_order_dates",
                 "List past order dates with totals and item counts. Use a date with "
                 "get_past_order_groceries to see the order contents.",
                 EmptyInput, get_list_of_past_order_dates),
        ToolSpec("get_past_order_groceries",
                 "Get the grocery items from a past order, including quantity ordered and unit of sale.",
                 PastOrderInput, get_past_order_groceries),
        ToolSpec("add_favorite",
                 "Add a grocery item to favorites. Reports when it is already a favorite.",
                 GroceryUrlInput, add_favorite, is_write=True),
        ToolSpec("remove_favorite",
                 "Remove a grocery item from favorites. Reports when it is not a favorite.",
                 GroceryUrlInput, remove_favorite, is_write=True),
        ToolSpec("remove_from_cart",
                 "Remove a grocery item from the shopping cart.",
                 GroceryUrlInput, remove_from_cart, is_write=True),
    ]


def create_server(config: GoodEggsConfig, session: Optional[BrowserSession] = None):
    if session is None:
        session = BrowserSession(lambda: PlaywrightGoodEggsClient(config))
    server = build_server(SERVER_NAME, create_tools(session.get))
    server.browser_session = session
    return server


async def main():
    """Run the MCP server"""
    config = GoodEggsConfig.from_environment()
    require_environment(config, SERVER_NAME)
    if not config.headless:
        logger.warning("Running in non-headless mode - browser window will be visible")
    if config.timeout != 30000:
        logger.warning(f"Custom timeout configured: {config.timeout}ms")

    server = create_server(config)
    logger.info(f"Starting {SERVER_NAME} v{__version__}")
    try:
        await run_stdio(server, __version__)
    finally:
        await server.browser_session.close()


def run():
    run_main(main, logger)


if __name__ == "__main__":
    run()
