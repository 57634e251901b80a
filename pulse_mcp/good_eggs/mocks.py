"""
In-memory Good Eggs client for tests.
"""

import copy
from typing import Dict, List, Optional

from .client import CartResult, GoodEggsClient, GroceryDetails, GroceryItem, PastOrder, product_slug

BASE = "https://www.goodeggs.com/product"

DEFAULT_CATALOG = [
    GroceryItem(f"{BASE}/organic-honeycrisp-apples", "Organic Honeycrisp Apples", "From Our Farmers",
                "$4.99", discount="16% OFF"),
    GroceryItem(f"{BASE}/organic-fuji-apples", "Organic Fuji Apples", "Hikari Farms", "$2.99"),
    GroceryItem(f"{BASE}/whole-milk", "Whole Milk", "Clover", "$6.99"),
    GroceryItem(f"{BASE}/sourdough", "Sourdough Loaf", "Acme Bread", "$0.00", discount="100% OFF"),
]


class MockGoodEggsClient(GoodEggsClient):
    """
    Keeps a product catalog, a favorites set, a cart and past orders in
    memory. ``login_error`` makes ``initialize`` fail.
    """

    def __init__(self, catalog: Optional[List[GroceryItem]] = None,
                 favorites: Optional[List[str]] = None,
                 orders: Optional[Dict[str, List[GroceryItem]]] = None,
                 login_error: Optional[Exception] = None,
                 errors: Optional[Dict[str, Exception]] = None):
        self.catalog = {item.url: item for item in copy.deepcopy(catalog if catalog is not None else DEFAULT_CATALOG)}
        self.favorites = list(favorites or [])
        self.orders = copy.deepcopy(orders or {})
        self.cart: Dict[str, int] = {}
        self.login_error = login_error
        self.errors = errors or {}
        self.calls: List[tuple] = []
        self.initialized = False
        self.closed = False
        self.current_url = "about:blank"

    def _record(self, method: str, *args) -> None:
        self.calls.append((method,) + args)
        if method in self.errors:
            raise self.errors[method]

    def _item(self, grocery_url: str) -> GroceryItem:
        for url, item in self.catalog.items():
            if product_slug(url) == product_slug(grocery_url):
                self.current_url = url
                return item
        raise LookupError(f"Product not found: {grocery_url}")

    async def initialize(self):
        self._record("initialize")
        if self.login_error:
            raise self.login_error
        self.initialized = True

    async def search_groceries(self, query):
        self._record("search_groceries", query)
        terms = query.lower().split()
        return [copy.copy(item) for item in self.catalog.values()
                if all(term in item.name.lower() for term in terms)]

    async def get_favorites(self):
        self._record("get_favorites")
        return [copy.copy(self.catalog[url]) for url in self.favorites if url in self.catalog]

    async def get_grocery_details(self, grocery_url):
        self._record("get_grocery_details", grocery_url)
        item = self._item(grocery_url)
        return GroceryDetails(
            url=item.url, name=item.name, brand=item.brand, price=item.price,
            original_price="$5.97" if item.discount else None, discount=item.discount,
            description=f"Fresh {item.name.lower()} from local producers.",
            availability=["Sun 1/4", "Mon 1/5"],
        )

    async def add_to_cart(self, grocery_url, quantity=1):
        self._record("add_to_cart", grocery_url, quantity)
        item = self._item(grocery_url)
        self.cart[item.url] = self.cart.get(item.url, 0) + quantity
        return CartResult(True, f"Successfully added {quantity} x {item.name} to cart", item.name, quantity)

    async def search_freebie_groceries(self):
        self._record("search_freebie_groceries")
        return [copy.copy(item) for item in self.catalog.values() if item.discount]

    async def get_past_order_dates(self):
        self._record("get_past_order_dates")
        return [PastOrder(date, f"${sum(float(i.price.strip('$') or 0) for i in items):.2f}", len(items))
                for date, items in self.orders.items()]

    async def get_past_order_groceries(self, order_date):
        self._record("get_past_order_groceries", order_date)
        return copy.deepcopy(self.orders.get(order_date, []))

    async def add_favorite(self, grocery_url):
        self._record("add_favorite", grocery_url)
        item = self._item(grocery_url)
        if item.url in self.favorites:
            return CartResult(True, f"{item.name} is already in favorites", item.name)
        self.favorites.append(item.url)
        return CartResult(True, f"Successfully added {item.name} to favorites", item.name)

    async def remove_favorite(self, grocery_url):
        self._record("remove_favorite", grocery_url)
        item = self._item(grocery_url)
        if item.url not in self.favorites:
            return CartResult(True, f"{item.name} is not in favorites", item.name)
        self.favorites.remove(item.url)
        return CartResult(True, f"Successfully removed {item.name} from favorites", item.name)

    async def remove_from_cart(self, grocery_url):
        self._record("remove_from_cart", grocery_url)
        slug = product_slug(grocery_url)
        for url in list(self.cart):
            if product_slug(url) == slug:
                del self.cart[url]
                name = self.catalog[url].name
                return CartResult(True, f"Successfully removed {name} from cart", name)
        return CartResult(False, "Item not found in cart", slug)

    async def get_current_url(self):
        return self.current_url

    async def close(self):
        self._record("close")
        self.closed = True
        self.initialized = False
