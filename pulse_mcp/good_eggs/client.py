"""
Good Eggs grocery store client.

Drives a Chromium browser through Playwright's async API: logs in once,
then scrapes search results, favorites, product pages and past orders, and
clicks through the cart and favorite controls.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from playwright.async_api import async_playwright

from ..core.config import GoodEggsConfig
from ..utils.logger import get_logger

logger = get_logger("pulse_mcp.good_eggs")

BASE_URL = "https://www.goodeggs.com"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
LAUNCH_ARGS = ["--disable-blink-features=AutomationControlled", "--disable-dev-shm-usage", "--no-sandbox"]
SETTLE_MS = 1000

PRODUCT_NAME_SELECTOR = 'h1, [class*="product-name"], [class*="title"]'
FAVORITE_BUTTON_SELECTOR = (
    'button[aria-label*="favorite"], button[aria-label*="heart"], button:has([class*="heart"]), '
    '[class*="favorite"] button, button[class*="favorite"]'
)
ADD_BUTTON_SELECTOR = (
    'button:has-text("ADD TO BASKET"), button:has-text("Add to Cart"), button:has-text("Add to Basket")'
)
CART_ITEM_SELECTOR = '[class*="cart-item"], [class*="basket-item"], [class*="line-item"]'
REMOVE_BUTTON_SELECTOR = (
    'button[aria-label*="remove"], button:has-text("Remove"), button:has-text("×"), [class*="remove"] button'
)

# Collects product cards linked from the current page. Takes
# {exclude: [url fragments], requireDiscount: bool}.
PRODUCT_CARDS_SCRIPT = """
({exclude, requireDiscount}) => {
  const products = [];
  const seen = new Set();
  document.querySelectorAll('a[href*="/product/"], a[href*="goodeggs"]').forEach((link) => {
    const href = link.href;
    if (!href || seen.has(href) || exclude.some((part) => href.includes(part))) return;
    const container = link.closest('div[class*="product"], article, [class*="card"]') || link;
    const text = (selector) => container.querySelector(selector)?.textContent?.trim() || '';
    const discount = text('[class*="off"], [class*="discount"]');
    if (requireDiscount && !discount) return;
    const name = text('h2, h3, [class*="title"], [class*="name"]');
    if (!name || name.length < 3) return;
    seen.add(href);
    products.push({
      url: href,
      name,
      brand: text('[class*="brand"], [class*="producer"]'),
      price: text('[class*="price"]'),
      discount: discount || null,
      imageUrl: container.querySelector('img')?.src || null,
      quantity: text('[class*="unit"], [class*="size"]') || null,
      quantityOrdered: parseInt(text('[class*="qty"], [class*="quantity"]')) || null,
    });
  });
  return products;
}
"""

PRODUCT_DETAILS_SCRIPT = """
(url) => {
  const text = (selector) => document.querySelector(selector)?.textContent?.trim() || null;
  const availability = [];
  document.querySelectorAll('[class*="availability"] span, [class*="delivery"] span').forEach((el) => {
    const value = el.textContent?.trim();
    if (value) availability.push(value);
  });
  return {
    url,
    name: text('h1, [class*="product-name"], [class*="title"]') || 'Unknown',
    brand: text('[class*="brand"], [class*="producer"]') || '',
    price: text('[class*="sale-price"], [class*="current-price"]') || '',
    originalPrice: text('[class*="original-price"], [class*="regular-price"], s'),
    discount: text('[class*="off"], [class*="discount"]'),
    description: text('[class*="description"], [class*="details"] p, .product-description'),
    productDetails: text('[class*="product-details"]'),
    availability,
    imageUrl: document.querySelector('[class*="product"] img, main img')?.src || null,
  };
}
"""

PAST_ORDERS_SCRIPT = """
() => {
  const orders = [];
  document.querySelectorAll('[class*="order"], [class*="history"] > div, [class*="past-order"]').forEach((el) => {
    const date = el.querySelector('[class*="date"], time')?.textContent?.trim();
    if (!date) return;
    const count = el.querySelector('[class*="count"], [class*="items"]')?.textContent;
    orders.push({
      date,
      total: el.querySelector('[class*="total"], [class*="price"]')?.textContent?.trim() || null,
      itemCount: count ? parseInt(count) || null : null,
    });
  });
  return orders;
}
"""

IS_FAVORITED_SCRIPT = """
(button) => {
  const classes = button.className || '';
  return classes.includes('active') || classes.includes('filled') || classes.includes('favorited')
    || button.getAttribute('aria-pressed') === 'true';
}
"""


@dataclass
class GroceryItem:
    url: str
    name: str
    brand: str = ""
    price: str = ""
    discount: Optional[str] = None
    image_url: Optional[str] = None
    # Unit of sale such as "1 lb"; past orders also carry how many were bought
    quantity: Optional[str] = None
    quantity_ordered: Optional[int] = None

    @classmethod
    def from_page(cls, data: Dict[str, Any]) -> "GroceryItem":
        return cls(
            url=data["url"],
            name=data["name"],
            brand=data.get("brand") or "",
            price=data.get("price") or "",
            discount=data.get("discount"),
            image_url=data.get("imageUrl"),
            quantity=data.get("quantity"),
            quantity_ordered=data.get("quantityOrdered"),
        )


@dataclass
class GroceryDetails:
    url: str
    name: str
    brand: str = ""
    price: str = ""
    original_price: Optional[str] = None
    discount: Optional[str] = None
    description: Optional[str] = None
    product_details: Optional[str] = None
    availability: List[str] = field(default_factory=list)
    image_url: Optional[str] = None


@dataclass
class PastOrder:
    date: str
    total: Optional[str] = None
    item_count: Optional[int] = None


@dataclass
class CartResult:
    success: bool
    message: str
    item_name: str
    quantity: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def absolute_url(grocery_url: str) -> str:
    return grocery_url if grocery_url.startswith("http") else f"{BASE_URL}{grocery_url}"


def product_slug(grocery_url: str) -> str:
    return grocery_url.rstrip("/").split("/")[-1]


class GoodEggsClient(ABC):

    @abstractmethod
    async def initialize(self) -> None:
        """Launch the browser and log in. Must be called before anything else."""

    @abstractmethod
    async def search_groceries(self, query: str) -> List[GroceryItem]: ...

    @abstractmethod
    async def get_favorites(self) -> List[GroceryItem]: ...

    @abstractmethod
    async def get_grocery_details(self, grocery_url: str) -> GroceryDetails: ...

    @abstractmethod
    async def add_to_cart(self, grocery_url: str, quantity: int = 1) -> CartResult: ...

    @abstractmethod
    async def search_freebie_groceries(self) -> List[GroceryItem]: ...

    @abstractmethod
    async def get_past_order_dates(self) -> List[PastOrder]: ...

    @abstractmethod
    async def get_past_order_groceries(self, order_date: str) -> List[GroceryItem]: ...

    @abstractmethod
    async def add_favorite(self, grocery_url: str) -> CartResult: ...

    @abstractmethod
    async def remove_favorite(self, grocery_url: str) -> CartResult: ...

    @abstractmethod
    async def remove_from_cart(self, grocery_url: str) -> CartResult: ...

    @abstractmethod
    async def get_current_url(self) -> str: ...

    @abstractmethod
    async def close(self) -> None: ...


class PlaywrightGoodEggsClient(GoodEggsClient):
    """Good Eggs client backed by a headless (by default) Chromium session"""

    def __init__(self, config: GoodEggsConfig):
        self.config = config
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None
        self._initialized = False

    def _require_page(self):
        if self._page is None:
            raise RuntimeError("Browser not initialized. Call initialize() first.")
        return self._page

    async def initialize(self) -> None:
        if self._initialized:
            return

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.config.headless, args=LAUNCH_ARGS)
        self._context = await self._browser.new_context(
            viewport={"width": 1920, "height": 1080}, user_agent=USER_AGENT)
        self._context.set_default_timeout(self.config.timeout)
        self._page = await self._context.new_page()

        page = self._page
        await page.goto(f"{BASE_URL}/signin", wait_until="networkidle")
        await page.fill('input[name="email"], input[type="email"]', self.config.username)
        await page.fill('input[name="password"], input[type="password"]', self.config.password)
        await page.click('button:has-text("Sign In")')
        await page.wait_for_url(lambda url: "/signin" not in url, timeout=self.config.timeout)

        if "/signin" in page.url:
            raise RuntimeError("Login failed - still on signin page. Check your credentials.")

        logger.info(f"Logged in to Good Eggs as {self.config.username}")
        self._initialized = True

    async def _open(self, path: str):
        page = self._require_page()
        await page.goto(f"{BASE_URL}{path}", wait_until="networkidle")
        await page.wait_for_timeout(SETTLE_MS)
        return page

    async def _product_cards(self, page, exclude: List[str], require_discount: bool = False) -> List[GroceryItem]:
        cards = await page.evaluate(PRODUCT_CARDS_SCRIPT, {"exclude": exclude, "requireDiscount": require_discount})
        return [GroceryItem.from_page(card) for card in cards]

    async def _open_product(self, grocery_url: str):
        """Navigate to a product page unless the browser is already on it"""
        page = self._require_page()
        current = page.url.replace(BASE_URL, "")
        if product_slug(grocery_url.replace(BASE_URL, "")) not in current:
            await page.goto(absolute_url(grocery_url), wait_until="networkidle")
        return page

    async def _product_name(self, page) -> str:
        element = await page.query_selector(PRODUCT_NAME_SELECTOR)
        text = await element.text_content() if element else None
        return (text or "").strip() or "Unknown item"

    def _ensure_logged_in(self, page, what: str) -> None:
        if "/signin" in page.url:
            raise RuntimeError(f"Not logged in. Cannot access {what}.")

    async def search_groceries(self, query):
        page = await self._open(f"/search?q={quote(query)}")
        return await self._product_cards(page, ["/search", "/signin"])

    async def get_favorites(self):
        page = await self._open("/favorites")
        self._ensure_logged_in(page, "favorites")
        return await self._product_cards(page, ["/favorites", "/signin"])

    async def get_grocery_details(self, grocery_url):
        page = await self._open_product(grocery_url)
        await page.wait_for_timeout(SETTLE_MS)
        data = await page.evaluate(PRODUCT_DETAILS_SCRIPT, grocery_url)
        return GroceryDetails(
            url=data["url"],
            name=data["name"],
            brand=data["brand"],
            price=data["price"],
            original_price=data.get("originalPrice"),
            discount=data.get("discount"),
            description=data.get("description"),
            product_details=data.get("productDetails"),
            availability=data.get("availability") or [],
            image_url=data.get("imageUrl"),
        )

    async def add_to_cart(self, grocery_url, quantity=1):
        page = await self._open_product(grocery_url)
        item_name = await self._product_name(page)

        if quantity > 1:
            selector = await page.query_selector('select[class*="quantity"], [class*="quantity"] select')
            plus_button = None
            if selector:
                await selector.select_option(str(quantity))
            else:
                plus_button = await page.query_selector('button[aria-label*="increase"], button:has-text("+")')
                if plus_button is None:
                    return CartResult(
                        False,
                        f"Could not set quantity to {quantity} - quantity controls not found. "
                        "Item may only support single-item adds.",
                        item_name, 1)
                for _ in range(quantity - 1):
                    await plus_button.click()
                    await page.wait_for_timeout(200)

        add_button = await page.query_selector(ADD_BUTTON_SELECTOR)
        if add_button is None:
            return CartResult(False, "Could not find add to cart button", item_name, quantity)

        await add_button.click()
        await page.wait_for_timeout(SETTLE_MS)
        logger.info(f"Added {quantity} x {item_name} to cart")
        return CartResult(True, f"Successfully added {quantity} x {item_name} to cart", item_name, quantity)

    async def search_freebie_groceries(self):
        page = await self._open("/good-deals")
        return await self._product_cards(page, ["/good-deals", "/signin"], require_discount=True)

    async def get_past_order_dates(self):
        page = await self._open("/reorder")
        self._ensure_logged_in(page, "past orders")
        orders = await page.evaluate(PAST_ORDERS_SCRIPT)
        return [PastOrder(o["date"], o.get("total"), o.get("itemCount")) for o in orders]

    async def get_past_order_groceries(self, order_date):
        page = self._require_page()
        if "/reorder" not in page.url:
            page = await self._open("/reorder")
        self._ensure_logged_in(page, "past orders")

        order_link = await page.query_selector(f"text={order_date}")
        if order_link:
            await order_link.click()
            await page.wait_for_timeout(SETTLE_MS)
        return await self._product_cards(page, ["/reorder", "/signin"])

    async def _toggle_favorite(self, grocery_url: str, want_favorite: bool) -> CartResult:
        page = await self._open_product(grocery_url)
        item_name = await self._product_name(page)

        button = await page.query_selector(FAVORITE_BUTTON_SELECTOR)
        if button is None:
            return CartResult(False, "Could not find favorite button", item_name)

        favorited = await page.evaluate(IS_FAVORITED_SCRIPT, button)
        if favorited == want_favorite:
            state = "already in favorites" if want_favorite else "not in favorites"
            return CartResult(True, f"{item_name} is {state}", item_name)

        await button.click()
        await page.wait_for_timeout(500)
        action = "added {} to" if want_favorite else "removed {} from"
        return CartResult(True, f"Successfully {action.format(item_name)} favorites", item_name)

    async def add_favorite(self, grocery_url):
        return await self._toggle_favorite(grocery_url, True)

    async def remove_favorite(self, grocery_url):
        return await self._toggle_favorite(grocery_url, False)

    async def remove_from_cart(self, grocery_url):
        page = await self._open("/basket")
        slug = product_slug(grocery_url)
        if len(slug) < 3:
            return CartResult(False, "Invalid grocery URL - could not extract product identifier", grocery_url)

        item_found = False
        item_name = "Unknown item"
        for cart_item in await page.query_selector_all(CART_ITEM_SELECTOR):
            if await cart_item.query_selector(f'a[href*="{slug}"]') is None:
                continue
            item_found = True
            name_element = await cart_item.query_selector('[class*="name"], [class*="title"], h3, h4')
            if name_element:
                item_name = ((await name_element.text_content()) or "").strip() or item_name

            remove_button = await cart_item.query_selector(REMOVE_BUTTON_SELECTOR)
            if remove_button:
                await remove_button.click()
                await page.wait_for_timeout(500)
                return CartResult(True, f"Successfully removed {item_name} from cart", item_name)

        if not item_found:
            return CartResult(False, "Item not found in cart", slug)
        return CartResult(False, "Could not find remove button for item in cart", item_name)

    async def get_current_url(self):
        return self._require_page().url

    async def close(self):
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._playwright = self._browser = self._context = self._page = None
        self._initialized = False
