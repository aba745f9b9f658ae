"""FastMoss browser session over a persistent Playwright profile.

The session loads list and detail pages, checks for a login redirect, and hands
the rendered HTML to the pure parsers in ``parsers``.
"""

import asyncio
import logging
import random
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlencode

from playwright.async_api import (
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from product_scout.config import settings
from product_scout.schemas.config import SearchStrategy
from product_scout.schemas.items import DiscoveredProduct, DiscoveredShop, ProductDetailData, ShopDetail
from product_scout.scrapers import parsers
from product_scout.utils.dates import utcnow

logger = logging.getLogger(__name__)

LIST_PATHS = {
    parsers.SOURCE_SALESLIST: "/e-commerce/saleslist",
    parsers.SOURCE_NEW_PRODUCTS: "/e-commerce/newProducts",
    parsers.SOURCE_HOTLIST: "/e-commerce/hotlist",
    parsers.SOURCE_HOTVIDEO: "/e-commerce/hotvideo",
    parsers.SOURCE_SEARCH: "/e-commerce/search",
    parsers.SOURCE_SHOP_SALESLIST: "/shop-marketing/tiktok",
    parsers.SOURCE_SHOP_HOTLIST: "/shop-marketing/hotTiktok",
}
PRODUCT_DETAIL_PATH = "/e-commerce/detail/{fastmoss_id}"
SHOP_DETAIL_PATH = "/shop-marketing/detail/{shop_id}"

LOGIN_MARKERS = ("/login", "/sign")
LOGIN_BUTTON_SELECTOR = "text=登录"
LOGIN_POLL_SECONDS = 3.0
LOGIN_TIMEOUT_SECONDS = 600
TABLE_ROW_SELECTOR = "tr.ant-table-row"
NAVIGATION_ATTEMPTS = 3


class FastMossSessionExpired(RuntimeError):
    """Raised when FastMoss redirects to its login page."""
    pass


def is_login_url(url: str) -> bool:
    return any(marker in url for marker in LOGIN_MARKERS)


def check_login_status(url: str) -> None:
    if is_login_url(url):
        raise FastMossSessionExpired(
            f"FastMoss session expired. Log in at {settings.fastmoss_base_url} "
            f"with the browser profile in {settings.fastmoss_profile_dir} "
            f"(run `product-scout login`)."
        )


def build_list_url(path: str, region: str, category: Optional[str] = None, extra: Optional[dict[str, Any]] = None) -> str:
    params: dict[str, Any] = {"country": region}
    if category:
        params["category"] = category
    for key, value in (extra or {}).items():
        params[key] = str(value)
    return f"{settings.fastmoss_base_url}{path}?{urlencode(params)}"


class FastMossSession:
    """
    One persistent-profile browser context shared by every FastMoss page load.

    Use as an async context manager; pages are opened and closed per load.
    """

    def __init__(
        self,
        profile_dir: str | Path | None = None,
        headless: bool | None = None,
        timeout_ms: int | None = None,
    ):
        self.profile_dir = Path(profile_dir or settings.fastmoss_profile_dir)
        self.headless = settings.browser_headless if headless is None else headless
        self.timeout_ms = timeout_ms or settings.browser_timeout_ms
        self._playwright: Optional[Playwright] = None
        self._context: Optional[BrowserContext] = None
        self._init_lock = asyncio.Lock()

    async def __aenter__(self) -> "FastMossSession":
        await self._ensure_context()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _ensure_context(self) -> BrowserContext:
        async with self._init_lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            if self._context is None:
                self.profile_dir.mkdir(parents=True, exist_ok=True)
                logger.info(f"Launching browser with persistent profile {self.profile_dir}")
                self._context = await self._playwright.chromium.launch_persistent_context(
                    str(self.profile_dir),
                    headless=self.headless,
                    timeout=self.timeout_ms,
                    args=["--disable-blink-features=AutomationControlled"],
                )
            return self._context

    async def close(self):
        """Close browser and cleanup."""
        if self._context:
            await self._context.close()
            self._context = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    async def _goto(self, page: Page, url: str) -> None:
        last_error: Exception | None = None
        for attempt in range(1, NAVIGATION_ATTEMPTS + 1):
            try:
                await page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms * 2)
                return
            except (PlaywrightTimeoutError, PlaywrightError) as e:
                last_error = e
                if attempt >= NAVIGATION_ATTEMPTS:
                    break
                delay = (2 ** attempt) + random.random()
                logger.warning(
                    f"Navigation to {url} failed ({type(e).__name__}), "
                    f"retrying in {delay:.1f}s (attempt {attempt}/{NAVIGATION_ATTEMPTS})"
                )
                await asyncio.sleep(delay)
        raise last_error

    async def is_logged_in(self, page: Page) -> bool:
        """Signed in when not on a login URL and no login button is shown."""
        if is_login_url(page.url):
            return False
        return await page.query_selector(LOGIN_BUTTON_SELECTOR) is None

    async def login(
        self,
        timeout_seconds: float = LOGIN_TIMEOUT_SECONDS,
        poll_seconds: float = LOGIN_POLL_SECONDS,
    ) -> bool:
        """
        Open FastMoss and wait for the operator to sign in by hand.

        The persistent profile keeps the cookies, so later headless runs reuse
        the session. Run with a visible browser.

        Returns:
            True once signed in, False when the wait timed out
        """
        context = await self._ensure_context()
        page = await context.new_page()
        try:
            await self._goto(page, settings.fastmoss_base_url)
            await page.wait_for_timeout(settings.page_settle_ms)
            if await self.is_logged_in(page):
                logger.info("Already logged in to FastMoss")
                return True

            button = await page.query_selector(LOGIN_BUTTON_SELECTOR)
            if button is not None:
                await button.click()
            logger.info(f"Complete the FastMoss login in the browser window (waiting up to {timeout_seconds:.0f}s)")

            polls = max(1, int(timeout_seconds / poll_seconds)) if poll_seconds > 0 else 1
            for _ in range(polls):
                await asyncio.sleep(poll_seconds)
                if await self.is_logged_in(page):
                    logger.info(f"FastMoss login detected, session saved in {self.profile_dir}")
                    return True

            logger.error("Timed out waiting for FastMoss login")
            return False
        finally:
            await page.close()

    async def load_html(self, url: str, wait_for_table: bool = True) -> str:
        """
        Load a page and return its rendered HTML.

        Raises:
            FastMossSessionExpired: The page redirected to the login screen
            PlaywrightError: Navigation failed after retries
        """
        context = await self._ensure_context()
        page = await context.new_page()
        try:
            await self._goto(page, url)
            check_login_status(page.url)
            if wait_for_table:
                try:
                    await page.wait_for_selector(TABLE_ROW_SELECTOR, timeout=self.timeout_ms)
                except PlaywrightTimeoutError:
                    logger.debug(f"No table rows rendered on {url}")
            await page.wait_for_timeout(settings.page_settle_ms)
            return await page.content()
        finally:
            await page.close()

    async def _scrape_list(
        self,
        source: str,
        region: str,
        category: Optional[str],
        limit: Optional[int],
        extra: Optional[dict[str, Any]] = None,
    ) -> list[DiscoveredProduct]:
        url = build_list_url(LIST_PATHS[source], region, category, extra)
        html = await self.load_html(url)
        parse = parsers.PRODUCT_PARSERS.get(source, parsers.parse_search)
        items = parse(html, region, utcnow().date())
        if limit:
            items = items[:limit]
        logger.info(f"FastMoss {source} scraped {len(items)} products (region={region})")
        return items

    async def scrape_saleslist(self, region: str, category: Optional[str] = None, limit: Optional[int] = None):
        return await self._scrape_list(parsers.SOURCE_SALESLIST, region, category, limit)

    async def scrape_new_products(self, region: str, category: Optional[str] = None, limit: Optional[int] = None):
        return await self._scrape_list(parsers.SOURCE_NEW_PRODUCTS, region, category, limit)

    async def scrape_hotlist(self, region: str, category: Optional[str] = None, limit: Optional[int] = None):
        return await self._scrape_list(parsers.SOURCE_HOTLIST, region, category, limit)

    async def scrape_hotvideo(self, region: str, category: Optional[str] = None, limit: Optional[int] = None):
        return await self._scrape_list(parsers.SOURCE_HOTVIDEO, region, category, limit)

    async def scrape_search(
        self,
        strategy: SearchStrategy,
        region: str,
        category: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[DiscoveredProduct]:
        """Search with a strategy's filters passed through as query parameters."""
        logger.info(f"Scraping FastMoss search with strategy '{strategy.name}'")
        return await self._scrape_list(parsers.SOURCE_SEARCH, region, category, limit, extra=strategy.filters)

    async def scrape_shop_list(
        self,
        source: str,
        region: str,
        category: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[DiscoveredShop]:
        url = build_list_url(LIST_PATHS[source], region, category)
        html = await self.load_html(url)
        shops = parsers.parse_shop_list(html, region, source, utcnow().date())
        if limit:
            shops = shops[:limit]
        logger.info(f"FastMoss {source} scraped {len(shops)} shops (region={region})")
        return shops

    async def scrape_shop_detail(self, shop_id: str, country: str) -> Optional[ShopDetail]:
        url = settings.fastmoss_base_url + SHOP_DETAIL_PATH.format(shop_id=shop_id)
        html = await self.load_html(url, wait_for_table=False)
        detail = parsers.parse_shop_detail(html, shop_id, country, utcnow().date())
        if detail is not None:
            logger.info(
                f"FastMoss shop detail scraped: {detail.shop.shop_name} "
                f"with {len(detail.products)} products"
            )
        return detail

    async def scrape_product_detail(self, fastmoss_id: str) -> Optional[ProductDetailData]:
        url = settings.fastmoss_base_url + PRODUCT_DETAIL_PATH.format(fastmoss_id=fastmoss_id)
        html = await self.load_html(url, wait_for_table=False)
        return parsers.parse_product_detail(html, fastmoss_id, utcnow())
