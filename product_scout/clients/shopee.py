"""Shopee marketplace search used to validate demand and price."""

import logging
from datetime import date
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from product_scout.clients.http_client import fetch_with_policy, get_policy
from product_scout.schemas.items import ShopeeProduct
from product_scout.utils.dates import utcnow

logger = logging.getLogger(__name__)

SHOPEE_DOMAINS = {
    "th": "shopee.co.th",
    "id": "shopee.co.id",
    "ph": "shopee.ph",
    "vn": "shopee.vn",
    "my": "shopee.com.my",
}
FALLBACK_DOMAIN = "shopee.com"
SEARCH_PATH = "/api/v4/search/search_items"


class _ItemRating(BaseModel):
    rating_star: float


class _ItemBasic(BaseModel):
    itemid: int
    name: str
    price: float
    price_min: Optional[float] = None
    historical_sold: int
    item_rating: _ItemRating
    shopid: int


class _SearchItem(BaseModel):
    item_basic: _ItemBasic


class _SearchResponse(BaseModel):
    items: Optional[list[_SearchItem]] = Field(default_factory=list)


def shopee_domain(region: str) -> str:
    return SHOPEE_DOMAINS.get(region, FALLBACK_DOMAIN)


def parse_shopee_search_results(payload: Any, region: str, updated_at: date) -> list[ShopeeProduct]:
    """
    Parse a Shopee search API response into products.

    Prices come in cents; the lowest variant price (price_min) wins over the
    list price. A malformed response yields an empty list, a malformed item
    is skipped.
    """
    try:
        parsed = _SearchResponse.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Failed to parse Shopee response: {e.error_count()} errors")
        return []

    domain = shopee_domain(region)
    products: list[ShopeeProduct] = []

    for item in parsed.items or []:
        basic = item.item_basic
        price_raw = basic.price_min if basic.price_min is not None else basic.price
        try:
            products.append(
                ShopeeProduct(
                    product_id=basic.itemid,
                    title=basic.name,
                    price=price_raw / 100,
                    sold_count=basic.historical_sold,
                    rating=basic.item_rating.rating_star,
                    shopee_url=f"https://{domain}/product/{basic.shopid}/{basic.itemid}",
                    updated_at=updated_at,
                )
            )
        except ValidationError:
            logger.warning(f"Invalid Shopee product skipped: itemid={basic.itemid}")

    return products


class ShopeeClient:
    """Keyword search against the public Shopee search endpoint."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client
        self._owns_client = client is None
        self.policy = get_policy("shopee")

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def close(self):
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def search(self, keyword: str, region: str, limit: int = 10) -> list[ShopeeProduct]:
        client = await self._get_client()
        domain = shopee_domain(region)
        url = f"https://{domain}{SEARCH_PATH}"
        params = {
            "by": "relevancy",
            "keyword": keyword,
            "limit": limit,
            "newest": 0,
            "order": "desc",
            "page_type": "search",
        }
        resp = await fetch_with_policy(
            client,
            url,
            self.policy,
            headers={"Referer": f"https://{domain}/search?keyword={keyword}"},
            params=params,
        )
        products = parse_shopee_search_results(resp.json(), region, utcnow().date())
        logger.debug(f"Shopee search '{keyword}' ({region}): {len(products)} results")
        return products[:limit]
