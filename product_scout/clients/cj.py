"""CJ Dropshipping product search and landed-margin calculation."""

import logging
from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from product_scout.clients.http_client import TransientFetchError, get_policy, request_with_policy
from product_scout.config import settings
from product_scout.schemas.items import CjCost
from product_scout.utils.dates import utcnow
from product_scout.utils.numbers import round_half_up

logger = logging.getLogger(__name__)

CJ_API_URL = "https://developers.cjdropshipping.com/api2.0/v1/product/list"
CJ_PRODUCT_URL = "https://cjdropshipping.com/product/{pid}"


class _CjProduct(BaseModel):
    pid: str
    productNameEn: str
    sellPrice: float
    productImage: Optional[str] = None
    categoryName: Optional[str] = None


class _CjData(BaseModel):
    list: list[_CjProduct]


class _CjResponse(BaseModel):
    code: int
    result: bool
    message: str
    data: Optional[_CjData] = None


def compute_profit_margin(marketplace_price: float, cj_price: float, shipping_cost: float) -> float:
    """(price - cost - shipping) / price, rounded to 4 places."""
    if marketplace_price <= 0:
        raise ValueError("marketplace price must be positive")
    return round_half_up((marketplace_price - cj_price - shipping_cost) / marketplace_price, 4)


def parse_cj_response(payload, shopee_price: float, shipping_cost: float) -> Optional[CjCost]:
    """Build a CjCost from the first listed product, or None when nothing matched."""
    try:
        parsed = _CjResponse.model_validate(payload)
    except ValidationError as e:
        raise TransientFetchError(f"cj: unexpected response shape ({e.error_count()} errors)") from e

    if not parsed.data or not parsed.data.list:
        return None

    product = parsed.data.list[0]
    if product.sellPrice < 0:
        return None
    return CjCost(
        cj_product_id=product.pid,
        cj_price=product.sellPrice,
        shipping_cost=shipping_cost,
        profit_margin=compute_profit_margin(shopee_price, product.sellPrice, shipping_cost),
        cj_url=CJ_PRODUCT_URL.format(pid=product.pid),
        updated_at=utcnow().date(),
    )


class CjClient:
    def __init__(
        self,
        api_key: str | None = None,
        shipping_cost: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.cj_api_key
        self.shipping_cost = shipping_cost if shipping_cost is not None else settings.cj_default_shipping_cost
        self._client = client
        self._owns_client = client is None
        self.policy = get_policy("cj")

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def close(self):
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def search_product(self, keyword: str, shopee_price: float) -> Optional[CjCost]:
        """
        Look up a sourcing candidate on CJ and compute its margin.

        Args:
            keyword: Product name to search for
            shopee_price: Marketplace selling price the margin is measured against

        Returns:
            CjCost for the best match, or None when CJ has no match
        """
        client = await self._get_client()
        resp = await request_with_policy(
            client,
            "POST",
            CJ_API_URL,
            self.policy,
            headers={"CJ-Access-Token": self.api_key, "Content-Type": "application/json"},
            json={"productNameEn": keyword, "pageNum": 1, "pageSize": 10},
        )
        cost = parse_cj_response(resp.json(), shopee_price, self.shipping_cost)
        if cost is None:
            logger.debug(f"No CJ products found for '{keyword}'")
        return cost
