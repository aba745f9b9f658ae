"""Tests for the HTTP client policy and the enrichment API clients."""

import json
from datetime import date

import httpx
import pytest

from product_scout.clients import http_client
from product_scout.clients.cj import CjClient, compute_profit_margin, parse_cj_response
from product_scout.clients.google_trends import TrendsClient, classify_trend, geo_code
from product_scout.clients.http_client import (
    ApiError,
    ApiPolicy,
    BlockedError,
    PermanentURLError,
    RateLimitedError,
    TransientFetchError,
    fetch_with_policy,
)
from product_scout.clients.notion import NotionClient
from product_scout.clients.shopee import ShopeeClient, parse_shopee_search_results

POLICY = ApiPolicy(name="test", max_attempts=3)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(http_client, "_backoff", lambda attempt: 0)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _shopee_item(itemid, price, price_min=None, sold=120, rating=4.6):
    return {
        "item_basic": {
            "itemid": itemid,
            "name": f"Item {itemid}",
            "price": price,
            "price_min": price_min,
            "historical_sold": sold,
            "item_rating": {"rating_star": rating},
            "shopid": 99,
        }
    }


# ---------------------------------------------------------------------------
# Shared HTTP policy
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_retries_server_errors_then_succeeds():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})

    async with _client(handler) as client:
        resp = await fetch_with_policy(client, "https://example.test/x", POLICY)

    assert resp.json() == {"ok": True}
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_server_error_exhausts_attempts():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    async with _client(handler) as client:
        with pytest.raises(TransientFetchError):
            await fetch_with_policy(client, "https://example.test/x", POLICY)
    assert len(calls) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, exc",
    [(400, ApiError), (401, BlockedError), (403, BlockedError), (404, PermanentURLError)],
)
async def test_permanent_statuses_are_not_retried(status, exc):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(status)

    async with _client(handler) as client:
        with pytest.raises(exc):
            await fetch_with_policy(client, "https://example.test/x", POLICY)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_rate_limit_honours_retry_after_and_raises_on_last_attempt():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429, headers={"Retry-After": "0"})

    async with _client(handler) as client:
        with pytest.raises(RateLimitedError) as info:
            await fetch_with_policy(client, "https://example.test/x", POLICY)
    assert info.value.retry_after == 0
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_transport_errors_become_transient():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(TransientFetchError):
            await fetch_with_policy(client, "https://example.test/x", POLICY)


# ---------------------------------------------------------------------------
# Shopee
# ---------------------------------------------------------------------------

def test_parse_shopee_prefers_price_min():
    payload = {"items": [_shopee_item(1, 59900, price_min=45000), _shopee_item(2, 12000)]}
    products = parse_shopee_search_results(payload, "th", date(2026, 3, 10))

    assert [p.price for p in products] == [450.0, 120.0]
    assert products[0].shopee_url == "https://shopee.co.th/product/99/1"
    assert products[0].sold_count == 120
    assert products[0].rating == 4.6


def test_parse_shopee_bad_payloads():
    assert parse_shopee_search_results({"items": "nope"}, "th", date(2026, 3, 10)) == []
    assert parse_shopee_search_results({"items": None}, "th", date(2026, 3, 10)) == []
    bad_rating = {"items": [_shopee_item(1, 100, rating=7), _shopee_item(2, 100)]}
    products = parse_shopee_search_results(bad_rating, "xx", date(2026, 3, 10))
    assert [p.product_id for p in products] == [2]
    assert products[0].shopee_url.startswith("https://shopee.com/")


@pytest.mark.asyncio
async def test_shopee_search_sends_keyword():
    seen = {}

    def handler(request):
        seen["url"] = request.url
        return httpx.Response(200, json={"items": [_shopee_item(5, 2500)]})

    client = ShopeeClient(client=_client(handler))
    results = await client.search("lip tint", "id", limit=1)
    await client._client.aclose()

    assert seen["url"].host == "shopee.co.id"
    assert seen["url"].params["keyword"] == "lip tint"
    assert seen["url"].params["limit"] == "1"
    assert len(results) == 1
    assert results[0].price == 25.0


# ---------------------------------------------------------------------------
# CJ
# ---------------------------------------------------------------------------

def test_compute_profit_margin():
    assert compute_profit_margin(20, 8, 3) == 0.45
    assert compute_profit_margin(10, 12, 3) == -0.5
    with pytest.raises(ValueError):
        compute_profit_margin(0, 1, 1)


def test_parse_cj_response():
    payload = {
        "code": 200,
        "result": True,
        "message": "Success",
        "data": {"list": [{"pid": "ABC", "productNameEn": "Tint", "sellPrice": 4.0}]},
    }
    cost = parse_cj_response(payload, shopee_price=20.0, shipping_cost=3.0)

    assert cost.cj_product_id == "ABC"
    assert cost.profit_margin == 0.65
    assert cost.cj_url.endswith("/ABC")

    empty = dict(payload, data={"list": []})
    assert parse_cj_response(empty, 20.0, 3.0) is None

    with pytest.raises(TransientFetchError):
        parse_cj_response({"unexpected": True}, 20.0, 3.0)


@pytest.mark.asyncio
async def test_cj_search_posts_with_token():
    seen = {}

    def handler(request):
        seen["token"] = request.headers["CJ-Access-Token"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "code": 200,
                "result": True,
                "message": "Success",
                "data": {"list": [{"pid": "P1", "productNameEn": "Strip", "sellPrice": 5.0}]},
            },
        )

    client = CjClient(api_key="secret", shipping_cost=2.0, client=_client(handler))
    cost = await client.search_product("LED strip", 14.0)
    await client._client.aclose()

    assert seen["token"] == "secret"
    assert seen["body"] == {"productNameEn": "LED strip", "pageNum": 1, "pageSize": 10}
    assert cost.profit_margin == 0.5


# ---------------------------------------------------------------------------
# Google Trends
# ---------------------------------------------------------------------------

def test_classify_trend():
    assert classify_trend([]) == "stable"
    assert classify_trend([10, 10, 10, 30]) == "rising"
    assert classify_trend([50, 50, 50, 20]) == "declining"
    assert classify_trend([40, 50, 45, 48]) == "stable"


def test_geo_code():
    assert geo_code("th") == "TH"
    assert geo_code("sg") == "SG"


@pytest.mark.asyncio
async def test_trends_error_falls_back_to_stable(monkeypatch):
    client = TrendsClient()

    def boom(keyword, geo):
        raise RuntimeError("429 from Google")

    monkeypatch.setattr(client, "_fetch_interest", boom)
    assert await client.get_trend_status("lip tint", "th") == "stable"


@pytest.mark.asyncio
async def test_trends_classifies_fetched_series(monkeypatch):
    client = TrendsClient()
    monkeypatch.setattr(client, "_fetch_interest", lambda keyword, geo: [5, 5, 5, 20])
    assert await client.get_trend_status("lip tint", "th") == "rising"


# ---------------------------------------------------------------------------
# Notion
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_notion_create_page():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["version"] = request.headers["Notion-Version"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "page-1"})

    client = NotionClient(api_key="key", database_id="db-1", client=_client(handler))
    assert client.configured
    page = await client.create_page("db-1", {"Product Name": {"title": []}})
    await client._client.aclose()

    assert page == {"id": "page-1"}
    assert seen["url"] == "https://api.notion.com/v1/pages"
    assert seen["auth"] == "Bearer key"
    assert seen["version"]
    assert seen["body"] == {"parent": {"database_id": "db-1"}, "properties": {"Product Name": {"title": []}}}


def test_notion_unconfigured():
    assert not NotionClient(api_key="", database_id="").configured
