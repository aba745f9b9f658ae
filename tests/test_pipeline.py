"""Tests for the discovery pipeline with fake scraper and API clients."""

from datetime import date

import pytest
from sqlalchemy import select

from product_scout.core.pipeline import (
    PipelineDependencies,
    PipelineOptions,
    PipelineResult,
    collect_products,
    run_pipeline,
)
from product_scout.db import queries
from product_scout.db.models import Candidate, ProductDetail, ScrapeQueueEntry
from product_scout.schemas.items import CjCost, DiscoveredProduct, ProductDetailData, ShopeeProduct
from product_scout.utils.dates import utcnow


def _today() -> date:
    return utcnow().date()


def _discovered(name, source, units_sold, category="Beauty", fastmoss_id=None, growth_rate=0.5):
    return DiscoveredProduct(
        product_name=name,
        shop_name="Glow Shop",
        country="th",
        category=category,
        fastmoss_id=fastmoss_id,
        source=source,
        scraped_at=_today(),
        units_sold=units_sold,
        growth_rate=growth_rate,
    )


class FakeScraper:
    """Discovery lists with one broken source."""

    def __init__(self, fail_detail=False):
        self.fail_detail = fail_detail
        self.detail_calls = []

    async def scrape_saleslist(self, region, category=None, limit=None):
        return [
            _discovered("Lip Tint", "saleslist", 500, fastmoss_id="172937"),
            _discovered("Tiny Seller", "saleslist", 10),
            _discovered("Pocket Knife", "saleslist", 900, category="weapons"),
        ]

    async def scrape_new_products(self, region, category=None, limit=None):
        raise RuntimeError("newProducts page changed")

    async def scrape_hotlist(self, region, category=None, limit=None):
        return [_discovered("Lip Tint", "hotlist", 520)]

    async def scrape_hotvideo(self, region, category=None, limit=None):
        return []

    async def scrape_search(self, strategy, region, category=None, limit=None):
        return []

    async def scrape_shop_list(self, source, region, category=None, limit=None):
        return []

    async def scrape_shop_detail(self, shop_id, country):
        return None

    async def scrape_product_detail(self, fastmoss_id):
        self.detail_calls.append(fastmoss_id)
        if self.fail_detail:
            raise RuntimeError("detail page timeout")
        return ProductDetailData(fastmoss_id=fastmoss_id, hot_index=90, price_usd=12.0, scraped_at=utcnow())


class FakeShopee:
    async def search(self, keyword, region, limit=10):
        return [
            ShopeeProduct(
                product_id=11,
                title=keyword,
                price=15.0,
                sold_count=1200,
                rating=4.7,
                shopee_url="https://shopee.co.th/product/1/11",
                updated_at=_today(),
            )
        ]


class FakeCj:
    def __init__(self):
        self.calls = []

    async def search_product(self, keyword, shopee_price):
        self.calls.append((keyword, shopee_price))
        return CjCost(
            cj_product_id="CJ1",
            cj_price=4.5,
            shipping_cost=3.0,
            profit_margin=0.5,
            cj_url="https://cjdropshipping.com/product/CJ1",
            updated_at=_today(),
        )


class FakeTrends:
    async def get_trend_status(self, keyword, region):
        return "rising"


class FakeNotion:
    database_id = "db-1"

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.pages = []

    async def create_page(self, database_id, properties):
        name = properties["Product Name"]["title"][0]["text"]["content"]
        if name in self.fail_for:
            raise RuntimeError("Notion 502")
        self.pages.append((database_id, properties))
        return {"id": f"page-{len(self.pages)}"}


def _deps(**overrides) -> PipelineDependencies:
    values = dict(
        scraper=FakeScraper(),
        shopee=FakeShopee(),
        cj=FakeCj(),
        trends=FakeTrends(),
        notion=FakeNotion(),
    )
    values.update(overrides)
    return PipelineDependencies(**values)


@pytest.mark.asyncio
async def test_full_run_counts_every_phase(db_session, full_config):
    deps = _deps()
    result = await run_pipeline(db_session, PipelineOptions(region="th"), full_config, deps)

    assert result.collected == 4
    assert result.deduplicated == 1
    assert result.pre_filtered == 2
    assert result.queued == 1
    assert result.detailed == 1
    assert result.enriched == 1
    assert result.post_filtered == 0
    assert result.scored == 1
    assert result.synced == 1
    assert result.labeled >= 4

    assert deps.scraper.detail_calls == ["172937"]
    assert deps.cj.calls == [("Lip Tint", 15.0)]

    (candidate,) = (await db_session.execute(select(Candidate))).scalars().all()
    assert candidate.default_score is not None
    labels = await queries.get_tag_names_for_candidate(db_session, candidate.candidate_id)
    signals = await queries.get_tag_names_for_candidate(db_session, candidate.candidate_id, signals=True)
    assert labels[:2] == ["sales-rank", "hot-list"]
    assert signals == ["hot-product", "shopee-validated"]

    (database_id, properties) = deps.notion.pages[0]
    assert database_id == "db-1"
    assert properties["Signals"]["rich_text"][0]["text"]["content"] == "hot-product, shopee-validated"


@pytest.mark.asyncio
async def test_dry_run_skips_sync(db_session, full_config):
    deps = _deps()
    result = await run_pipeline(db_session, PipelineOptions(region="th", dry_run=True), full_config, deps)

    assert result.scored == 1
    assert result.synced == 0
    assert deps.notion.pages == []
    assert len(await queries.get_unsynced_candidates(db_session)) == 1


@pytest.mark.asyncio
async def test_missing_notion_skips_sync(db_session, full_config):
    result = await run_pipeline(db_session, PipelineOptions(region="th"), full_config, _deps(notion=None))
    assert result.scored == 1
    assert result.synced == 0


@pytest.mark.asyncio
async def test_failing_source_is_isolated(db_session, full_config):
    collected, deduplicated = await collect_products(
        db_session, PipelineOptions(region="th"), full_config, _deps()
    )
    assert (collected, deduplicated) == (4, 1)
    assert len(await queries.get_latest_snapshot_rows(db_session)) == 3


@pytest.mark.asyncio
async def test_skip_scrape_uses_stored_products(db_session, full_config):
    await queries.store_discovered_product(db_session, _discovered("Stored", "saleslist", 300))
    await db_session.commit()

    options = PipelineOptions(region="th", skip_scrape=True)
    result = await run_pipeline(db_session, options, full_config, _deps(scraper=None, notion=None))

    assert result.collected == 0
    assert result.queued == 1
    assert result.detailed == 0
    assert result.enriched == 1
    assert result.scored == 1


@pytest.mark.asyncio
async def test_failed_detail_scrape_is_retried_later(db_session, full_config):
    deps = _deps(scraper=FakeScraper(fail_detail=True), notion=None)
    result = await run_pipeline(db_session, PipelineOptions(region="th"), full_config, deps)

    assert result.detailed == 0
    (entry,) = (await db_session.execute(select(ScrapeQueueEntry))).scalars().all()
    assert entry.status == "pending"
    assert entry.retry_count == 1
    assert (await db_session.execute(select(ProductDetail))).scalars().all() == []


@pytest.mark.asyncio
async def test_post_filter_drops_low_margin(db_session, full_config):
    class ThinMarginCj(FakeCj):
        async def search_product(self, keyword, shopee_price):
            cost = await super().search_product(keyword, shopee_price)
            return cost.model_copy(update={"profit_margin": 0.1})

    result = await run_pipeline(
        db_session, PipelineOptions(region="th"), full_config, _deps(cj=ThinMarginCj(), notion=None)
    )

    assert result.post_filtered == 1
    assert result.scored == 0


def test_result_to_dict():
    result = PipelineResult(collected=5, deduplicated=2, queued=3, synced=1)
    assert result.to_dict() == {
        "phaseA": {"collected": 5, "deduplicated": 2},
        "phaseB": {"preFiltered": 0, "queued": 3},
        "phaseC": {"detailed": 0, "enriched": 0},
        "phaseD": {"postFiltered": 0, "labeled": 0, "scored": 0},
        "phaseE": {"synced": 1},
    }
