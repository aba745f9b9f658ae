"""End-to-end discovery pipeline.

Phases:
    A. collect products and shops from every discovery source
    B. pre-filter and rebuild the scrape queue
    C. deep-mine queued products (detail page, Shopee, CJ, Google Trends)
    D. post-filter, score and tag
    E. sync new candidates to Notion
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from product_scout.core.enrichment import (
    SOURCE_CJ,
    SOURCE_GOOGLE_TRENDS,
    SOURCE_SHOPEE,
    cj_to_enrichment,
    shopee_to_enrichment,
    trend_to_enrichment,
)
from product_scout.core.filters import PostFilterProduct, PreFilterProduct, post_filter, pre_filter
from product_scout.core.inputs import build_scoring_input, build_signal_data, max_sales_volume
from product_scout.core.scorer import compute_scores
from product_scout.core.scrape_queue import TARGET_PRODUCT_DETAIL, QueueStatus, ScrapeQueueManager
from product_scout.core.sync import sync_to_notion
from product_scout.core.tagger import apply_discovery_tags, apply_signal_tags, apply_strategy_tags
from product_scout.db import queries
from product_scout.db.models import Product
from product_scout.logging_config import get_logger
from product_scout.metrics import (
    candidate_score,
    candidates_scored_total,
    pipeline_phase_duration_seconds,
    products_collected_total,
    source_failures_total,
)
from product_scout.schemas.config import FullConfig, SearchStrategy, get_filters_for_region
from product_scout.schemas.items import (
    CjCost,
    DiscoveredProduct,
    DiscoveredShop,
    ProductDetailData,
    ShopDetail,
    ShopeeProduct,
)
from product_scout.scrapers import parsers
from product_scout.utils.dates import utcnow

logger = logging.getLogger(__name__)

# Discovery list -> scraper method
PRODUCT_SOURCES = (
    (parsers.SOURCE_SALESLIST, "scrape_saleslist"),
    (parsers.SOURCE_NEW_PRODUCTS, "scrape_new_products"),
    (parsers.SOURCE_HOTLIST, "scrape_hotlist"),
    (parsers.SOURCE_HOTVIDEO, "scrape_hotvideo"),
)
SHOP_SOURCES = (parsers.SOURCE_SHOP_SALESLIST, parsers.SOURCE_SHOP_HOTLIST)


class DiscoveryScraper(Protocol):
    async def scrape_saleslist(self, region: str, category: Optional[str] = None, limit: Optional[int] = None) -> list[DiscoveredProduct]: ...

    async def scrape_new_products(self, region: str, category: Optional[str] = None, limit: Optional[int] = None) -> list[DiscoveredProduct]: ...

    async def scrape_hotlist(self, region: str, category: Optional[str] = None, limit: Optional[int] = None) -> list[DiscoveredProduct]: ...

    async def scrape_hotvideo(self, region: str, category: Optional[str] = None, limit: Optional[int] = None) -> list[DiscoveredProduct]: ...

    async def scrape_search(self, strategy: SearchStrategy, region: str, category: Optional[str] = None, limit: Optional[int] = None) -> list[DiscoveredProduct]: ...

    async def scrape_shop_list(self, source: str, region: str, category: Optional[str] = None, limit: Optional[int] = None) -> list[DiscoveredShop]: ...

    async def scrape_shop_detail(self, shop_id: str, country: str) -> Optional[ShopDetail]: ...

    async def scrape_product_detail(self, fastmoss_id: str) -> Optional[ProductDetailData]: ...


class MarketplaceSearch(Protocol):
    async def search(self, keyword: str, region: str, limit: int = 10) -> list[ShopeeProduct]: ...


class SourcingLookup(Protocol):
    async def search_product(self, keyword: str, shopee_price: float) -> Optional[CjCost]: ...


class TrendLookup(Protocol):
    async def get_trend_status(self, keyword: str, region: str) -> str: ...


class PageSink(Protocol):
    database_id: str

    async def create_page(self, database_id: str, properties: dict[str, Any]) -> dict[str, Any]: ...


@dataclass
class PipelineDependencies:
    """External collaborators; a None collaborator skips its step."""

    scraper: Optional[DiscoveryScraper] = None
    shopee: Optional[MarketplaceSearch] = None
    cj: Optional[SourcingLookup] = None
    trends: Optional[TrendLookup] = None
    notion: Optional[PageSink] = None
    queue: ScrapeQueueManager = field(default_factory=ScrapeQueueManager)


@dataclass
class PipelineOptions:
    region: str
    category: Optional[str] = None
    limit: Optional[int] = None
    dry_run: bool = False
    skip_scrape: bool = False
    strategy_threshold: float = 50.0
    shop_detail_limit: int = 5


@dataclass
class PipelineResult:
    """Per-phase counters of one run."""

    collected: int = 0
    deduplicated: int = 0
    pre_filtered: int = 0
    queued: int = 0
    detailed: int = 0
    enriched: int = 0
    post_filtered: int = 0
    labeled: int = 0
    scored: int = 0
    synced: int = 0

    def to_dict(self) -> dict:
        return {
            "phaseA": {"collected": self.collected, "deduplicated": self.deduplicated},
            "phaseB": {"preFiltered": self.pre_filtered, "queued": self.queued},
            "phaseC": {"detailed": self.detailed, "enriched": self.enriched},
            "phaseD": {
                "postFiltered": self.post_filtered,
                "labeled": self.labeled,
                "scored": self.scored,
            },
            "phaseE": {"synced": self.synced},
        }


async def _count_products(db: AsyncSession) -> int:
    result = await db.execute(select(func.count(Product.product_id)))
    return result.scalar() or 0


async def _store_shop(db: AsyncSession, discovered: DiscoveredShop) -> int:
    shop_id = await queries.upsert_shop(db, discovered.shop)
    await queries.insert_shop_snapshot(db, shop_id, discovered.snapshot)
    return shop_id


# ---------------------------------------------------------------------------
# Phase A: collection
# ---------------------------------------------------------------------------

async def collect_products(
    db: AsyncSession,
    options: PipelineOptions,
    config: FullConfig,
    deps: PipelineDependencies,
) -> tuple[int, int]:
    """
    Scrape every discovery source and persist what was found.

    Each source commits on its own; a failing source is logged and skipped.

    Returns:
        (collected, deduplicated)
    """
    scraper = deps.scraper
    if options.skip_scrape or scraper is None:
        logger.info("Skipping collection (skip_scrape or no scraper)")
        return 0, 0

    region, category, limit = options.region, options.category, options.limit
    before = await _count_products(db)
    collected = 0

    async def store_products(source: str, items: list[DiscoveredProduct]) -> None:
        nonlocal collected
        for item in items:
            await queries.store_discovered_product(db, item)
        await db.commit()
        collected += len(items)
        products_collected_total.labels(source=source).inc(len(items))
        logger.info(f"Collection: {source} collected {len(items)}")

    for source, method in PRODUCT_SOURCES:
        try:
            items = await getattr(scraper, method)(region, category, limit)
            await store_products(source, items)
        except Exception as e:
            await db.rollback()
            source_failures_total.labels(stage="collect", source=source).inc()
            logger.error(f"Collection: {source} failed: {e}", exc_info=True)

    for key, strategy in config.search_strategies.strategies.items():
        if strategy.region != region:
            continue
        try:
            items = await scraper.scrape_search(strategy, region, category, limit)
            await store_products(parsers.SOURCE_SEARCH, items)
        except Exception as e:
            await db.rollback()
            source_failures_total.labels(stage="collect", source=parsers.SOURCE_SEARCH).inc()
            logger.error(f"Collection: search '{key}' failed: {e}", exc_info=True)

    for source in SHOP_SOURCES:
        try:
            shops = await scraper.scrape_shop_list(source, region, category, limit)
            for discovered in shops:
                await _store_shop(db, discovered)
            await db.commit()
            logger.info(f"Collection: {source} collected {len(shops)} shops")
        except Exception as e:
            await db.rollback()
            source_failures_total.labels(stage="collect", source=source).inc()
            logger.error(f"Collection: {source} failed: {e}", exc_info=True)

    top_shops = [
        (shop.fastmoss_shop_id, shop.country)
        for shop in await queries.get_top_shops(db, options.shop_detail_limit)
    ]
    for fastmoss_shop_id, country in top_shops:
        try:
            detail = await scraper.scrape_shop_detail(fastmoss_shop_id, country)
            if detail is None:
                continue
            await _store_shop(db, detail)
            await store_products(parsers.SOURCE_SHOP_DETAIL, detail.products)
        except Exception as e:
            await db.rollback()
            source_failures_total.labels(stage="collect", source=parsers.SOURCE_SHOP_DETAIL).inc()
            logger.error(f"Collection: shop detail {fastmoss_shop_id} failed: {e}", exc_info=True)

    after = await _count_products(db)
    deduplicated = collected - (after - before)
    logger.info(f"Collection complete: {collected} collected, {deduplicated} deduplicated")
    return collected, deduplicated


# ---------------------------------------------------------------------------
# Phase B: pre-filter and queue
# ---------------------------------------------------------------------------

async def pre_filtered_product_ids(
    db: AsyncSession,
    config: FullConfig,
    region: str,
) -> tuple[int, list[int]]:
    """
    Apply the region's pre-filter to every product's latest snapshot.

    Returns:
        (removed, kept_product_ids)
    """
    filters = get_filters_for_region(config.rules, region)

    products = [
        PreFilterProduct(
            product_id=product.product_id,
            product_name=product.product_name,
            category=product.category,
            units_sold=(snapshot.units_sold or 0) if snapshot else 0,
            growth_rate=(snapshot.growth_rate or 0) if snapshot else 0,
        )
        for product, snapshot in await queries.get_latest_snapshot_rows(db)
    ]
    kept = pre_filter(products, filters)
    removed = len(products) - len(kept)
    logger.info(f"Pre-filter: {len(products)} -> {len(kept)} (removed {removed})")
    return removed, [p.product_id for p in kept]


async def build_detail_queue(
    db: AsyncSession,
    options: PipelineOptions,
    config: FullConfig,
    deps: PipelineDependencies,
    budget: Optional[int] = None,
) -> tuple[int, int]:
    """
    Returns:
        (pre_filtered, queued): products removed by the pre-filter and
        entries enqueued for deep mining
    """
    pre_filtered, eligible = await pre_filtered_product_ids(db, config, options.region)

    scraping = config.scraping()
    queued = await deps.queue.build_queue(
        db,
        scraping.daily_detail_budget if budget is None else budget,
        scraping.freshness,
        eligible_product_ids=eligible,
    )
    return pre_filtered, queued


# ---------------------------------------------------------------------------
# Phase C: deep mining
# ---------------------------------------------------------------------------

async def _enrich_product(
    db: AsyncSession,
    product_id: int,
    product_name: str,
    region: str,
    deps: PipelineDependencies,
) -> int:
    """Shopee, then CJ (needs a Shopee price), then Google Trends. Returns Shopee hits."""
    today = utcnow().date()
    enriched = 0
    shopee_price: Optional[float] = None

    if deps.shopee is not None:
        try:
            results = await deps.shopee.search(product_name, region, limit=1)
            if results:
                shopee_price = results[0].price
                record = shopee_to_enrichment(results[0], product_id)
                await queries.insert_product_enrichment(db, **record.to_dict())
                enriched += 1
        except Exception as e:
            source_failures_total.labels(stage="enrich", source=SOURCE_SHOPEE).inc()
            logger.error(f"Shopee enrichment failed for product {product_id}: {e}")

    if deps.cj is not None and shopee_price:
        try:
            cost = await deps.cj.search_product(product_name, shopee_price)
            if cost is not None:
                record = cj_to_enrichment(cost, product_id, today)
                await queries.insert_product_enrichment(db, **record.to_dict())
        except Exception as e:
            source_failures_total.labels(stage="enrich", source=SOURCE_CJ).inc()
            logger.error(f"CJ enrichment failed for product {product_id}: {e}")

    if deps.trends is not None:
        try:
            status = await deps.trends.get_trend_status(product_name, region)
            record = trend_to_enrichment(status, product_id, today)
            await queries.insert_product_enrichment(db, **record.to_dict())
        except Exception as e:
            source_failures_total.labels(stage="enrich", source=SOURCE_GOOGLE_TRENDS).inc()
            logger.error(f"Google Trends enrichment failed for product {product_id}: {e}")

    return enriched


async def deep_mine(
    db: AsyncSession,
    options: PipelineOptions,
    config: FullConfig,
    deps: PipelineDependencies,
) -> tuple[int, int]:
    """
    Work through the pending queue, consuming each entry as done or failed.

    Returns:
        (detailed, enriched)
    """
    scraping = config.scraping()
    targets = [
        (entry.queue_id, entry.target_type, entry.target_id)
        for entry in await deps.queue.get_next_targets(db, scraping.daily_detail_budget)
    ]

    detailed = 0
    enriched = 0
    for queue_id, target_type, target_id in targets:
        if target_type != TARGET_PRODUCT_DETAIL:
            continue

        try:
            product_id = int(target_id)
        except ValueError:
            logger.warning(f"Queue entry {queue_id} has invalid target {target_id!r}")
            await deps.queue.consume(db, queue_id, QueueStatus.FAILED)
            continue

        product = await db.get(Product, product_id)
        if product is None:
            logger.warning(f"Queue entry {queue_id} targets unknown product {product_id}")
            await deps.queue.consume(db, queue_id, QueueStatus.FAILED)
            continue
        product_name, fastmoss_id = product.product_name, product.fastmoss_id

        try:
            if fastmoss_id and deps.scraper is not None:
                detail = await deps.scraper.scrape_product_detail(fastmoss_id)
                if detail is not None:
                    await queries.upsert_product_detail(db, product_id, detail)
                    detailed += 1

            enriched += await _enrich_product(db, product_id, product_name, options.region, deps)
            await deps.queue.consume(db, queue_id, QueueStatus.DONE)
        except Exception as e:
            await db.rollback()
            source_failures_total.labels(stage="detail", source="fastmoss").inc()
            logger.error(f"Deep mining failed for product {product_id}: {e}", exc_info=True)
            await deps.queue.consume(db, queue_id, QueueStatus.FAILED)

    logger.info(f"Deep mining complete: {detailed} detailed, {enriched} enriched")
    return detailed, enriched


# ---------------------------------------------------------------------------
# Phase D: post-filter, score and tag
# ---------------------------------------------------------------------------

async def score_and_label(
    db: AsyncSession,
    options: PipelineOptions,
    config: FullConfig,
) -> tuple[int, int, int]:
    """
    Score every queued product that survives the post-filter.

    Returns:
        (post_filtered, labeled, scored)
    """
    filters = get_filters_for_region(config.rules, options.region)

    products = []
    for product_id in await queries.get_queued_product_ids(db):
        shopee = await queries.get_latest_enrichment(db, product_id, SOURCE_SHOPEE)
        cj = await queries.get_latest_enrichment(db, product_id, SOURCE_CJ)
        products.append(
            PostFilterProduct(
                product_id=product_id,
                shopee_price=shopee.price if shopee else None,
                profit_margin=cj.profit_margin if cj else None,
            )
        )
    kept = post_filter(products, filters)
    post_filtered = len(products) - len(kept)
    logger.info(f"Post-filter: {len(products)} -> {len(kept)} (removed {post_filtered})")

    max_sales = await max_sales_volume(db)
    labeled = 0
    scored = 0

    for item in kept:
        product_id = item.product_id
        try:
            bundle = await build_scoring_input(db, product_id, max_sales)
            result = compute_scores(bundle, config.scoring.scoring_profiles)

            candidate_id = await queries.upsert_candidate(db, product_id, result.scores)
            await queries.replace_score_details(db, candidate_id, result.details)

            sources = await queries.get_snapshot_sources(db, product_id)
            signal_data = await build_signal_data(db, product_id)
            tags = (
                apply_discovery_tags(sources)
                + apply_signal_tags(signal_data, config.signals)
                + apply_strategy_tags(result.scores, options.strategy_threshold)
            )
            for tag in tags:
                tag_id = await queries.upsert_tag(db, tag.tag_type.value, tag.tag_name)
                await queries.add_candidate_tag(db, candidate_id, tag_id)

            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error(f"Scoring failed for product {product_id}: {e}", exc_info=True)
            continue

        scored += 1
        labeled += len(tags)
        candidates_scored_total.inc()
        for profile, score in result.scores.items():
            if score is not None:
                candidate_score.labels(profile=profile).observe(score)

    logger.info(f"Scoring complete: {scored} scored, {labeled} tags applied")
    return post_filtered, labeled, scored


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

async def run_pipeline(
    db: AsyncSession,
    options: PipelineOptions,
    config: FullConfig,
    deps: PipelineDependencies,
) -> PipelineResult:
    """Run phases A to E in order and return their counters."""
    log = get_logger(__name__, region=options.region, category=options.category)
    log.info("Starting pipeline")
    result = PipelineResult()

    with pipeline_phase_duration_seconds.labels(phase="collect").time():
        result.collected, result.deduplicated = await collect_products(db, options, config, deps)

    with pipeline_phase_duration_seconds.labels(phase="queue").time():
        result.pre_filtered, result.queued = await build_detail_queue(db, options, config, deps)

    with pipeline_phase_duration_seconds.labels(phase="deep_mine").time():
        result.detailed, result.enriched = await deep_mine(db, options, config, deps)

    with pipeline_phase_duration_seconds.labels(phase="score").time():
        result.post_filtered, result.labeled, result.scored = await score_and_label(db, options, config)

    if options.dry_run:
        log.info("Dry run: skipping Notion sync")
    elif deps.notion is None:
        log.warning("Notion is not configured, skipping sync")
    else:
        with pipeline_phase_duration_seconds.labels(phase="sync").time():
            result.synced = await sync_to_notion(db, deps.notion)

    log.info(f"Pipeline complete: {result.to_dict()}")
    return result
