"""Assemble scoring bundles and signal records from persisted product state."""

import json
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from product_scout.core.enrichment import SOURCE_CJ, SOURCE_GOOGLE_TRENDS, SOURCE_SHOPEE
from product_scout.core.scorer import TREND_LEVELS, ScoringInput
from product_scout.db import queries
from product_scout.db.models import Product, ProductDetail
from product_scout.utils.dates import days_between, utcnow

logger = logging.getLogger(__name__)

COMPETITION_CAP = 100


def compute_voc_positive_rate(
    voc_positive: Optional[str],
    voc_negative: Optional[str],
) -> Optional[float]:
    """
    Share of positive voice-of-customer points.

    Args:
        voc_positive: JSON list of positive points, or None when not scraped
        voc_negative: JSON list of negative points, or None when not scraped

    Returns:
        positive / (positive + negative); 1.0 when only an empty positive list
        was scraped, 0.0 when only an empty negative list was; None when
        nothing usable is available
    """
    has_positive = voc_positive is not None
    has_negative = voc_negative is not None
    if not has_positive and not has_negative:
        return None

    try:
        positive = len(json.loads(voc_positive)) if has_positive else 0
        negative = len(json.loads(voc_negative)) if has_negative else 0
    except (TypeError, ValueError):
        logger.debug("Unparseable VOC lists, ignoring")
        return None

    total = positive + negative
    if total > 0:
        return positive / total
    if has_positive and not has_negative:
        return 1.0
    if has_negative and not has_positive:
        return 0.0
    return None


def parse_trend_status(extra: Optional[str]) -> Optional[str]:
    """Read trendStatus from a google-trends enrichment's extra JSON."""
    if not extra:
        return None
    try:
        status = json.loads(extra).get("trendStatus")
    except (AttributeError, ValueError):
        return None
    return status if status in TREND_LEVELS else None


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


async def build_scoring_input(
    db: AsyncSession,
    product_id: int,
    max_sales_volume: float,
    now: Optional[datetime] = None,
) -> ScoringInput:
    """Gather the raw signals of one product into a ScoringInput."""
    now = now or utcnow()

    product = await db.get(Product, product_id)
    snapshot = await queries.get_latest_snapshot(db, product_id)
    detail = await db.get(ProductDetail, product_id)
    shopee = await queries.get_latest_enrichment(db, product_id, SOURCE_SHOPEE)
    cj = await queries.get_latest_enrichment(db, product_id, SOURCE_CJ)
    trends = await queries.get_latest_enrichment(db, product_id, SOURCE_GOOGLE_TRENDS)

    shop_snapshot = None
    if product is not None:
        shop = await queries.get_shop_for_product(db, product)
        if shop is not None:
            shop_snapshot = await queries.get_latest_shop_snapshot(db, shop.shop_id)

    bundle = ScoringInput(max_sales_volume=max_sales_volume)

    if snapshot is not None:
        bundle.sales_volume = snapshot.units_sold
        bundle.sales_growth_rate = snapshot.growth_rate
        bundle.creator_count = snapshot.creator_count
        bundle.video_views = snapshot.video_views
        bundle.creator_conversion_rate = snapshot.creator_conversion_rate
        bundle.commission_rate = snapshot.commission_rate
        # GMV per thousand views
        if snapshot.video_views and snapshot.total_sales_amount is not None:
            bundle.gpm = snapshot.total_sales_amount / snapshot.video_views * 1000

    if detail is not None:
        bundle.hot_index = detail.hot_index
        bundle.creator_count = _first_present(bundle.creator_count, detail.creator_count)
        bundle.commission_rate = _first_present(bundle.commission_rate, detail.commission_rate)
        bundle.voc_positive_rate = compute_voc_positive_rate(detail.voc_positive, detail.voc_negative)
        if detail.listed_at is not None:
            bundle.days_since_listed = days_between(detail.listed_at, now)
        if detail.similar_product_count is not None:
            bundle.competition_score = min(COMPETITION_CAP, detail.similar_product_count)

    if shopee is not None:
        bundle.shopee_validation = shopee.sold_count
    if cj is not None:
        bundle.profit_margin = cj.profit_margin
    if trends is not None:
        bundle.google_trends = parse_trend_status(trends.extra)

    bundle.price_point = _first_present(
        shopee.price if shopee is not None else None,
        detail.price_usd if detail is not None else None,
    )

    if shop_snapshot is not None:
        bundle.shop_sales = shop_snapshot.total_sales
        bundle.shop_rating = shop_snapshot.rating

    return bundle


async def build_signal_data(db: AsyncSession, product_id: int) -> dict[str, Any]:
    """Flat record of present values for the signal rule engine."""
    product = await db.get(Product, product_id)
    snapshot = await queries.get_latest_snapshot(db, product_id)
    detail = await db.get(ProductDetail, product_id)
    shopee = await queries.get_latest_enrichment(db, product_id, SOURCE_SHOPEE)
    cj = await queries.get_latest_enrichment(db, product_id, SOURCE_CJ)

    candidates: dict[str, Any] = {}
    if snapshot is not None:
        candidates.update(
            salesVolume=snapshot.units_sold,
            salesGrowthRate=snapshot.growth_rate,
            creatorCount=snapshot.creator_count,
            videoViews=snapshot.video_views,
            commissionRate=snapshot.commission_rate,
        )
    if detail is not None:
        candidates.update(
            hotIndex=detail.hot_index,
            priceUsd=detail.price_usd,
            rating=detail.rating,
            vocPositiveRate=compute_voc_positive_rate(detail.voc_positive, detail.voc_negative),
        )
    if shopee is not None:
        candidates.update(shopeeSoldCount=shopee.sold_count, shopeePrice=shopee.price)
    if cj is not None:
        candidates["profitMargin"] = cj.profit_margin

    if product is not None:
        shop = await queries.get_shop_for_product(db, product)
        if shop is not None:
            candidates["shopType"] = shop.shop_type

    return {key: value for key, value in candidates.items() if value is not None}


async def max_sales_volume(db: AsyncSession) -> int:
    """Batch-wide ceiling for the relative salesVolume dimension."""
    return await queries.get_max_units_sold(db)
