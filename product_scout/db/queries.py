"""Insert, upsert and read helpers over the ORM models.

Helpers flush but never commit; the caller owns the transaction.
"""

import json
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from product_scout.core.scorer import ScoreDetail
from product_scout.db.models import (
    Base,
    Candidate,
    CandidateScoreDetail,
    CandidateTag,
    Product,
    ProductDetail,
    ProductEnrichment,
    ProductSnapshot,
    ScrapeQueueEntry,
    Shop,
    ShopSnapshot,
    Tag,
)
from product_scout.schemas.items import (
    DiscoveredProduct,
    ProductDetailData,
    ShopInfo,
    ShopSnapshotData,
)

logger = logging.getLogger(__name__)

SCORE_COLUMNS = {
    "default_score": Candidate.default_score,
    "trending_score": Candidate.trending_score,
    "blue_ocean_score": Candidate.blue_ocean_score,
    "high_margin_score": Candidate.high_margin_score,
    "shop_copy_score": Candidate.shop_copy_score,
}

# Scoring profile key -> candidates column
PROFILE_SCORE_COLUMNS = {
    "default": "default_score",
    "trending": "trending_score",
    "blueOcean": "blue_ocean_score",
    "highMargin": "high_margin_score",
    "shopCopy": "shop_copy_score",
}

SNAPSHOT_FIELDS = (
    "rank",
    "units_sold",
    "sales_amount",
    "growth_rate",
    "total_units_sold",
    "total_sales_amount",
    "commission_rate",
    "creator_count",
    "video_views",
    "video_likes",
    "video_comments",
    "creator_conversion_rate",
)


@dataclass
class CandidateWithProduct:
    """A candidate row joined with its product."""

    candidate: Candidate
    product: Product


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

async def upsert_product(
    db: AsyncSession,
    product_name: str,
    shop_name: str,
    country: str,
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    fastmoss_id: Optional[str] = None,
) -> int:
    """Insert a product keyed on (name, shop, country) and return its id.

    An existing row keeps its values; only missing category and fastmoss_id
    are filled in.
    """
    result = await db.execute(
        select(Product).where(
            Product.product_name == product_name,
            Product.shop_name == shop_name,
            Product.country == country,
        )
    )
    product = result.scalar_one_or_none()

    if product is None:
        product = Product(
            product_name=product_name,
            shop_name=shop_name,
            country=country,
            category=category,
            subcategory=subcategory,
            fastmoss_id=fastmoss_id,
        )
        db.add(product)
        await db.flush()
        return product.product_id

    if product.category is None and category:
        product.category = category
    if product.fastmoss_id is None and fastmoss_id:
        product.fastmoss_id = fastmoss_id
    return product.product_id


async def insert_product_snapshot(
    db: AsyncSession,
    product_id: int,
    item: DiscoveredProduct,
) -> bool:
    """Insert a snapshot unless one exists for (product, day, source)."""
    result = await db.execute(
        select(ProductSnapshot.snapshot_id).where(
            ProductSnapshot.product_id == product_id,
            ProductSnapshot.scraped_at == item.scraped_at,
            ProductSnapshot.source == item.source,
        )
    )
    if result.scalar_one_or_none() is not None:
        return False

    db.add(
        ProductSnapshot(
            product_id=product_id,
            scraped_at=item.scraped_at,
            source=item.source,
            **{name: getattr(item, name) for name in SNAPSHOT_FIELDS},
        )
    )
    await db.flush()
    return True


async def store_discovered_product(db: AsyncSession, item: DiscoveredProduct) -> int:
    """Upsert the product and record its snapshot."""
    product_id = await upsert_product(
        db,
        product_name=item.product_name,
        shop_name=item.shop_name,
        country=item.country,
        category=item.category,
        fastmoss_id=item.fastmoss_id,
    )
    await insert_product_snapshot(db, product_id, item)
    return product_id


async def upsert_product_detail(
    db: AsyncSession,
    product_id: int,
    detail: ProductDetailData,
) -> ProductDetail:
    """Insert or replace the single detail row of a product."""
    values = detail.model_dump(exclude={"voc_positive", "voc_negative"})
    values["voc_positive"] = (
        json.dumps(detail.voc_positive, ensure_ascii=False)
        if detail.voc_positive is not None
        else None
    )
    values["voc_negative"] = (
        json.dumps(detail.voc_negative, ensure_ascii=False)
        if detail.voc_negative is not None
        else None
    )

    row = await db.get(ProductDetail, product_id)
    if row is None:
        row = ProductDetail(product_id=product_id, **values)
        db.add(row)
    else:
        for key, value in values.items():
            setattr(row, key, value)
    await db.flush()
    return row


async def insert_product_enrichment(
    db: AsyncSession,
    product_id: int,
    source: str,
    scraped_at: date,
    price: Optional[float] = None,
    sold_count: Optional[int] = None,
    rating: Optional[float] = None,
    profit_margin: Optional[float] = None,
    extra: Optional[dict] = None,
) -> bool:
    """Insert an enrichment unless one exists for (product, source, day)."""
    result = await db.execute(
        select(ProductEnrichment.enrichment_id).where(
            ProductEnrichment.product_id == product_id,
            ProductEnrichment.source == source,
            ProductEnrichment.scraped_at == scraped_at,
        )
    )
    if result.scalar_one_or_none() is not None:
        return False

    db.add(
        ProductEnrichment(
            product_id=product_id,
            source=source,
            price=price,
            sold_count=sold_count,
            rating=rating,
            profit_margin=profit_margin,
            extra=json.dumps(extra) if extra is not None else None,
            scraped_at=scraped_at,
        )
    )
    await db.flush()
    return True


async def get_latest_snapshot(db: AsyncSession, product_id: int) -> Optional[ProductSnapshot]:
    result = await db.execute(
        select(ProductSnapshot)
        .where(ProductSnapshot.product_id == product_id)
        .order_by(ProductSnapshot.snapshot_id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_latest_enrichment(
    db: AsyncSession,
    product_id: int,
    source: str,
) -> Optional[ProductEnrichment]:
    result = await db.execute(
        select(ProductEnrichment)
        .where(
            ProductEnrichment.product_id == product_id,
            ProductEnrichment.source == source,
        )
        .order_by(ProductEnrichment.enrichment_id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_latest_snapshot_rows(db: AsyncSession) -> list[tuple[Product, Optional[ProductSnapshot]]]:
    """Every product paired with its latest snapshot (None when it has none)."""
    latest = (
        select(
            ProductSnapshot.product_id,
            func.max(ProductSnapshot.snapshot_id).label("snapshot_id"),
        )
        .group_by(ProductSnapshot.product_id)
        .subquery()
    )
    result = await db.execute(
        select(Product, ProductSnapshot)
        .outerjoin(latest, latest.c.product_id == Product.product_id)
        .outerjoin(ProductSnapshot, ProductSnapshot.snapshot_id == latest.c.snapshot_id)
        .order_by(Product.product_id)
    )
    return [(product, snapshot) for product, snapshot in result.all()]


async def get_snapshot_sources(db: AsyncSession, product_id: int) -> list[str]:
    """Distinct discovery sources for a product, in first-seen order."""
    result = await db.execute(
        select(ProductSnapshot.source, func.min(ProductSnapshot.snapshot_id).label("first"))
        .where(ProductSnapshot.product_id == product_id)
        .group_by(ProductSnapshot.source)
        .order_by("first")
    )
    return [row.source for row in result]


async def get_max_units_sold(db: AsyncSession) -> int:
    """Largest units_sold over all snapshots (0 when there are none)."""
    result = await db.execute(select(func.max(ProductSnapshot.units_sold)))
    return result.scalar() or 0


# ---------------------------------------------------------------------------
# Shops
# ---------------------------------------------------------------------------

async def upsert_shop(db: AsyncSession, shop: ShopInfo) -> int:
    """Insert a shop keyed on its FastMoss id and return shop_id."""
    result = await db.execute(
        select(Shop).where(Shop.fastmoss_shop_id == shop.fastmoss_shop_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = Shop(**shop.model_dump())
        db.add(row)
        await db.flush()
    elif row.shop_type is None and shop.shop_type:
        row.shop_type = shop.shop_type
    return row.shop_id


async def insert_shop_snapshot(
    db: AsyncSession,
    shop_id: int,
    snapshot: ShopSnapshotData,
) -> bool:
    """Insert a shop snapshot unless one exists for (shop, day, source)."""
    result = await db.execute(
        select(ShopSnapshot.snapshot_id).where(
            ShopSnapshot.shop_id == shop_id,
            ShopSnapshot.scraped_at == snapshot.scraped_at,
            ShopSnapshot.source == snapshot.source,
        )
    )
    if result.scalar_one_or_none() is not None:
        return False

    db.add(ShopSnapshot(shop_id=shop_id, **snapshot.model_dump()))
    await db.flush()
    return True


async def get_top_shops(db: AsyncSession, limit: int) -> list[Shop]:
    """Shops ordered by their best recorded total_sales."""
    best = func.max(ShopSnapshot.total_sales)
    result = await db.execute(
        select(Shop)
        .join(ShopSnapshot, ShopSnapshot.shop_id == Shop.shop_id)
        .where(Shop.fastmoss_shop_id != "")
        .group_by(Shop.shop_id)
        .order_by(best.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_shop_for_product(db: AsyncSession, product: Product) -> Optional[Shop]:
    """Match a product to a known shop by name and country."""
    result = await db.execute(
        select(Shop)
        .where(Shop.shop_name == product.shop_name, Shop.country == product.country)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_latest_shop_snapshot(db: AsyncSession, shop_id: int) -> Optional[ShopSnapshot]:
    result = await db.execute(
        select(ShopSnapshot)
        .where(ShopSnapshot.shop_id == shop_id)
        .order_by(ShopSnapshot.snapshot_id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Candidates and tags
# ---------------------------------------------------------------------------

async def upsert_candidate(
    db: AsyncSession,
    product_id: int,
    scores: dict[str, Optional[float]],
) -> int:
    """Insert or update a product's candidate row and return candidate_id.

    Args:
        scores: Scoring profile key -> score; keys without a column are ignored
    """
    result = await db.execute(select(Candidate).where(Candidate.product_id == product_id))
    candidate = result.scalar_one_or_none()
    if candidate is None:
        candidate = Candidate(product_id=product_id)
        db.add(candidate)

    for profile, column in PROFILE_SCORE_COLUMNS.items():
        setattr(candidate, column, scores.get(profile))

    await db.flush()
    return candidate.candidate_id


async def replace_score_details(
    db: AsyncSession,
    candidate_id: int,
    details: Sequence[ScoreDetail],
) -> None:
    """Replace the audit rows of a candidate."""
    await db.execute(
        delete(CandidateScoreDetail).where(CandidateScoreDetail.candidate_id == candidate_id)
    )
    for detail in details:
        db.add(
            CandidateScoreDetail(
                candidate_id=candidate_id,
                profile=detail.profile,
                dimension=detail.dimension,
                raw_value=detail.raw_value,
                normalized_value=detail.normalized_value,
                weight=detail.weight,
                weighted_score=detail.weighted_score,
            )
        )
    await db.flush()


async def upsert_tag(db: AsyncSession, tag_type: str, tag_name: str) -> int:
    result = await db.execute(
        select(Tag).where(Tag.tag_type == tag_type, Tag.tag_name == tag_name)
    )
    tag = result.scalar_one_or_none()
    if tag is None:
        tag = Tag(tag_type=tag_type, tag_name=tag_name)
        db.add(tag)
        await db.flush()
    return tag.tag_id


async def add_candidate_tag(
    db: AsyncSession,
    candidate_id: int,
    tag_id: int,
    created_by: str = "system",
) -> bool:
    """Link a tag to a candidate; returns False when already linked."""
    existing = await db.get(CandidateTag, (candidate_id, tag_id))
    if existing is not None:
        return False
    db.add(CandidateTag(candidate_id=candidate_id, tag_id=tag_id, created_by=created_by))
    await db.flush()
    return True


async def get_candidate_tags(db: AsyncSession, candidate_id: int) -> list[Tag]:
    result = await db.execute(
        select(Tag)
        .join(CandidateTag, CandidateTag.tag_id == Tag.tag_id)
        .where(CandidateTag.candidate_id == candidate_id)
        .order_by(CandidateTag.created_at, Tag.tag_id)
    )
    return list(result.scalars().all())


async def get_tag_names_for_candidate(
    db: AsyncSession,
    candidate_id: int,
    signals: bool = False,
) -> list[str]:
    """Tag names of a candidate: signal tags when ``signals``, all other tags otherwise."""
    condition = Tag.tag_type == "signal" if signals else Tag.tag_type != "signal"
    result = await db.execute(
        select(Tag.tag_name)
        .join(CandidateTag, CandidateTag.tag_id == Tag.tag_id)
        .where(CandidateTag.candidate_id == candidate_id, condition)
        .order_by(CandidateTag.created_at, Tag.tag_id)
    )
    return list(result.scalars().all())


async def get_unsynced_candidates(db: AsyncSession) -> list[CandidateWithProduct]:
    result = await db.execute(
        select(Candidate, Product)
        .join(Product, Product.product_id == Candidate.product_id)
        .where(Candidate.synced_to_notion.is_(False))
        .order_by(Candidate.candidate_id)
    )
    return [CandidateWithProduct(candidate=c, product=p) for c, p in result.all()]


async def get_top_candidates(
    db: AsyncSession,
    limit: int,
    sort_by: str = "default_score",
) -> list[CandidateWithProduct]:
    """Top candidates by one score column; unknown columns fall back to default_score."""
    column = SCORE_COLUMNS.get(sort_by, Candidate.default_score)
    result = await db.execute(
        select(Candidate, Product)
        .join(Product, Product.product_id == Candidate.product_id)
        .order_by(column.desc().nulls_last(), Candidate.candidate_id)
        .limit(limit)
    )
    return [CandidateWithProduct(candidate=c, product=p) for c, p in result.all()]


async def mark_synced(db: AsyncSession, candidate_id: int) -> None:
    await db.execute(
        update(Candidate)
        .where(Candidate.candidate_id == candidate_id)
        .values(synced_to_notion=True)
    )


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

async def count_rows(db: AsyncSession) -> dict[str, int]:
    """Row count per table."""
    counts: dict[str, int] = {}
    for table in Base.metadata.sorted_tables:
        result = await db.execute(select(func.count()).select_from(table))
        counts[table.name] = result.scalar() or 0
    return counts


async def queue_status_counts(db: AsyncSession) -> dict[str, int]:
    result = await db.execute(
        select(ScrapeQueueEntry.status, func.count(ScrapeQueueEntry.queue_id))
        .group_by(ScrapeQueueEntry.status)
    )
    return {status: count for status, count in result.all()}


# ---------------------------------------------------------------------------
# Scrape queue
# ---------------------------------------------------------------------------

async def get_queued_product_ids(db: AsyncSession, target_type: str = "product_detail") -> list[int]:
    """Distinct products that have ever been queued for a detail scrape."""
    result = await db.execute(
        select(ScrapeQueueEntry.target_id)
        .where(ScrapeQueueEntry.target_type == target_type)
        .distinct()
    )
    ids = set()
    for target_id in result.scalars().all():
        try:
            ids.add(int(target_id))
        except ValueError:
            logger.debug(f"Ignoring non-numeric queue target {target_id!r}")
    return sorted(ids)
