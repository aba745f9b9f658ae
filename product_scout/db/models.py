"""SQLAlchemy database models."""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from product_scout.utils.dates import utcnow


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Product(Base):
    """A product discovered on the analytics site."""

    __tablename__ = "products"

    product_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    canonical_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    fastmoss_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    shop_name: Mapped[str] = mapped_column(Text, nullable=False)
    country: Mapped[str] = mapped_column(String(8), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    subcategory: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )

    snapshots: Mapped[list["ProductSnapshot"]] = relationship(
        "ProductSnapshot", back_populates="product", cascade="all, delete-orphan"
    )
    detail: Mapped[Optional["ProductDetail"]] = relationship(
        "ProductDetail", back_populates="product", cascade="all, delete-orphan", uselist=False
    )
    enrichments: Mapped[list["ProductEnrichment"]] = relationship(
        "ProductEnrichment", back_populates="product", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("product_name", "shop_name", "country", name="uq_product_name_shop_country"),
    )


class ProductSnapshot(Base):
    """Per-day, per-source sales metrics for a product."""

    __tablename__ = "product_snapshots"

    snapshot_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.product_id"), nullable=False, index=True
    )
    scraped_at: Mapped[date] = mapped_column(Date, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)  # saleslist, hotlist, search, ...
    rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    units_sold: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sales_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    growth_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_units_sold: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_sales_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    commission_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    creator_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    video_views: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    video_likes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    video_comments: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    creator_conversion_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    product: Mapped["Product"] = relationship("Product", back_populates="snapshots")

    __table_args__ = (
        UniqueConstraint("product_id", "scraped_at", "source", name="uq_snapshot_product_day_source"),
    )


class ProductDetail(Base):
    """Latest detail-page scrape for a product (one row per product)."""

    __tablename__ = "product_details"

    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.product_id"), primary_key=True
    )
    fastmoss_id: Mapped[str] = mapped_column(String(64), nullable=False)
    hot_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    popularity_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    price_usd: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    commission_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    review_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    listed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    stock_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    creator_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    video_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    live_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    channel_video_pct: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    channel_live_pct: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    channel_other_pct: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    voc_positive: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON list of strings
    voc_negative: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON list of strings
    similar_product_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    scraped_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    product: Mapped["Product"] = relationship("Product", back_populates="detail")


class ProductEnrichment(Base):
    """Marketplace, sourcing or trend data attached to a product."""

    __tablename__ = "product_enrichments"

    enrichment_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.product_id"), nullable=False, index=True
    )
    source: Mapped[str] = mapped_column(String(32), nullable=False)  # shopee, cj, google-trends
    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sold_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    profit_margin: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    extra: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON object
    scraped_at: Mapped[date] = mapped_column(Date, nullable=False)

    product: Mapped["Product"] = relationship("Product", back_populates="enrichments")

    __table_args__ = (
        UniqueConstraint("product_id", "source", "scraped_at", name="uq_enrichment_product_source_day"),
    )


class Shop(Base):
    """A TikTok shop."""

    __tablename__ = "shops"

    shop_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fastmoss_shop_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    shop_name: Mapped[str] = mapped_column(Text, nullable=False)
    country: Mapped[str] = mapped_column(String(8), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    shop_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)  # local, cross-border
    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )

    snapshots: Mapped[list["ShopSnapshot"]] = relationship(
        "ShopSnapshot", back_populates="shop", cascade="all, delete-orphan"
    )


class ShopSnapshot(Base):
    """Per-day, per-source metrics for a shop."""

    __tablename__ = "shop_snapshots"

    snapshot_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    shop_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shops.shop_id"), nullable=False, index=True
    )
    scraped_at: Mapped[date] = mapped_column(Date, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    total_sales: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_revenue: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    active_products: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    listed_products: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    creator_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    positive_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    ship_rate_48h: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    national_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    category_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sales_growth_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    new_product_sales_ratio: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    shop: Mapped["Shop"] = relationship("Shop", back_populates="snapshots")

    __table_args__ = (
        UniqueConstraint("shop_id", "scraped_at", "source", name="uq_shop_snapshot_day_source"),
    )


class Candidate(Base):
    """A scored product, one row per product."""

    __tablename__ = "candidates"

    candidate_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.product_id"), nullable=False, unique=True
    )
    default_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    trending_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    blue_ocean_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    high_margin_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    shop_copy_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    synced_to_notion: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )

    product: Mapped["Product"] = relationship("Product")
    score_details: Mapped[list["CandidateScoreDetail"]] = relationship(
        "CandidateScoreDetail", back_populates="candidate", cascade="all, delete-orphan"
    )


class CandidateScoreDetail(Base):
    """Per-dimension audit row for a candidate's profile score."""

    __tablename__ = "candidate_score_details"

    candidate_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("candidates.candidate_id"), primary_key=True
    )
    profile: Mapped[str] = mapped_column(String(64), primary_key=True)
    dimension: Mapped[str] = mapped_column(String(64), primary_key=True)
    raw_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    normalized_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    weight: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    weighted_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    candidate: Mapped["Candidate"] = relationship("Candidate", back_populates="score_details")


class Tag(Base):
    """A (tag_type, tag_name) label."""

    __tablename__ = "tags"

    tag_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tag_type: Mapped[str] = mapped_column(String(16), nullable=False)  # discovery, strategy, signal, manual
    tag_name: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (UniqueConstraint("tag_type", "tag_name", name="uq_tag_type_name"),)


class CandidateTag(Base):
    """Link between a candidate and a tag."""

    __tablename__ = "candidate_tags"

    candidate_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("candidates.candidate_id"), primary_key=True
    )
    tag_id: Mapped[int] = mapped_column(Integer, ForeignKey("tags.tag_id"), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    created_by: Mapped[str] = mapped_column(String(32), default="system", nullable=False)

    tag: Mapped["Tag"] = relationship("Tag")


class ScrapeQueueEntry(Base):
    """One scheduled detail-scrape target."""

    __tablename__ = "scrape_queue"

    queue_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False)  # product_detail
    target_id: Mapped[str] = mapped_column(String(64), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=2, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), default="pending", nullable=False, index=True
    )  # pending, done, failed
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_scraped_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
