"""Typed records produced by the scrapers and enrichment clients."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


class DiscoveredProduct(BaseModel):
    """One product row from a discovery list (sales rank, hot list, search, ...)."""

    product_name: str = Field(min_length=1)
    shop_name: str = "unknown"
    country: str
    category: Optional[str] = None
    fastmoss_id: Optional[str] = None
    source: str
    scraped_at: date
    rank: Optional[int] = None
    units_sold: Optional[int] = Field(None, ge=0)
    sales_amount: Optional[float] = Field(None, ge=0)
    growth_rate: Optional[float] = None
    total_units_sold: Optional[int] = Field(None, ge=0)
    total_sales_amount: Optional[float] = Field(None, ge=0)
    commission_rate: Optional[float] = Field(None, ge=0, le=1)
    creator_count: Optional[int] = Field(None, ge=0)
    video_views: Optional[int] = Field(None, ge=0)
    video_likes: Optional[int] = Field(None, ge=0)
    video_comments: Optional[int] = Field(None, ge=0)
    creator_conversion_rate: Optional[float] = None


class ShopInfo(BaseModel):
    fastmoss_shop_id: str
    shop_name: str
    country: str
    category: Optional[str] = None
    shop_type: Optional[str] = None  # local, cross-border


class ShopSnapshotData(BaseModel):
    scraped_at: date
    source: str
    total_sales: Optional[int] = None
    total_revenue: Optional[float] = None
    active_products: Optional[int] = None
    listed_products: Optional[int] = None
    creator_count: Optional[int] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    positive_rate: Optional[float] = None
    ship_rate_48h: Optional[float] = None
    national_rank: Optional[int] = None
    category_rank: Optional[int] = None
    sales_growth_rate: Optional[float] = None
    new_product_sales_ratio: Optional[float] = None


class DiscoveredShop(BaseModel):
    shop: ShopInfo
    snapshot: ShopSnapshotData


class ShopDetail(DiscoveredShop):
    """A shop page together with the products listed on it."""

    products: list[DiscoveredProduct] = Field(default_factory=list)


class ProductDetailData(BaseModel):
    """Fields scraped from a product's detail page."""

    fastmoss_id: str
    hot_index: Optional[int] = None
    popularity_index: Optional[int] = None
    price: Optional[float] = None
    price_usd: Optional[float] = None
    commission_rate: Optional[float] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    review_count: Optional[int] = None
    listed_at: Optional[datetime] = None
    stock_status: Optional[str] = None
    creator_count: Optional[int] = None
    video_count: Optional[int] = None
    live_count: Optional[int] = None
    channel_video_pct: Optional[float] = None
    channel_live_pct: Optional[float] = None
    channel_other_pct: Optional[float] = None
    voc_positive: Optional[list[str]] = None
    voc_negative: Optional[list[str]] = None
    similar_product_count: Optional[int] = None
    scraped_at: datetime


class ShopeeProduct(BaseModel):
    product_id: int
    title: str
    price: float = Field(ge=0)
    sold_count: int = Field(ge=0)
    rating: float = Field(ge=0, le=5)
    shopee_url: str
    updated_at: date


class CjCost(BaseModel):
    """Sourcing cost for a product and the margin against a marketplace price."""

    cj_product_id: str
    cj_price: float = Field(ge=0)
    shipping_cost: float = Field(ge=0)
    profit_margin: float
    cj_url: str
    updated_at: date
