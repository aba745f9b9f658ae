"""Convert enrichment client results into product_enrichments rows."""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from product_scout.schemas.items import CjCost, ShopeeProduct

SOURCE_SHOPEE = "shopee"
SOURCE_CJ = "cj"
SOURCE_GOOGLE_TRENDS = "google-trends"


@dataclass
class EnrichmentRecord:
    """Arguments for queries.insert_product_enrichment."""

    product_id: int
    source: str
    scraped_at: date
    price: Optional[float] = None
    sold_count: Optional[int] = None
    rating: Optional[float] = None
    profit_margin: Optional[float] = None
    extra: Optional[dict] = field(default=None)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "source": self.source,
            "scraped_at": self.scraped_at,
            "price": self.price,
            "sold_count": self.sold_count,
            "rating": self.rating,
            "profit_margin": self.profit_margin,
            "extra": self.extra,
        }


def shopee_to_enrichment(shopee: ShopeeProduct, product_id: int) -> EnrichmentRecord:
    """Shopee listing -> enrichment; listing identity goes into extra."""
    return EnrichmentRecord(
        product_id=product_id,
        source=SOURCE_SHOPEE,
        scraped_at=shopee.updated_at,
        price=shopee.price,
        sold_count=shopee.sold_count,
        rating=shopee.rating,
        extra={
            "shopeeProductId": shopee.product_id,
            "title": shopee.title,
            "shopeeUrl": shopee.shopee_url,
        },
    )


def cj_to_enrichment(cj: CjCost, product_id: int, scraped_at: Optional[date] = None) -> EnrichmentRecord:
    """CJ sourcing cost -> enrichment carrying the computed margin."""
    return EnrichmentRecord(
        product_id=product_id,
        source=SOURCE_CJ,
        scraped_at=scraped_at or cj.updated_at,
        price=cj.cj_price,
        profit_margin=cj.profit_margin,
        extra={
            "cjProductId": cj.cj_product_id,
            "cjUrl": cj.cj_url,
            "shippingCost": cj.shipping_cost,
        },
    )


def trend_to_enrichment(trend_status: str, product_id: int, scraped_at: date) -> EnrichmentRecord:
    return EnrichmentRecord(
        product_id=product_id,
        source=SOURCE_GOOGLE_TRENDS,
        scraped_at=scraped_at,
        extra={"trendStatus": trend_status},
    )
