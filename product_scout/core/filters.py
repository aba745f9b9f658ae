"""Pre- and post-enrichment product filters."""

import logging
from dataclasses import dataclass
from typing import List, Optional, TypeVar

from product_scout.schemas.config import Filter

logger = logging.getLogger(__name__)


@dataclass
class PreFilterProduct:
    """Latest snapshot view of a product, before any external request."""

    product_id: int
    product_name: str
    category: Optional[str]
    units_sold: float = 0
    growth_rate: float = 0


@dataclass
class PostFilterProduct:
    """Enrichment view of a product; None means the source had no data."""

    product_id: int
    shopee_price: Optional[float] = None
    profit_margin: Optional[float] = None


PreT = TypeVar("PreT", bound=PreFilterProduct)
PostT = TypeVar("PostT", bound=PostFilterProduct)


def passes_pre_filter(product: PreFilterProduct, filters: Filter) -> bool:
    if product.units_sold < filters.min_units_sold:
        return False
    if product.growth_rate < filters.min_growth_rate:
        return False
    if product.category and product.category in filters.excluded_categories:
        return False
    return True


def pre_filter(products: List[PreT], filters: Filter) -> List[PreT]:
    """Keep products meeting the sales, growth and category thresholds."""
    kept = [p for p in products if passes_pre_filter(p, filters)]
    if len(kept) != len(products):
        logger.debug("Pre-filter removed %d of %d products", len(products) - len(kept), len(products))
    return kept


def passes_post_filter(product: PostFilterProduct, filters: Filter) -> bool:
    if product.shopee_price is not None:
        if product.shopee_price < filters.price.min or product.shopee_price > filters.price.max:
            return False
    if product.profit_margin is not None:
        if product.profit_margin < filters.profit_margin.min:
            return False
    return True


def post_filter(products: List[PostT], filters: Filter) -> List[PostT]:
    """Apply price range and margin floor, each only when its data is present."""
    kept = [p for p in products if passes_post_filter(p, filters)]
    if len(kept) != len(products):
        logger.debug("Post-filter removed %d of %d products", len(products) - len(kept), len(products))
    return kept
