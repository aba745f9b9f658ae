"""Per-dimension normalizers mapping a raw signal onto a 0-100 scale.

Every normalizer is a pure, total function: missing or non-numeric input,
negative values and unknown dimensions all produce a number in [0, 100].
Scaling happens first, then clamping, then rounding half away from zero
to the nearest integer.
"""

import math
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from product_scout.utils.numbers import round_half_up, to_float


class Dimension(str, Enum):
    """Closed vocabulary of scoring dimensions."""

    SALES_VOLUME = "salesVolume"
    SALES_GROWTH_RATE = "salesGrowthRate"
    SHOPEE_VALIDATION = "shopeeValidation"
    PROFIT_MARGIN = "profitMargin"
    GOOGLE_TRENDS = "googleTrends"
    CREATOR_COUNT = "creatorCount"
    HOT_INDEX = "hotIndex"
    VOC = "voc"
    RECENCY = "recency"
    COMPETITION = "competition"
    VIDEO_VIEWS = "videoViews"
    CREATOR_CONVERSION_RATE = "creatorConversionRate"
    COMMISSION_RATE = "commissionRate"
    PRICE_POINT = "pricePoint"
    GPM = "gpm"
    SHOP_SALES = "shopSales"
    SHOP_RATING = "shopRating"

    @classmethod
    def lookup(cls, name: Any) -> Optional["Dimension"]:
        """Return the dimension for a config name, or None when unknown."""
        if isinstance(name, Dimension):
            return name
        try:
            return cls(name)
        except (ValueError, TypeError):
            return None


# Calibration constants
SHOPEE_SOLD_CEILING = 1_000
VIDEO_VIEWS_CEILING = 1_000_000
SHOP_SALES_CEILING = 10_000
CREATOR_COUNT_CEILING = 1_000
RECENCY_HORIZON_DAYS = 120
PRICE_SWEET_SPOT_CENTER = 20.0  # USD
PRICE_SWEET_SPOT_HALF_WIDTH = 15.0  # USD

MAX_SALES_VOLUME_KEY = "maxSalesVolume"

Normalizer = Callable[[float, Mapping[str, Any]], float]


def _relative_to_max(key: str) -> Normalizer:
    def normalize(raw: float, context: Mapping[str, Any]) -> float:
        maximum = to_float(context.get(key))
        if not maximum or maximum <= 0:
            return 0.0
        return raw / maximum * 100

    return normalize


def _linear_percentage(raw: float, context: Mapping[str, Any]) -> float:
    return raw * 100


def _log_scale(ceiling: float) -> Normalizer:
    def normalize(raw: float, context: Mapping[str, Any]) -> float:
        if raw <= 0:
            return 0.0
        return math.log10(raw) / math.log10(ceiling) * 100

    return normalize


def _inverse_log_scale(ceiling: float) -> Normalizer:
    def normalize(raw: float, context: Mapping[str, Any]) -> float:
        if raw <= 0:
            return 100.0
        return 100 - math.log10(raw + 1) / math.log10(ceiling + 1) * 100

    return normalize


def _pass_through(raw: float, context: Mapping[str, Any]) -> float:
    return raw


def _banded_trend(raw: float, context: Mapping[str, Any]) -> float:
    if raw >= 2:
        return 100.0
    if raw >= 1:
        return 50.0
    return 0.0


def _inverted(raw: float, context: Mapping[str, Any]) -> float:
    return 100 - raw


def _linear_decay(horizon_days: float) -> Normalizer:
    def normalize(raw: float, context: Mapping[str, Any]) -> float:
        if raw <= 0:
            return 100.0
        return 100 - (raw / horizon_days) * 100

    return normalize


def _sweet_spot(center: float, half_width: float) -> Normalizer:
    def normalize(raw: float, context: Mapping[str, Any]) -> float:
        if raw <= 0:
            return 0.0
        return 100 - abs(raw - center) / half_width * 50

    return normalize


def _rating_scale(raw: float, context: Mapping[str, Any]) -> float:
    return raw * 20


NORMALIZERS: dict[Dimension, Normalizer] = {
    Dimension.SALES_VOLUME: _relative_to_max(MAX_SALES_VOLUME_KEY),
    Dimension.SALES_GROWTH_RATE: _linear_percentage,
    Dimension.SHOPEE_VALIDATION: _log_scale(SHOPEE_SOLD_CEILING),
    Dimension.PROFIT_MARGIN: _linear_percentage,
    Dimension.GOOGLE_TRENDS: _banded_trend,
    Dimension.CREATOR_COUNT: _inverse_log_scale(CREATOR_COUNT_CEILING),
    Dimension.HOT_INDEX: _pass_through,
    Dimension.VOC: _linear_percentage,
    Dimension.RECENCY: _linear_decay(RECENCY_HORIZON_DAYS),
    Dimension.COMPETITION: _inverted,
    Dimension.VIDEO_VIEWS: _log_scale(VIDEO_VIEWS_CEILING),
    Dimension.CREATOR_CONVERSION_RATE: _linear_percentage,
    Dimension.COMMISSION_RATE: _linear_percentage,
    Dimension.PRICE_POINT: _sweet_spot(PRICE_SWEET_SPOT_CENTER, PRICE_SWEET_SPOT_HALF_WIDTH),
    Dimension.GPM: _pass_through,
    Dimension.SHOP_SALES: _log_scale(SHOP_SALES_CEILING),
    Dimension.SHOP_RATING: _rating_scale,
}


def clamp_score(value: float) -> int:
    """Clamp to [0, 100] and round half away from zero."""
    if value != value:  # NaN
        return 0
    return int(round_half_up(min(100.0, max(0.0, value))))


def normalize(
    dimension: Dimension | str,
    raw: Any,
    context: Optional[Mapping[str, Any]] = None,
) -> int:
    """
    Normalize one raw signal for a dimension.

    Args:
        dimension: Dimension enum member or its config name
        raw: Raw value; non-numeric input normalizes to 0
        context: Batch context, e.g. {"maxSalesVolume": 1200}

    Returns:
        Integer score in [0, 100]. Unknown dimensions return 0.
    """
    dim = Dimension.lookup(dimension)
    if dim is None:
        return 0

    value = to_float(raw)
    if value is None:
        return 0

    return clamp_score(NORMALIZERS[dim](value, context or {}))
