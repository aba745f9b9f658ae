"""Google Trends interest classification."""

import asyncio
import logging
from typing import Sequence

from pytrends.request import TrendReq

from product_scout.config import settings

logger = logging.getLogger(__name__)

TREND_RISING = "rising"
TREND_STABLE = "stable"
TREND_DECLINING = "declining"

RISING_FACTOR = 1.2
DECLINING_FACTOR = 0.8

GEO_MAP = {
    "th": "TH",
    "id": "ID",
    "ph": "PH",
    "vn": "VN",
    "my": "MY",
}


def geo_code(region: str) -> str:
    return GEO_MAP.get(region, region.upper())


def classify_trend(values: Sequence[float]) -> str:
    """
    Compare the latest interest value to the series average.

    rising when latest > 1.2x average, declining when latest < 0.8x average,
    stable otherwise (including an empty series).
    """
    if not values:
        return TREND_STABLE
    average = sum(values) / len(values)
    latest = values[-1]
    if latest > average * RISING_FACTOR:
        return TREND_RISING
    if latest < average * DECLINING_FACTOR:
        return TREND_DECLINING
    return TREND_STABLE


class TrendsClient:
    """Thin async wrapper around pytrends; the library itself is blocking."""

    def __init__(self, timeframe: str | None = None, language: str | None = None):
        self.timeframe = timeframe or settings.trends_timeframe
        self.language = language or settings.trends_language

    def _fetch_interest(self, keyword: str, geo: str) -> list[float]:
        pytrends = TrendReq(hl=self.language, tz=0)
        pytrends.build_payload([keyword], timeframe=self.timeframe, geo=geo)
        frame = pytrends.interest_over_time()
        if frame.empty or keyword not in frame.columns:
            return []
        return [float(v) for v in frame[keyword].tolist()]

    async def get_trend_status(self, keyword: str, region: str) -> str:
        """Trend status for a keyword; falls back to stable when Trends errors."""
        try:
            values = await asyncio.to_thread(self._fetch_interest, keyword, geo_code(region))
        except Exception as e:
            logger.warning(f"Google Trends error for '{keyword}', falling back to stable: {e}")
            return TREND_STABLE
        return classify_trend(values)
