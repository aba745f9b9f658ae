"""Parsing helpers for metric strings shown on analytics pages."""

import math
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

# Currency prefixes such as "RM", "Rp", "$", "฿"
_CURRENCY_PREFIX = re.compile(r"^[A-Za-z₱$¥€£฿₫]+")
_LEADING_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)")

_SUFFIX_MULTIPLIERS = {
    "亿": 100_000_000,
    "万": 10_000,
    "B": 1_000_000_000,
    "M": 1_000_000,
    "K": 1_000,
    "k": 1_000,
}


def round_half_up(value: float, places: int = 0) -> float:
    """Round half away from zero to the given number of decimal places."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def parse_metric_number(raw: Optional[str]) -> int:
    """
    Parse a formatted metric such as "2.28万", "7.63亿", "RM15.00万" or "1,234".

    Returns 0 for empty or unparseable strings.
    """
    if not raw or not raw.strip():
        return 0

    cleaned = _CURRENCY_PREFIX.sub("", raw.strip()).replace(",", "").strip()

    multiplier = 1
    if cleaned and cleaned[-1] in _SUFFIX_MULTIPLIERS:
        multiplier = _SUFFIX_MULTIPLIERS[cleaned[-1]]
        cleaned = cleaned[:-1].strip()

    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return 0

    return int(round_half_up(float(match.group(0)) * multiplier))


def parse_percentage(raw: Optional[str]) -> float:
    """Parse "25.5%" into 0.255. Returns 0.0 when unparseable."""
    if not raw:
        return 0.0
    match = _LEADING_NUMBER.match(raw.strip().replace(",", ""))
    if not match:
        return 0.0
    return float(match.group(0)) / 100


def to_float(value: Any) -> Optional[float]:
    """Coerce a scalar to float, returning None for missing or non-numeric input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            # int beyond float range
            number = math.inf if value > 0 else -math.inf
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
    if number != number:  # NaN
        return None
    return number
