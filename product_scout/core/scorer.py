"""Multi-profile scoring engine.

Each profile is a weighted subset of dimensions. A dimension whose raw value
is missing contributes 0 but is recorded with a null normalized value, and a
profile with no data in any of its dimensions scores None rather than 0.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Mapping, Optional

from product_scout.core.normalizers import MAX_SALES_VOLUME_KEY, Dimension, normalize
from product_scout.utils.numbers import round_half_up, to_float

TREND_LEVELS = {"rising": 2, "stable": 1, "declining": 0}


@dataclass
class ScoringInput:
    """Raw signal bundle for one product. None means "not collected yet"."""

    sales_volume: Optional[float] = None
    sales_growth_rate: Optional[float] = None
    shopee_validation: Optional[float] = None  # Shopee sold count
    profit_margin: Optional[float] = None
    google_trends: Optional[str] = None  # rising, stable, declining
    creator_count: Optional[float] = None
    hot_index: Optional[float] = None
    voc_positive_rate: Optional[float] = None
    days_since_listed: Optional[float] = None
    competition_score: Optional[float] = None
    video_views: Optional[float] = None
    creator_conversion_rate: Optional[float] = None
    commission_rate: Optional[float] = None
    price_point: Optional[float] = None  # USD
    gpm: Optional[float] = None
    shop_sales: Optional[float] = None
    shop_rating: Optional[float] = None
    max_sales_volume: float = 0

    def to_dict(self) -> dict:
        """Convert to a camelCase dictionary."""
        return {_camel(k): v for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScoringInput":
        """Create from a dictionary with camelCase or snake_case keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = key if key in known else _snake(key)
            if name in known:
                kwargs[name] = value
        return cls(**kwargs)


# Dimension name -> ScoringInput attribute
DIMENSION_FIELDS: dict[Dimension, str] = {
    Dimension.SALES_VOLUME: "sales_volume",
    Dimension.SALES_GROWTH_RATE: "sales_growth_rate",
    Dimension.SHOPEE_VALIDATION: "shopee_validation",
    Dimension.PROFIT_MARGIN: "profit_margin",
    Dimension.GOOGLE_TRENDS: "google_trends",
    Dimension.CREATOR_COUNT: "creator_count",
    Dimension.HOT_INDEX: "hot_index",
    Dimension.VOC: "voc_positive_rate",
    Dimension.RECENCY: "days_since_listed",
    Dimension.COMPETITION: "competition_score",
    Dimension.VIDEO_VIEWS: "video_views",
    Dimension.CREATOR_CONVERSION_RATE: "creator_conversion_rate",
    Dimension.COMMISSION_RATE: "commission_rate",
    Dimension.PRICE_POINT: "price_point",
    Dimension.GPM: "gpm",
    Dimension.SHOP_SALES: "shop_sales",
    Dimension.SHOP_RATING: "shop_rating",
}


@dataclass
class ScoreDetail:
    """Audit row: how one dimension contributed to one profile."""

    profile: str
    dimension: str
    raw_value: Optional[float]
    normalized_value: Optional[int]
    weight: float
    weighted_score: float

    def to_dict(self) -> dict:
        return {
            "profile": self.profile,
            "dimension": self.dimension,
            "rawValue": self.raw_value,
            "normalizedValue": self.normalized_value,
            "weight": self.weight,
            "weightedScore": self.weighted_score,
        }


@dataclass
class ScoreResult:
    scores: dict[str, Optional[float]] = field(default_factory=dict)
    details: list[ScoreDetail] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "scores": dict(self.scores),
            "details": [d.to_dict() for d in self.details],
        }


def extract_raw_value(bundle: ScoringInput, dimension: Dimension | str) -> Optional[float]:
    """Read a dimension's raw value from the bundle, or None when absent."""
    dim = Dimension.lookup(dimension)
    if dim is None:
        return None

    value = getattr(bundle, DIMENSION_FIELDS[dim])
    if dim is Dimension.GOOGLE_TRENDS and isinstance(value, str):
        return TREND_LEVELS.get(value.lower())
    return to_float(value)


def _profile_dimensions(profile: Any) -> Mapping[str, Any]:
    if isinstance(profile, Mapping):
        return profile["dimensions"]
    return profile.dimensions


def compute_scores(bundle: ScoringInput, profiles: Mapping[str, Any]) -> ScoreResult:
    """
    Score a signal bundle under every profile.

    Args:
        bundle: Raw signals for one product
        profiles: {profile_key: {"name": ..., "dimensions": {dimension: weight}}}
            or ScoringProfile models

    Returns:
        ScoreResult with one score per profile (None when the profile had no
        data at all) and one detail row per (profile, dimension)
    """
    context = {MAX_SALES_VOLUME_KEY: bundle.max_sales_volume}
    result = ScoreResult()

    for profile_key, profile in profiles.items():
        total = 0.0
        has_data = False

        for dimension, weight in _profile_dimensions(profile).items():
            raw = extract_raw_value(bundle, dimension)
            if raw is None:
                normalized = None
                contribution = 0.0
            else:
                has_data = True
                normalized = normalize(dimension, raw, context)
                contribution = normalized * weight / 100

            total += contribution
            result.details.append(
                ScoreDetail(
                    profile=profile_key,
                    dimension=str(getattr(dimension, "value", dimension)),
                    raw_value=raw,
                    normalized_value=normalized,
                    weight=weight,
                    weighted_score=contribution,
                )
            )

        result.scores[profile_key] = round_half_up(total, 1) if has_data else None

    return result


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _snake(name: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in name)
