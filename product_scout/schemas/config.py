"""Pydantic models for the YAML domain configuration files."""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model reading camelCase YAML keys into snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PriceRange(CamelModel):
    min: float
    max: float


class MarginFloor(CamelModel):
    min: float


class Filter(CamelModel):
    """Product filter thresholds for one region."""

    price: PriceRange
    profit_margin: MarginFloor
    min_units_sold: float = 100
    min_growth_rate: float = 0
    excluded_categories: list[str] = Field(default_factory=list)


class PriceRangeOverride(CamelModel):
    min: Optional[float] = None
    max: Optional[float] = None


class MarginFloorOverride(CamelModel):
    min: Optional[float] = None


class RegionFilterOverride(CamelModel):
    """Partial filter; only the keys present replace the defaults."""

    price: Optional[PriceRangeOverride] = None
    profit_margin: Optional[MarginFloorOverride] = None
    min_units_sold: Optional[float] = None
    min_growth_rate: Optional[float] = None
    excluded_categories: Optional[list[str]] = None


class ScrapingFreshness(CamelModel):
    detail_refresh_days: float = Field(7, gt=0)
    voc_refresh_days: float = Field(14, gt=0)
    shop_refresh_days: float = Field(7, gt=0)


class ScrapingConfig(CamelModel):
    daily_detail_budget: int = Field(300, gt=0)
    daily_search_budget: int = Field(300, gt=0)
    freshness: ScrapingFreshness = Field(default_factory=ScrapingFreshness)


class RulesConfig(CamelModel):
    defaults: Filter
    regions: Optional[dict[str, RegionFilterOverride]] = None
    scraping: Optional[ScrapingConfig] = None

    @model_validator(mode="after")
    def check_price_range(self) -> "RulesConfig":
        if self.defaults.price.min > self.defaults.price.max:
            raise ValueError("defaults price.min must be <= price.max")
        return self


class ScoringProfile(CamelModel):
    """A named weighted subset of scoring dimensions."""

    name: str
    dimensions: dict[str, int]

    @field_validator("dimensions")
    @classmethod
    def weights_sum_to_100(cls, v: dict[str, int]) -> dict[str, int]:
        total = sum(v.values())
        if total != 100:
            raise ValueError(f"Dimension weights must sum to 100 (got {total})")
        return v


class ScoringConfig(CamelModel):
    scoring_profiles: dict[str, ScoringProfile]


class SignalRule(CamelModel):
    condition: str = Field(min_length=1)


class SignalsConfig(CamelModel):
    signal_rules: dict[str, SignalRule]


class SearchStrategy(CamelModel):
    name: str
    region: str
    filters: dict[str, Union[str, float]] = Field(default_factory=dict)


class SearchStrategiesConfig(CamelModel):
    strategies: dict[str, SearchStrategy]


class FullConfig(BaseModel):
    """All domain configuration consumed by the pipeline."""

    rules: RulesConfig
    scoring: ScoringConfig
    signals: SignalsConfig
    search_strategies: SearchStrategiesConfig

    def scraping(self) -> ScrapingConfig:
        return self.rules.scraping or ScrapingConfig()


def get_filters_for_region(rules: RulesConfig, region: str) -> Filter:
    """Merge a region's partial override onto the default filter."""
    override = (rules.regions or {}).get(region)
    merged = rules.defaults.model_copy(deep=True)
    if override is None:
        return merged

    if override.price is not None:
        if override.price.min is not None:
            merged.price.min = override.price.min
        if override.price.max is not None:
            merged.price.max = override.price.max
    if override.profit_margin is not None and override.profit_margin.min is not None:
        merged.profit_margin.min = override.profit_margin.min
    if override.min_units_sold is not None:
        merged.min_units_sold = override.min_units_sold
    if override.min_growth_rate is not None:
        merged.min_growth_rate = override.min_growth_rate
    if override.excluded_categories is not None:
        merged.excluded_categories = list(override.excluded_categories)
    return merged
