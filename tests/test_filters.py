"""Tests for pre/post filters and region filter merging."""

from product_scout.core.filters import PostFilterProduct, PreFilterProduct, post_filter, pre_filter
from product_scout.schemas.config import Filter, RulesConfig, get_filters_for_region

RULES = RulesConfig.model_validate(
    {
        "defaults": {
            "price": {"min": 3, "max": 50},
            "profitMargin": {"min": 0.3},
            "minUnitsSold": 100,
            "minGrowthRate": 0,
            "excludedCategories": ["weapons"],
        },
        "regions": {
            "id": {"price": {"min": 2}},
            "vn": {"minUnitsSold": 200, "excludedCategories": ["adult"]},
        },
    }
)


def _filters(region="th") -> Filter:
    return get_filters_for_region(RULES, region)


def test_region_override_merges_nested_keys():
    merged = _filters("id")
    assert merged.price.min == 2
    assert merged.price.max == 50
    assert merged.profit_margin.min == 0.3


def test_region_override_replaces_lists():
    merged = _filters("vn")
    assert merged.min_units_sold == 200
    assert merged.excluded_categories == ["adult"]


def test_unknown_region_uses_defaults():
    merged = _filters("zz")
    assert merged == RULES.defaults
    merged.excluded_categories.append("changed")
    assert RULES.defaults.excluded_categories == ["weapons"]


def test_pre_filter_thresholds():
    products = [
        PreFilterProduct(1, "ok", "beauty", units_sold=150, growth_rate=0.1),
        PreFilterProduct(2, "too few", "beauty", units_sold=99, growth_rate=0.5),
        PreFilterProduct(3, "shrinking", "beauty", units_sold=500, growth_rate=-0.2),
        PreFilterProduct(4, "excluded", "weapons", units_sold=500, growth_rate=0.5),
        PreFilterProduct(5, "no category", None, units_sold=100, growth_rate=0),
    ]
    kept = pre_filter(products, _filters())
    assert [p.product_id for p in kept] == [1, 5]


def test_post_filter_only_applies_present_data():
    products = [
        PostFilterProduct(1, shopee_price=10, profit_margin=0.4),
        PostFilterProduct(2, shopee_price=60, profit_margin=0.4),
        PostFilterProduct(3, shopee_price=10, profit_margin=0.1),
        PostFilterProduct(4),
        PostFilterProduct(5, shopee_price=2.5),
        PostFilterProduct(6, profit_margin=0.3),
    ]
    kept = post_filter(products, _filters())
    assert [p.product_id for p in kept] == [1, 4, 6]
