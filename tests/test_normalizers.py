"""Tests for dimension normalizers."""

import pytest

from product_scout.core.normalizers import Dimension, clamp_score, normalize


@pytest.mark.parametrize("dimension", list(Dimension))
@pytest.mark.parametrize("raw", [-(10**400), -1e12, -5, -0.5, 0, 0.5, 1, 42, 1e3, 1e9, 1e15, 10**400])
def test_normalize_always_in_range(dimension, raw):
    """Every dimension maps any real input into [0, 100]."""
    score = normalize(dimension, raw, {"maxSalesVolume": 1000})
    assert 0 <= score <= 100
    assert isinstance(score, int)


@pytest.mark.parametrize("maximum", [1, 7, 1000, 123456])
def test_sales_volume_relative_to_batch_max(maximum):
    """The batch maximum itself scores 100."""
    assert normalize("salesVolume", maximum, {"maxSalesVolume": maximum}) == 100


@pytest.mark.parametrize("raw", [0, 10, 5000])
def test_sales_volume_without_max_is_zero(raw):
    assert normalize("salesVolume", raw, {"maxSalesVolume": 0}) == 0
    assert normalize("salesVolume", raw, {}) == 0


def test_sales_volume_half_of_max():
    assert normalize("salesVolume", 500, {"maxSalesVolume": 1000}) == 50


def test_shopee_validation_log_scale():
    """Log10 scale against a ceiling of 1000 sold."""
    assert normalize("shopeeValidation", 1000, {}) == 100
    assert normalize("shopeeValidation", 0, {}) == 0
    assert normalize("shopeeValidation", 10, {}) == 33
    assert normalize("shopeeValidation", 100, {}) == 67


def test_google_trends_bands():
    assert normalize("googleTrends", 2, {}) == 100
    assert normalize("googleTrends", 1, {}) == 50
    assert normalize("googleTrends", 0, {}) == 0


def test_percentage_dimensions():
    assert normalize("salesGrowthRate", 0.5) == 50
    assert normalize("profitMargin", 0.25) == 25
    assert normalize("salesGrowthRate", 3.0) == 100
    assert normalize("commissionRate", -0.2) == 0


def test_creator_count_inverse_log():
    """Fewer creators means less competition."""
    assert normalize("creatorCount", 0) == 100
    assert normalize("creatorCount", 1000) == 0
    assert normalize("creatorCount", 10) > normalize("creatorCount", 100)


def test_recency_linear_decay():
    assert normalize("recency", 0) == 100
    assert normalize("recency", 60) == 50
    assert normalize("recency", 120) == 0
    assert normalize("recency", 400) == 0


def test_competition_inverted():
    assert normalize("competition", 20) == 80
    assert normalize("competition", 100) == 0


def test_price_point_sweet_spot():
    """$20 is the center; $15 away loses half the score."""
    assert normalize("pricePoint", 20) == 100
    assert normalize("pricePoint", 35) == 50
    assert normalize("pricePoint", 5) == 50
    assert normalize("pricePoint", 0) == 0


def test_shop_rating_scale():
    assert normalize("shopRating", 4.5) == 90
    assert normalize("shopRating", 5) == 100


def test_unknown_dimension_is_zero():
    assert normalize("notADimension", 50) == 0


def test_non_numeric_input_is_zero():
    assert normalize("hotIndex", "abc") == 0
    assert normalize("hotIndex", None) == 0
    assert normalize("hotIndex", "72") == 72


def test_clamp_rounds_half_away_from_zero():
    assert clamp_score(50.5) == 51
    assert clamp_score(49.4) == 49
    assert clamp_score(float("nan")) == 0
    assert clamp_score(250) == 100
