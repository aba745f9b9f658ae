"""Tests for YAML configuration loading."""

import pytest

from product_scout.config_loader import ConfigError, load_config
from product_scout.schemas.config import RulesConfig, ScoringConfig, SignalsConfig
from product_scout.core.normalizers import Dimension
from product_scout.core.tagger import parse_condition


def test_shipped_profiles_sum_to_100(full_config):
    profiles = full_config.scoring.scoring_profiles
    assert set(profiles) == {"default", "trending", "blueOcean", "highMargin", "shopCopy"}
    for profile in profiles.values():
        assert sum(profile.dimensions.values()) == 100


def test_shipped_profiles_use_known_dimensions(full_config):
    for profile in full_config.scoring.scoring_profiles.values():
        for dimension in profile.dimensions:
            assert Dimension.lookup(dimension) is not None, dimension


def test_shipped_signal_rules_parse(full_config):
    for name, rule in full_config.signals.signal_rules.items():
        assert parse_condition(rule.condition) is not None, name


def test_shipped_rules_and_scraping(full_config):
    scraping = full_config.scraping()
    assert scraping.daily_detail_budget == 300
    assert scraping.freshness.detail_refresh_days == 7
    assert full_config.rules.defaults.min_units_sold == 100
    assert all(s.region for s in full_config.search_strategies.strategies.values())


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.yaml", RulesConfig)


def test_invalid_yaml_raises(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("defaults: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(path, RulesConfig)


def test_weights_not_summing_to_100_rejected(tmp_path):
    path = tmp_path / "scoring.yaml"
    path.write_text(
        "scoringProfiles:\n"
        "  broken:\n"
        "    name: Broken\n"
        "    dimensions:\n"
        "      salesVolume: 60\n"
        "      hotIndex: 30\n",
        encoding="utf-8",
    )
    with pytest.raises(ConfigError, match="sum to 100"):
        load_config(path, ScoringConfig)


def test_price_range_validated(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(
        "defaults:\n"
        "  price: {min: 60, max: 50}\n"
        "  profitMargin: {min: 0.3}\n",
        encoding="utf-8",
    )
    with pytest.raises(ConfigError):
        load_config(path, RulesConfig)


def test_empty_condition_rejected(tmp_path):
    path = tmp_path / "signals.yaml"
    path.write_text("signalRules:\n  empty:\n    condition: ''\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path, SignalsConfig)
