"""Load and validate the YAML domain configuration."""

import logging
from pathlib import Path
from typing import TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from product_scout.config import settings
from product_scout.schemas.config import (
    FullConfig,
    RulesConfig,
    ScoringConfig,
    SearchStrategiesConfig,
    SignalsConfig,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

RULES_FILE = "rules.yaml"
SCORING_FILE = "scoring.yaml"
SIGNALS_FILE = "signals.yaml"
SEARCH_STRATEGIES_FILE = "search-strategies.yaml"


class ConfigError(RuntimeError):
    """Raised when a configuration file is missing or invalid."""
    pass


def load_config(path: str | Path, model: type[ModelT]) -> ModelT:
    """
    Read a YAML file and validate it against a pydantic model.

    Args:
        path: YAML file path
        model: Pydantic model class describing the file

    Returns:
        Validated model instance

    Raises:
        ConfigError: If the file is missing, is not valid YAML, or fails validation
    """
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    try:
        return model.model_validate(raw or {})
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e}") from e


def load_full_config(config_dir: str | Path | None = None) -> FullConfig:
    """Load rules, scoring, signals and search strategies from one directory."""
    base = Path(config_dir or settings.config_dir)
    config = FullConfig(
        rules=load_config(base / RULES_FILE, RulesConfig),
        scoring=load_config(base / SCORING_FILE, ScoringConfig),
        signals=load_config(base / SIGNALS_FILE, SignalsConfig),
        search_strategies=load_config(base / SEARCH_STRATEGIES_FILE, SearchStrategiesConfig),
    )
    logger.debug(
        "Loaded config from %s: %d profiles, %d signal rules, %d strategies",
        base,
        len(config.scoring.scoring_profiles),
        len(config.signals.signal_rules),
        len(config.search_strategies.strategies),
    )
    return config
