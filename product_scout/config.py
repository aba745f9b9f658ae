"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = "sqlite+aiosqlite:///db/product_scout.db"
    database_echo: bool = False

    # App Settings
    log_level: str = "INFO"
    log_dir: str = ""  # Empty = current working directory
    config_dir: str = "config"  # rules.yaml, scoring.yaml, signals.yaml, search-strategies.yaml
    default_region: str = "th"

    # Pipeline
    strategy_threshold: float = 50.0  # Minimum profile score for a strategy tag
    shop_detail_limit: int = 5  # Top-N shops (by total sales) to open in detail

    # CJ Dropshipping
    cj_api_key: str = ""
    cj_default_shipping_cost: float = 3.0  # USD

    # Notion
    notion_api_key: str = ""
    notion_database_id: str = ""
    notion_version: str = "2022-06-28"

    # FastMoss browser session
    fastmoss_base_url: str = "https://www.fastmoss.com"
    fastmoss_profile_dir: str = "data/fastmoss-profile"
    browser_headless: bool = True
    browser_timeout_ms: int = 30000
    page_settle_ms: int = 2000  # Wait after navigation for the table to render

    # HTTP clients
    http_max_attempts: int = 3
    http_connect_timeout: float = 10.0
    http_read_timeout: float = 30.0

    # Google Trends
    trends_timeframe: str = "today 3-m"
    trends_language: str = "en-US"

    # Scheduler
    scheduler_enabled: bool = True
    pipeline_cron_hour: int = 6
    pipeline_cron_minute: int = 0
    queue_rebuild_interval_hours: int = 6
    metrics_port: int = 0  # Prometheus exporter for `serve`; 0 disables

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
