"""Configuration settings for the civic feeds worker."""

from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    port: int = 5000
    debug: bool = True
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "text"

    # CORS (comma-separated list of allowed origins)
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # HTTP
    user_agent: str = "CivicFeeds/1.0 (Municipal Calendar Aggregator; +https://civicfeeds.org/bot)"
    max_redirects: int = 5

    # Timezone used for floating times and rendered time-of-day strings
    timezone: str = "America/New_York"

    # Timeouts (seconds). Existence checks are the shortest, content fetches the longest.
    domain_check_timeout: float = 2.0
    homepage_timeout: float = 3.0
    probe_timeout: float = 4.0
    website_timeout: float = 5.0
    subscription_page_timeout: float = 5.0
    live_test_timeout: float = 5.0
    feed_timeout: float = 10.0
    html_timeout: float = 15.0

    # Discovery
    min_website_bytes: int = 100
    max_paths_per_domain: int = 20
    max_subscription_links: int = 8
    region_delay_seconds: float = 1.0

    # Confidence scoring (empirically tuned, keep configurable)
    base_confidence: float = 0.3
    gov_confidence_boost: float = 0.2
    calendar_url_min_confidence: float = 0.6
    default_min_confidence: float = 0.5

    # Collection
    collection_batch_size: int = 5
    collection_batch_delay_seconds: float = 2.0
    max_events_per_feed: int = 10
    max_html_events: int = 20
    event_horizon_days: int = 730
    ical_default_duration_minutes: int = 60
    default_duration_minutes: int = 120

    # Data files
    city_lookup_path: Optional[str] = None
    seed_sources_path: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def clear_settings_cache():
    """Clear settings cache (useful for testing)."""
    get_settings.cache_clear()
