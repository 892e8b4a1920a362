"""
Runtime configuration for the copy finder.
Every field has a working default so the engine runs with nothing configured.
"""
from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Constants
DEFAULT_NITTER_INSTANCES = (
    "https://nitter.tiekoetter.com",
    "https://nitter.net",
    "https://nitter.poast.org",
)
PRIMARY_SOURCE = "nitter"
PLACEHOLDER_DATE = "Unknown"


class Settings(BaseSettings):
    """
    Application settings.
    Timeouts are in seconds; scores and thresholds are on a 0-100 scale.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # OPTIONAL: shared store (in-memory fallback when missing)
    REDIS_URL: str | None = None

    # OPTIONAL: comma-separated mirror list
    NITTER_INSTANCES: str = ",".join(DEFAULT_NITTER_INSTANCES)

    # Fan-out timeouts and limits
    SEARCH_GLOBAL_TIMEOUT_SECONDS: float = 25.0
    SOURCE_TIMEOUT_SECONDS: float = 8.0
    MIN_SOURCE_TIMEOUT_SECONDS: float = 2.0
    EARLY_STOP_THRESHOLD: int = 12
    MAX_QUERY_VARIANTS: int = 4
    MAX_ADAPTIVE_VARIANTS: int = 6
    FALLBACK_BATCH_SIZE: int = 2

    # Health registry
    HEALTH_COOLDOWN_SECONDS: float = 60.0
    HEALTH_TTL_SECONDS: int = 24 * 60 * 60

    # Classification
    SELF_DUPLICATE_SIMILARITY_THRESHOLD: int = 90
    GENERIC_TERM_RATIO: float = 0.6

    # Caching
    SEARCH_CACHE_ENABLED: bool = True
    SEARCH_CACHE_TTL_SECONDS: int = 15 * 60
    SOURCE_CACHE_TTL_SECONDS: int = 10 * 60

    # Metrics backfill
    METRICS_TIMEOUT_SECONDS: float = 3.5
    METRICS_MAX_ITEMS: int = 10
    METRICS_CONCURRENCY: int = 4
    SELF_DUPLICATE_METRICS_MAX_ITEMS: int = 4
    SELF_DUPLICATE_METRICS_CONCURRENCY: int = 2

    # OPTIONAL: Application Settings
    SEARCH_HEALTH_LOG: bool = True
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "production"
    CORS_ORIGINS: list[str] = []

    @field_validator(
        "SEARCH_GLOBAL_TIMEOUT_SECONDS",
        "SOURCE_TIMEOUT_SECONDS",
        "MIN_SOURCE_TIMEOUT_SECONDS",
        "HEALTH_COOLDOWN_SECONDS",
        "METRICS_TIMEOUT_SECONDS",
    )
    @classmethod
    def validate_positive_seconds(cls, v: float, info) -> float:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator(
        "EARLY_STOP_THRESHOLD",
        "MAX_QUERY_VARIANTS",
        "MAX_ADAPTIVE_VARIANTS",
        "FALLBACK_BATCH_SIZE",
        "METRICS_CONCURRENCY",
        "SELF_DUPLICATE_METRICS_CONCURRENCY",
    )
    @classmethod
    def validate_positive_count(cls, v: int, info) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name} must be at least 1")
        return v

    @field_validator("SELF_DUPLICATE_SIMILARITY_THRESHOLD")
    @classmethod
    def validate_similarity_threshold(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError("SELF_DUPLICATE_SIMILARITY_THRESHOLD must be within 0..100")
        return v

    @field_validator("GENERIC_TERM_RATIO")
    @classmethod
    def validate_ratio(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("GENERIC_TERM_RATIO must be within (0, 1]")
        return v

    @model_validator(mode="after")
    def validate_timeout_order(self) -> "Settings":
        if self.MIN_SOURCE_TIMEOUT_SECONDS > self.SOURCE_TIMEOUT_SECONDS:
            raise ValueError("MIN_SOURCE_TIMEOUT_SECONDS cannot exceed SOURCE_TIMEOUT_SECONDS")
        if self.MAX_ADAPTIVE_VARIANTS < self.MAX_QUERY_VARIANTS:
            raise ValueError("MAX_ADAPTIVE_VARIANTS cannot be lower than MAX_QUERY_VARIANTS")
        return self

    @property
    def nitter_instances(self) -> list[str]:
        instances = [url.strip().rstrip("/") for url in self.NITTER_INSTANCES.split(",") if url.strip()]
        return instances or list(DEFAULT_NITTER_INSTANCES)

    def log_startup_summary(self) -> None:
        """Log configuration summary on startup (without leaking secrets)."""
        logger.info("=" * 60)
        logger.info("Copy Scout - Configuration")
        logger.info("=" * 60)
        logger.info("Environment: %s", self.ENVIRONMENT)
        logger.info("Log Level: %s", self.LOG_LEVEL)
        logger.info("Store: %s", "✓ Redis" if self.REDIS_URL else "○ In-memory (not persisted)")
        logger.info("Nitter mirrors: %d", len(self.nitter_instances))
        logger.info("Search cache: %s", "✓ Enabled" if self.SEARCH_CACHE_ENABLED else "○ Disabled")
        logger.info("Global timeout: %.1fs, per source: %.1fs", self.SEARCH_GLOBAL_TIMEOUT_SECONDS, self.SOURCE_TIMEOUT_SECONDS)
        logger.info("=" * 60)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Raises ValidationError on first use if configuration is invalid.
    """
    settings = Settings()
    settings.log_startup_summary()
    return settings
