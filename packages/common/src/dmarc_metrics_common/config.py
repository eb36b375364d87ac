"""Configuration management.

Settings are read from environment variables (case-insensitive) and an
optional ``.env`` file in the working directory. Database connection
fields live in ``dmarc_metrics_storage.DatabaseConfig``.
"""

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_LOG_FORMATS = ("console", "json")


class Settings(BaseSettings):
    """Process-wide settings for the aggregator, purger and exporter.

    Attributes:
        log_level: Logging level name
        log_format: ``console`` (human) or ``json`` (machine)
        exporter_host: Interface the exporter binds to
        exporter_port: Port the exporter listens on
        cache_ttl_seconds: Maximum age of a cached metrics row
        reconnect_interval_seconds: Delay between database connect attempts
        connect_timeout_seconds: Upper bound on the reconnect loop (None = retry forever)
        scrape_timeout_seconds: Upper bound on one scrape before answering 503
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = "INFO"
    log_format: str = "console"

    exporter_host: str = "0.0.0.0"
    exporter_port: int = 9100

    cache_ttl_seconds: float = 10.0
    reconnect_interval_seconds: float = 5.0
    connect_timeout_seconds: Optional[float] = None
    scrape_timeout_seconds: Optional[float] = 30.0

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {VALID_LOG_LEVELS}, got {v!r}")
        return upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        lower = v.lower()
        if lower not in VALID_LOG_FORMATS:
            raise ValueError(f"log_format must be one of {VALID_LOG_FORMATS}, got {v!r}")
        return lower

    @field_validator("cache_ttl_seconds", "reconnect_interval_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get the cached settings instance.

    Call ``get_settings.cache_clear()`` to reload from the environment.
    """
    return Settings()
