from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from catalogcache.models import CacheTTL


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Catalog Query Cache"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    cache_max_entries: int = Field(default=1000, ge=10)
    cache_default_ttl_seconds: int = Field(default=300, ge=0)
    cache_sweep_interval_seconds: float = Field(default=120.0, gt=0)

    ttl_short_seconds: int = CacheTTL.SHORT
    ttl_stats_seconds: int = CacheTTL.STATS
    ttl_medium_seconds: int = CacheTTL.MEDIUM
    ttl_long_seconds: int = CacheTTL.LONG

    upstream_api_base: str = "http://localhost:5000/api"
    upstream_api_token: str | None = None
    upstream_timeout_seconds: float = 20.0
    upstream_retry_attempts: int = 2
    upstream_backoff_base_seconds: float = 0.5


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
