from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# YouTube caps a single listing request at 50 items.
MAX_RESULTS_PER_REQUEST = 50


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    youtube_api_key: str | None = None
    low_quota_mode: bool = True
    videos_per_channel: int = 20
    list_videos_per_channel: int = 10
    aggregate_max_results: int = 100
    aggregate_max_concurrency: int = 1
    response_cache_ttl_seconds: float = 30.0
    response_cache_max_entries: int = 512
    search_fallback_enabled: bool = True
    http_timeout_seconds: float = 15.0
    user_agent: str = "Mozilla/5.0 (compatible; yt-universe/0.1)"
    description_max_chars: int = 200
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="YTU_", env_file_encoding="utf-8")

    @field_validator("videos_per_channel", "list_videos_per_channel", mode="after")
    @classmethod
    def _clamp_per_channel(cls, value: int) -> int:
        return min(max(value, 1), MAX_RESULTS_PER_REQUEST)

    @field_validator("youtube_api_key", mode="before")
    @classmethod
    def _blank_key_is_none(cls, value: str | None) -> str | None:
        if isinstance(value, str) and not value.strip():
            return None
        return value


@lru_cache

def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()


settings = get_settings()
