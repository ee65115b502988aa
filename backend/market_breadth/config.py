"""
Market Breadth: Configuration Management

Pydantic Settings: loads from .env, validates all configuration at startup.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Core ──
    app_env: str = "development"
    app_debug: bool = True

    # ── Upstream APIs ──
    api_base_url: str = "https://api.alphastock.vn"
    breadth_url: str = "https://api.alphastock.vn/api/stock/avg"
    proxy_url: str = "https://api.allorigins.win/raw?url="
    http_timeout: float = 10.0

    # Unit of the ma20/ma50/ma200 values per breadth endpoint ("count" or "percent")
    breadth_default_unit: str = "count"
    breadth_units: dict[str, str] = {}

    # ── Cache ──
    cache_backend: str = "redis"  # 'redis' or 'memory'
    redis_url: str = "redis://localhost:6379/0"
    cache_prefix: str = "MBA_CACHE_V5"  # bump to orphan every cached entry

    # ── Google Gemini ──
    google_api_key: str = ""
    gemini_model: str = "gemini-3-pro-preview"
    gemini_models: list[str] = [
        "gemini-3-pro-preview",
        "gemini-3-flash-preview",
        "gemini-2.5-pro",
    ]
    gemini_temperature: float = 0.2

    # ── CORS ──
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance, created once and reused everywhere."""
    return Settings()
