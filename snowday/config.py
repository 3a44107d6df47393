"""Service configuration pulled from environment variables via pydantic."""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__, tag="config")


class Settings(BaseSettings):
    """Environment-driven configuration for the snow-day service."""
    model_config = SettingsConfigDict(env_prefix="SNOWDAY_", extra="ignore")

    geocoder_base_url: str = "https://api.zippopotam.us"
    geocoder_country: str = "us"
    geocoder_timeout_seconds: float = 8.0

    forecast_base_url: str = "https://api.open-meteo.com/v1/forecast"
    forecast_days: int = 1
    forecast_timeout_ms: int = 8000
    forecast_retries: int = 2
    forecast_backoff_factor: float = 0.2

    cache_ttl_seconds: int = 3600
    headline_window_hours: int = 12

    store_redis_url: str | None = None
    store_prefix: str = "snowday:"
    client_id: str = "local"

    api_key: str | None = None
    api_key_redis_set: str = "api_keys"
    session_ttl_seconds: int = 3600

    @field_validator("geocoder_base_url", "forecast_base_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs to avoid double slashes."""
        return str(v).rstrip("/")

    @field_validator("geocoder_timeout_seconds", "forecast_timeout_ms", "cache_ttl_seconds", mode="after")
    @classmethod
    def require_positive(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("headline_window_hours", mode="after")
    @classmethod
    def clamp_headline_window(cls, v: int) -> int:
        """The headline window must fall inside the 24-hour projection."""
        if not 1 <= v <= 24:
            raise ValueError("headline_window_hours must be between 1 and 24")
        return v


settings = Settings()


if __name__ == "__main__":
    logger.setLevel("DEBUG")
    logger.debug(f"Loaded settings: {settings.model_dump_json(indent=4)}")
