"""Engine configuration pulled from environment variables via pydantic."""
import os
from typing import Dict, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__, tag="config")


DEFAULT_COOLDOWN_SECONDS: Dict[str, float] = {
    "weather_ahead": 60.0,
    "weather_change": 60.0,
    "speed_advisory": 60.0,
    "shelter_suggestion": 60.0,
    "near_arrival": 60.0,
}


class Settings(BaseSettings):
    """Environment-driven configuration for the roadwise engine."""
    model_config = SettingsConfigDict(env_prefix="ROADWISE_", extra="ignore")

    # providers, in priority order; options: tomorrow, openweather, open_meteo
    providers: List[str] = Field(default_factory=lambda: ["tomorrow", "openweather", "open_meteo"])
    provider_strategy: str = "cost_optimized"  # options: cost_optimized, performance, reliability
    tomorrow_io_api_key: str | None = None
    tomorrow_io_daily_limit: int = 500
    openweather_api_key: str | None = None
    openweather_daily_limit: int = 1000
    open_meteo_daily_limit: int = 10000
    provider_timeout_seconds: float = 10.0
    provider_retries: int = 2

    quota_backend: str = "memory"  # options: memory, redis, sql
    quota_redis_url: str | None = None
    quota_database_url: str = "sqlite:///./roadwise_quota.db"

    cache_backend: str = "memory"  # options: memory, redis
    cache_redis_url: str | None = None

    route_max_samples: int = 10
    route_sample_concurrency: int = 4

    lookahead_km: float = 10.0
    shelter_radius_km: float = 5.0
    arrival_threshold_km: float = 1.0
    cooldown_seconds: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_COOLDOWN_SECONDS))
    near_arrival_once_per_session: bool = True
    evaluation_interval_seconds: float = 30.0

    enhancement_enabled: bool = True
    enhancement_timeout_seconds: float = 8.0
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "phi4-mini"
    ollama_options: dict = Field(
        default_factory=lambda: {
            "temperature": float(os.getenv("ROADWISE_OLLAMA_TEMPERATURE", 0.3)),
            "top_p": float(os.getenv("ROADWISE_OLLAMA_TOP_P", 0.9)),
        }
    )

    trip_delay_minutes: int = 60

    @field_validator("ollama_base_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs to avoid double slashes."""
        return str(v).rstrip("/")

    @field_validator("cooldown_seconds", mode="after")
    @classmethod
    def fill_missing_cooldowns(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Partial overrides keep the defaults for categories they omit."""
        return {**DEFAULT_COOLDOWN_SECONDS, **v}

    @field_validator("providers", mode="after")
    @classmethod
    def lowercase_providers(cls, v: List[str]) -> List[str]:
        return [name.strip().lower() for name in v if name.strip()]


settings = Settings()


if __name__ == "__main__":
    logger.setLevel("DEBUG")
    secrets = {"tomorrow_io_api_key", "openweather_api_key"}
    logger.debug(f"Loaded settings: {settings.model_dump_json(indent=4, exclude=secrets)}")
