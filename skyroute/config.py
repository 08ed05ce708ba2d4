"""Service configuration pulled from environment variables via pydantic."""
import os
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__, tag="config")


class Settings(BaseSettings):
    """Environment-driven configuration for the SkyRoute weather router."""
    model_config = SettingsConfigDict(env_prefix="SKYROUTE_", extra="ignore")

    # language-model fallback parser
    parser_backend: str = "none"  # options: none, ollama
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "phi4-mini"
    ollama_retries: int = 0
    ollama_retry_backoff_seconds: float = 0.25
    parser_timeout_seconds: float = 2.0
    parser_threshold: float = 0.5
    parser_threshold_without_llm: float = 0.3
    ollama_options: dict = Field(
        default_factory=lambda: {
            "temperature": float(os.getenv("SKYROUTE_OLLAMA_TEMPERATURE", 0.0)),
            "top_p": float(os.getenv("SKYROUTE_OLLAMA_TOP_P", 0.9)),
        }
    )

    # input validation
    max_query_chars: int = 1000
    max_word_chars: int = 200
    max_context_chars: int = 500

    # response cache
    cache_backend: str = "memory"  # options: memory, redis
    cache_redis_url: str | None = None
    cache_max_entries: int = 10000
    cache_cleanup_threshold: int = 8000
    cache_sweep_interval_seconds: float = 60.0
    cache_coordinate_precision: int = 4
    ttl_current_seconds: int = 300
    ttl_forecast_seconds: int = 1800
    ttl_historical_seconds: int = 86400
    ttl_location_seconds: int = 604800

    # outbound rate limiting
    rate_limit_max_requests: int = 60
    rate_limit_window_seconds: float = 60.0

    # upstream providers
    data_source: str = "open_meteo"
    upstream_timeout_seconds: float = 10.0
    upstream_retries: int = 2
    upstream_backoff_seconds: float = 0.5
    http_cache_path: str = ".cache/skyroute-http"
    http_cache_expire_seconds: int = 300
    nominatim_user_agent: str = "skyroute-weather-router/0.1"
    forecast_days: int = 7
    hourly_hours: int = 24

    default_language: str = "en"
    default_units: str = "metric"

    # HTTP API access
    api_key: str | None = None
    api_key_redis_url: str | None = None
    api_key_redis_set: str = "api_keys"

    @field_validator("ollama_base_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs to avoid double slashes."""
        return str(v).rstrip("/")

    @field_validator("parser_backend", "cache_backend", "data_source", mode="after")
    @classmethod
    def lower_choice(cls, v: str) -> str:
        """Backend names are case-insensitive."""
        return str(v).strip().lower()

    @property
    def parser_enabled(self) -> bool:
        return self.parser_backend not in ("", "none", "off", "disabled")


settings = Settings()


if __name__ == "__main__":
    logger.setLevel("DEBUG")
    logger.debug(f"Loaded settings: {settings.model_dump_json(indent=4)}")
