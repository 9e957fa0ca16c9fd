import os
from dataclasses import dataclass
from functools import lru_cache

import redis.asyncio as redis
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables.

    One instance is built at process start and handed to every component
    constructor (see ``request_optimizer.dependencies``).
    """

    # Redis
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    redis_password: str | None = os.getenv("REDIS_PASSWORD")

    # Cache
    cache_key_prefix: str = os.getenv("CACHE_KEY_PREFIX", "api_cache")
    cache_version: int = int(os.getenv("CACHE_VERSION", "1"))
    cache_single_flight: bool = _env_bool("CACHE_SINGLE_FLIGHT", "true")
    prediction_cache_ttl: int = int(os.getenv("PREDICTION_CACHE_TTL", "86400"))  # 24 hours

    # Query pool
    query_pool_capacity: int = int(os.getenv("QUERY_POOL_CAPACITY", "1000"))

    # Telemetry
    call_log_key: str = os.getenv("CALL_LOG_KEY", "api_call_logs")
    telemetry_retention_days: int = int(os.getenv("TELEMETRY_RETENTION_DAYS", "30"))
    telemetry_exact_percentiles: bool = _env_bool("TELEMETRY_EXACT_PERCENTILES", "true")

    # Providers
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    tavily_api_key: str | None = os.getenv("TAVILY_API_KEY")
    tavily_base_url: str = os.getenv("TAVILY_BASE_URL", "https://api.tavily.com")
    provider_timeout: float = float(os.getenv("PROVIDER_TIMEOUT", "60"))

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        if self.cache_version < 1:
            raise ValueError("CACHE_VERSION must be a positive integer")

        if self.query_pool_capacity < 1:
            raise ValueError(
                f"QUERY_POOL_CAPACITY must be at least 1, got {self.query_pool_capacity}"
            )

        if self.telemetry_retention_days < 0:
            raise ValueError("TELEMETRY_RETENTION_DAYS must not be negative")

        if self.prediction_cache_ttl <= 0:
            raise ValueError("PREDICTION_CACHE_TTL must be positive")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def get_redis_client(settings: Settings | None = None) -> redis.Redis:
    """Create an asyncio Redis client instance."""
    settings = settings or get_settings()
    return redis.from_url(
        settings.redis_url,
        password=settings.redis_password,
        decode_responses=True,
    )
