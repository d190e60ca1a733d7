"""
Taskflow Application Configuration

Configuration management with environment variable support.
Implements secure defaults and validation for the request infrastructure.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import Optional, List
from functools import lru_cache
from dotenv import load_dotenv

from ..constants import (
    CACHE_KEY_PREFIX,
    COMPRESSION_MIN_BYTES,
    DEFAULT_CACHE_TTL_SECONDS,
    MAX_METRICS,
    MAX_REQUEST_BODY_BYTES,
    MAX_SLOW_QUERIES,
    SLOW_OPERATION_THRESHOLD_MS,
    SLOW_QUERY_THRESHOLD_MS,
)

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation and secure defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Environment settings
    ENVIRONMENT: str = Field(
        default="development", description="Application environment"
    )
    SERVICE_NAME: str = Field(default="taskflow-api", description="Service name")

    # Redis configuration (shared cache tier)
    REDIS_URL: Optional[str] = Field(
        default=None,
        description="Redis connection URL; unset means local in-process cache only",
    )
    REDIS_MAX_CONNECTIONS: int = Field(
        default=10, ge=1, le=50, description="Redis connection pool size"
    )
    REDIS_CONNECT_TIMEOUT: float = Field(
        default=0.5, gt=0, le=10, description="Redis connect timeout in seconds"
    )
    REDIS_OPERATION_TIMEOUT: float = Field(
        default=0.5, gt=0, le=10, description="Redis per-command timeout in seconds"
    )

    # Cache behaviour
    CACHE_KEY_PREFIX: str = Field(
        default=CACHE_KEY_PREFIX, description="Namespace prefix for cache keys"
    )
    CACHE_DEFAULT_TTL: int = Field(
        default=DEFAULT_CACHE_TTL_SECONDS,
        ge=1,
        description="Default cache TTL in seconds",
    )
    CACHE_CLEANUP_INTERVAL_SECONDS: int = Field(
        default=300, ge=1, description="Local cache cleanup interval"
    )

    # Circuit breaker settings for the shared cache backend
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = Field(
        default=5, ge=1, le=20, description="Circuit breaker failure threshold"
    )
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: float = Field(
        default=30.0,
        ge=1,
        le=300,
        description="Circuit breaker recovery timeout in seconds",
    )

    # Rate limit policies
    RATE_LIMIT_API_WINDOW_MS: int = Field(default=15 * 60 * 1000, ge=1)
    RATE_LIMIT_API_MAX_REQUESTS: int = Field(default=1000, ge=1)
    RATE_LIMIT_AUTH_WINDOW_MS: int = Field(default=15 * 60 * 1000, ge=1)
    RATE_LIMIT_AUTH_MAX_REQUESTS: int = Field(default=5, ge=1)
    RATE_LIMIT_UPLOAD_WINDOW_MS: int = Field(default=60 * 1000, ge=1)
    RATE_LIMIT_UPLOAD_MAX_REQUESTS: int = Field(default=10, ge=1)
    RATE_LIMIT_SEARCH_WINDOW_MS: int = Field(default=60 * 1000, ge=1)
    RATE_LIMIT_SEARCH_MAX_REQUESTS: int = Field(default=60, ge=1)
    RATE_LIMIT_PASSWORD_RESET_WINDOW_MS: int = Field(
        default=24 * 60 * 60 * 1000, ge=1
    )
    RATE_LIMIT_PASSWORD_RESET_MAX_REQUESTS: int = Field(default=1, ge=1)

    # Performance monitoring
    PERFORMANCE_MAX_METRICS: int = Field(
        default=MAX_METRICS, ge=1, description="Ring buffer capacity"
    )
    SLOW_OPERATION_THRESHOLD_MS: float = Field(
        default=SLOW_OPERATION_THRESHOLD_MS,
        gt=0,
        description="Operations slower than this are logged",
    )
    SLOW_QUERY_THRESHOLD_MS: float = Field(
        default=SLOW_QUERY_THRESHOLD_MS,
        gt=0,
        description="Slow query threshold in milliseconds",
    )
    SLOW_QUERY_RETENTION: int = Field(
        default=MAX_SLOW_QUERIES, ge=1, description="Number of slow queries kept"
    )
    PERFORMANCE_SUMMARY_INTERVAL_SECONDS: int = Field(
        default=300, ge=1, description="Interval for the periodic summary log"
    )

    # Request pipeline
    MAX_REQUEST_BODY_BYTES: int = Field(default=MAX_REQUEST_BODY_BYTES, ge=1)
    COMPRESSION_MIN_BYTES: int = Field(default=COMPRESSION_MIN_BYTES, ge=0)

    # Security configuration
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="CORS allowed origins (comma-separated)",
    )
    CORS_CREDENTIALS: bool = Field(default=True, description="Allow CORS credentials")

    # Development and debugging
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value."""
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @field_validator("REDIS_URL")
    @classmethod
    def validate_redis_url(cls, v):
        """Treat an empty REDIS_URL as unset."""
        if v is not None and not v.strip():
            return None
        if v and not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("REDIS_URL must be a redis:// or rediss:// URL")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as list."""
        return [
            origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()
        ]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Create global settings instance
settings = get_settings()
