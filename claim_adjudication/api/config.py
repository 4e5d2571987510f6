"""
Application Configuration
Pydantic Settings for environment-based configuration
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every field can be overridden through the environment or a local `.env`
    file; names are matched case-insensitively.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============================================================================
    # Application Settings
    # ============================================================================
    ENVIRONMENT: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment: development, staging, production, testing"
    )
    DEBUG: bool = Field(default=False, description="Debug mode (NEVER enable in production)")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FILE: str | None = Field(default=None, description="Optional rotating log file path")

    # ============================================================================
    # Database Configuration
    # ============================================================================
    POSTGRES_HOST: str = Field(default="db", description="PostgreSQL host")
    POSTGRES_PORT: int = Field(default=5432, description="PostgreSQL port")
    POSTGRES_DB: str = Field(default="claims_db", description="Database name")
    POSTGRES_USER: str = Field(default="claims_user", description="Database user")
    POSTGRES_PASSWORD: str = Field(default="", description="Database password")

    DATABASE_URL: str | None = Field(default=None, description="Full database URL")

    DB_POOL_SIZE: int = Field(default=20, description="Database connection pool size")
    DB_MAX_OVERFLOW: int = Field(default=10, description="Max overflow connections")
    DB_POOL_TIMEOUT: int = Field(default=30, description="Connection timeout (seconds)")

    @property
    def database_url(self) -> str:
        """Construct DATABASE_URL if not explicitly provided"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # ============================================================================
    # Redis Configuration
    # ============================================================================
    REDIS_HOST: str = Field(default="redis", description="Redis host")
    REDIS_PORT: int = Field(default=6379, description="Redis port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password")
    REDIS_URL: str | None = Field(default=None, description="Full Redis URL")

    @property
    def redis_url(self) -> str:
        """Construct REDIS_URL if not explicitly provided"""
        if self.REDIS_URL:
            return self.REDIS_URL
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ============================================================================
    # Cache Configuration
    # ============================================================================
    CACHE_ENABLED: bool = Field(default=True, description="Serve list/stats reads through Redis")
    CACHE_TTL: int = Field(default=300, gt=0, description="Cache TTL in seconds")
    CACHE_KEY_PREFIX: str = Field(default="claims", description="Namespace for claim cache keys")
    CACHE_OPERATION_TIMEOUT: float = Field(
        default=0.5, gt=0, description="Seconds before a cache call counts as unavailable"
    )

    # ============================================================================
    # Claim Lifecycle Configuration
    # ============================================================================
    REPOSITORY_TIMEOUT: float = Field(
        default=10.0, gt=0, description="Default deadline for a repository call (seconds)"
    )
    CLAIM_UPDATE_MAX_ATTEMPTS: int = Field(
        default=3, ge=1, description="Attempts before a concurrent modification surfaces"
    )
    CLAIM_UPDATE_RETRY_DELAY: float = Field(
        default=0.05, ge=0, description="Base delay between attempts (linear backoff)"
    )
    DEFAULT_PAGE_SIZE: int = Field(default=10, ge=1, description="Claims per page")
    MAX_PAGE_SIZE: int = Field(default=100, ge=1, description="Upper bound for page size")

    # ============================================================================
    # Rate Limiting
    # ============================================================================
    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Throttle claim and fraud endpoints")
    RATE_LIMIT_REQUESTS: int = Field(
        default=20, ge=1, description="Requests allowed per principal per window"
    )
    RATE_LIMIT_WINDOW_SECONDS: float = Field(
        default=10.0, gt=0, description="Rate limit window length (seconds)"
    )

    # ============================================================================
    # Fraud Detection Configuration
    # ============================================================================
    FRAUD_RULES_FILE: str | None = Field(
        default=None, description="YAML file overriding the fraud rule tables"
    )
    MEDICAL_RECORDS_URL: str = Field(
        default="http://medical-records:8080", description="Medical record service base URL"
    )
    MEDICAL_RECORDS_TIMEOUT: float = Field(
        default=5.0, gt=0, description="Medical record request timeout (seconds)"
    )

    # ============================================================================
    # Helper Properties
    # ============================================================================
    @property
    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.ENVIRONMENT.lower() == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode"""
        return self.ENVIRONMENT.lower() == "testing"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded once and reused.
    """
    return Settings()


# For new code, prefer using get_settings() or dependency injection
settings = get_settings()
