"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Redis (for Dramatiq)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0
    # Key prefix for the distribution queues
    queue_namespace: str = "ib-engine"

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str | None = Field(
        default="logs/ib_engine.log",
        description="Rotated log file path, empty to disable file logging",
    )

    # Referral links
    frontend_url: str = Field(
        default="http://localhost:5173",
        description="Base URL used to build referral links",
    )
    referral_code_prefix: str = Field(
        default="REF", min_length=1, max_length=8
    )
    referral_code_length: int = Field(
        default=6, ge=4, le=12,
        description="Number of random characters after the prefix",
    )

    # Queries
    downline_default_depth: int = Field(default=5, ge=1)
    downline_max_depth: int = Field(default=10, ge=1)
    history_page_size: int = Field(default=50, ge=1)
    history_max_page_size: int = Field(default=200, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode='after')
    def validate_query_limits(self) -> 'Settings':
        """Keep default depth and page size inside their maximums."""
        if self.downline_default_depth > self.downline_max_depth:
            raise ValueError(
                'DOWNLINE_DEFAULT_DEPTH must not exceed DOWNLINE_MAX_DEPTH'
            )
        if self.history_page_size > self.history_max_page_size:
            raise ValueError(
                'HISTORY_PAGE_SIZE must not exceed HISTORY_MAX_PAGE_SIZE'
            )
        return self

    @model_validator(mode='after')
    def validate_production(self) -> 'Settings':
        """Validate production-specific requirements."""
        if self.environment == 'production':
            if self.debug:
                raise ValueError(
                    'DEBUG must be False in production environment. '
                    'Set DEBUG=false in your .env file.'
                )
            if self.database_url.startswith('sqlite'):
                logger.warning(
                    'DATABASE_URL points to SQLite in production. '
                    'Concurrent distribution runs need PostgreSQL.'
                )
        return self

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith((
            'postgresql://',
            'postgresql+asyncpg://',
            'sqlite+aiosqlite://',
        )):
            raise ValueError(
                'DATABASE_URL must start with postgresql://, '
                'postgresql+asyncpg:// or sqlite+aiosqlite://'
            )
        return v

    @field_validator('frontend_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize frontend URL so links never contain a double slash."""
        return v.rstrip('/')

    def build_referral_link(self, referral_code: str) -> str:
        """Build the public registration link for a referral code."""
        return f"{self.frontend_url}/register?ref={referral_code}"


# Global settings instance
settings = Settings()
