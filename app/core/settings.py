"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Environment
    env: str = Field(default="dev", alias="ENV")
    timezone: str = Field(default="Australia/Sydney", alias="SCHOOL_TIMEZONE")

    # Database
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_db: str = Field(default="lessons", alias="POSTGRES_DB")
    postgres_user: str = Field(default="postgres", alias="POSTGRES_USER")
    postgres_password: str = Field(default="postgres", alias="POSTGRES_PASSWORD")
    database_url_override: Optional[str] = Field(default=None, alias="DATABASE_URL")

    # Security
    secret_key: str = Field(alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")

    # Calendar projection limits
    calendar_default_days: int = Field(default=90, alias="CALENDAR_DEFAULT_DAYS")
    calendar_max_range_days: int = Field(default=366, alias="CALENDAR_MAX_RANGE_DAYS")
    calendar_default_page_size: int = Field(default=100, alias="CALENDAR_DEFAULT_PAGE_SIZE")
    calendar_max_page_size: int = Field(default=500, alias="CALENDAR_MAX_PAGE_SIZE")

    # Outbound notifications
    notification_webhook_url: Optional[str] = Field(
        default=None, alias="NOTIFICATION_WEBHOOK_URL"
    )
    notification_poll_seconds: int = Field(default=30, alias="NOTIFICATION_POLL_SECONDS")
    notification_batch_size: int = Field(default=30, alias="NOTIFICATION_BATCH_SIZE")
    notification_max_attempts: int = Field(default=5, alias="NOTIFICATION_MAX_ATTEMPTS")

    # CORS
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")

    @property
    def database_url(self) -> str:
        """Get async database URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def database_url_sync(self) -> str:
        """Get sync database URL for Alembic."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
