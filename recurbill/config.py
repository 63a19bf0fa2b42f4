"""
Application configuration using Pydantic Settings
"""
from decimal import Decimal
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables
    """
    # Database
    DATABASE_URL: str = "sqlite:///./recurbill.db"

    # Application
    TIMEZONE: str = "UTC"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Billing
    CURRENCY: str = "USD"
    DEFAULT_TAX_RATE: Decimal = Decimal("0")

    # Automated billing run (APScheduler, UTC)
    BILLING_RUN_ENABLED: bool = False
    BILLING_RUN_HOUR: int = 6
    BILLING_RUN_MINUTE: int = 0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def get_sqlalchemy_url(self) -> str:
        """
        Convert DATABASE_URL to SQLAlchemy format (postgresql+psycopg://)
        """
        url = self.DATABASE_URL
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+psycopg://", 1)
        return url


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance (singleton)
    """
    return Settings()
