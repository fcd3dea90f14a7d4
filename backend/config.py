"""
Configuration management for the application.
Loads settings from environment variables using Pydantic Settings.
"""

from decimal import Decimal
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./hotel_pms.sqlite"

    @property
    def database_url_async(self) -> str:
        """
        Transform DATABASE_URL to use the appropriate async driver.
        - PostgreSQL: postgresql+asyncpg://...
        - SQLite: sqlite+aiosqlite:///...
        """
        if self.DATABASE_URL.startswith("postgresql://"):
            return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif self.DATABASE_URL.startswith("postgres://"):
            return self.DATABASE_URL.replace("postgres://", "postgresql+asyncpg://", 1)
        elif self.DATABASE_URL.startswith("sqlite://"):
            return self.DATABASE_URL.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return self.DATABASE_URL

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours

    # Application
    APP_NAME: str = "Hotel PMS API"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"
    SEED_DEMO_DATA: bool = False

    # Property defaults (applied when a hotel is created without them)
    DEFAULT_TAX_RATE: Decimal = Decimal("0.16")  # 16% IVA
    DEFAULT_TIMEZONE: str = "America/Mexico_City"
    DEFAULT_CURRENCY: str = "MXN"

    # Subscription Settings
    DEFAULT_SUBSCRIPTION_DAYS: int = 30

    # Reservations
    # Cancel and no-show return the room to Available even if another active
    # reservation still references it. Set False to keep such rooms as they are.
    CANCEL_FREES_ROOM_UNCONDITIONALLY: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True


# Singleton instance - import this in other modules
settings = Settings()
