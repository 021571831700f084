from pydantic_settings import BaseSettings
from pydantic import field_validator
from decimal import Decimal
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./craftmarket.db"

    # Database Connection Pool Settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # JWT Settings (tokens are issued by the auth service, verified here)
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # App Settings
    APP_NAME: str = "CraftMarket API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Orders
    ORDER_NUMBER_PREFIX: str = "AC"
    DEFAULT_CURRENCY: str = "LKR"
    # Flat shipping cost per shipping method, in catalog currency units
    SHIPPING_RATES: dict[str, Decimal] = {
        "standard": Decimal("200"),
        "express": Decimal("500"),
        "international": Decimal("2000"),
        "pickup": Decimal("0"),
    }
    TAX_RATE: Decimal = Decimal("0")  # No tax on handicrafts in the home market
    LOYALTY_POINT_UNIT: int = 100  # 1 point per 100 currency units spent

    # Lead time estimation
    DEFAULT_LEAD_TIME_DAYS: int = 7
    CUSTOMIZATION_EXTRA_DAYS: int = 7

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('SHIPPING_RATES', mode='before')
    @classmethod
    def parse_shipping_rates(cls, v):
        if isinstance(v, str):
            return json.loads(v)
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
