# leavebilling/core/config.py
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

# Locate the .env file relative to the project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BASE_DIR / ".env"


def _parse_id_list(raw: Optional[str]) -> List[int]:
    if not raw:
        return []
    return [int(part.strip()) for part in raw.split(",") if part.strip()]


class Settings(BaseSettings):
    model_config = ConfigDict(env_file=str(ENV_FILE), extra="ignore")

    # Application
    PROJECT_NAME: str = "LeaveBilling"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Security
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    CRON_SECRET: Optional[str] = None

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Lemon Squeezy
    LEMONSQUEEZY_API_KEY: Optional[str] = None
    LEMONSQUEEZY_STORE_ID: Optional[str] = None
    LEMONSQUEEZY_BASE_URL: str = "https://api.lemonsqueezy.com/v1"
    LEMONSQUEEZY_TIMEOUT_SECONDS: float = 15.0
    LEMONSQUEEZY_TEST_MODE: bool = False

    # Product catalog. Variant lists are comma-separated ids.
    LEMONSQUEEZY_MONTHLY_PRODUCT_ID: Optional[int] = None
    LEMONSQUEEZY_YEARLY_PRODUCT_ID: Optional[int] = None
    LEMONSQUEEZY_MONTHLY_VARIANT_IDS: str = ""
    LEMONSQUEEZY_YEARLY_VARIANT_IDS: str = ""
    LEMONSQUEEZY_YEARLY_VARIANT_ID: Optional[int] = None

    # Pricing
    YEARLY_PRICE_PER_SEAT: float = 1200.0
    CURRENCY: str = "PLN"
    FREE_TIER_SEATS: int = 3

    # URL
    FRONTEND_URL: str = "http://localhost:3000"
    BACKEND_URL: str = "http://localhost:8000"
    YEARLY_CHECKOUT_PATH: str = "/billing/switch-to-yearly"

    @property
    def monthly_variant_ids(self) -> List[int]:
        return _parse_id_list(self.LEMONSQUEEZY_MONTHLY_VARIANT_IDS)

    @property
    def yearly_variant_ids(self) -> List[int]:
        return _parse_id_list(self.LEMONSQUEEZY_YEARLY_VARIANT_IDS)

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


settings = Settings()


@lru_cache()
def get_settings() -> Settings:
    """Settings dependency, overridable in tests"""
    return settings
