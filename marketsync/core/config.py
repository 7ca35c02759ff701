# marketsync/core/config.py

import os
from datetime import datetime, timezone
from functools import lru_cache
from typing import List, Annotated
from pydantic import ConfigDict, BeforeValidator
from pydantic_settings import BaseSettings


def _parse_csv_list(value):
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""

    # eBay OAuth
    EBAY_CLIENT_ID: str = ""
    EBAY_CLIENT_SECRET: str = ""
    EBAY_RU_NAME: str = ""
    EBAY_SANDBOX_MODE: bool = False
    EBAY_SCOPES: Annotated[List[str], BeforeValidator(lambda v: _parse_csv_list(v))] = [
        "https://api.ebay.com/oauth/api_scope/sell.fulfillment.readonly",
        "https://api.ebay.com/oauth/api_scope/sell.finances",
    ]

    # Marketplace whose currency needs no conversion
    REFERENCE_MARKETPLACE: str = "EBAY_US"

    # Credentials / retry policy
    TOKEN_SAFETY_MARGIN_SECONDS: int = 120
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 1.0
    RETRY_MAX_DELAY: float = 5.0
    HTTP_TIMEOUT: float = 30.0

    # Pagination
    ORDER_PAGE_SIZE: int = 200
    FEE_PAGE_SIZE: int = 200
    MAX_RECORDS: int = 10000
    PAGE_DELAY_SECONDS: float = 0.5

    # Sync windows
    CLOCK_SKEW_SECONDS: int = 5
    MIN_WINDOW_SECONDS: int = 60
    MODIFIED_LOOKBACK_DAYS: int = 30
    DEFAULT_INITIAL_SYNC_DATE: datetime = datetime(2025, 11, 1, tzinfo=timezone.utc)

    # Financials
    WITHHOLDING_RATE: float = 0.01
    FIXED_ORDER_FEE: float = 0.24
    FALLBACK_EXCHANGE_RATE: float = 82.0
    CARD_FEE_PERCENT: float = 0.035
    CARD_FEE_TAX_PERCENT: float = 0.18
    CARD_FEE_TAX_POLICY_DATE: datetime = datetime(2025, 12, 1, tzinfo=timezone.utc)
    AD_FEE_TYPES: Annotated[List[str], BeforeValidator(lambda v: _parse_csv_list(v))] = ["AD_FEE"]
    RECOMPUTE_ON_RATE_CHANGE: bool = False

    # Scheduler
    SYNC_SCHEDULE_ENABLED: bool = False
    NEW_ORDERS_INTERVAL_MINUTES: int = 10
    MODIFIED_ORDERS_INTERVAL_MINUTES: int = 60

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def ebay_api_base(self) -> str:
        return "https://api.sandbox.ebay.com" if self.EBAY_SANDBOX_MODE else "https://api.ebay.com"

    @property
    def ebay_auth_base(self) -> str:
        return "https://auth.sandbox.ebay.com" if self.EBAY_SANDBOX_MODE else "https://auth.ebay.com"


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
