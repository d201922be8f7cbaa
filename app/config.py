from decimal import Decimal
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service configuration, read from environment variables or a .env file"""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./app/db/settlements.db"

    secret_key: str = "your_secret_key"
    jwt_algorithm: str = "HS256"

    # Settlement policy
    platform_fee_rate: Decimal = Field(Decimal("0.05"), ge=0, le=1, decimal_places=4)
    payout_delay_days: int = Field(7, ge=0)
    settlement_timezone: str = "UTC"  # calendar used for "start of today"

    # Listing
    default_page_size: int = Field(20, ge=1)
    max_page_size: int = Field(100, ge=1)

    request_timeout_seconds: float = Field(10.0, gt=0)

    enable_order_events: bool = False
    log_level: str = "INFO"


settings = Settings()
