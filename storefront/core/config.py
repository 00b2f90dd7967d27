from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///./storefront.db"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="SF_", extra="ignore")

    app_name: str = "Storefront Checkout Core"
    env: str = "dev"
    log_level: str = "INFO"

    database_url: str = DEFAULT_DATABASE_URL

    currency: str = "PKR"
    home_country: str = "Pakistan"
    free_shipping_threshold: Decimal = Field(default=Decimal("5000"), ge=0)
    tax_rate: Decimal = Field(default=Decimal("0.10"), ge=0, le=1)
    stale_quote_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="max absolute total drift tolerated between shown and final pricing",
    )

    postal_code_digits: int = Field(default=5, ge=1, le=10)
    phone_pattern: str = r"^(\+92|0)3\d{9}$"
    return_window_days: int = Field(default=30, ge=0)

    # Remote collaborators: local | http
    coupon_backend: str = "local"
    coupon_api_base_url: str = "http://coupons:8080"
    order_api_base_url: str = "http://orders:8080"
    remote_timeout_seconds: int = 10
    remote_max_retries: int = Field(default=2, ge=0, le=5)
    remote_api_key: str | None = None

    def model_post_init(self, __context) -> None:
        if self.env.lower() == "dev":
            return

        if self.database_url == DEFAULT_DATABASE_URL:
            raise ValueError(
                "the bundled sqlite database is not allowed outside dev mode; set env var: SF_DATABASE_URL"
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
