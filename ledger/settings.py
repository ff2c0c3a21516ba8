from decimal import Decimal
from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LOYALTY_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    environment: Literal["development", "staging", "production"] = "development"
    service_name: str = "loyalty-ledger"
    version: str = "1.0.0"

    # Civil zone used for every day boundary and day key
    timezone: str = "Asia/Jakarta"

    # Cashback policy
    cashback_step_amount: Decimal = Field(default=Decimal("15000"), gt=0)
    cashback_reward_per_step: Decimal = Field(default=Decimal("2500"), gt=0)
    cashback_daily_cap: Decimal = Field(default=Decimal("5000"), gt=0)

    # Membership policy
    membership_period_days: int = Field(default=30, gt=0)
    membership_default_fee: Decimal = Field(default=Decimal("35000"), gt=0)

    # Concurrency and store access
    member_lock_timeout_seconds: float = Field(default=5.0, gt=0)
    store_timeout_seconds: float = Field(default=5.0, gt=0)
    ledger_cache_enabled: bool = True

    history_default_limit: int = Field(default=50, gt=0)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown time zone: {value}") from exc
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
