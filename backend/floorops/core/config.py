"""Engine configuration using pydantic-settings.

All tunables should be read through the settings object rather than
hard-coded in the services. This ensures:
1. Type validation at startup
2. Centralized configuration
3. Documentation of available settings
4. Proper defaults
"""

from decimal import Decimal
from functools import lru_cache
from typing import Dict, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables.

    Every variable is prefixed with ``FLOOROPS_`` (``FLOOROPS_VAT_RATE=10``).
    Services accept an explicit instance so tests can inject their own.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FLOOROPS_",
        case_sensitive=False,
        extra="ignore",
    )

    # Pricing
    vat_rate: Decimal = Decimal("7")  # percent applied on top of item subtotals

    # Floor
    takeout_table_id: str = "takeout"

    # Station routing: category id -> "kitchen" | "bar"
    category_station_mapping: Dict[str, Literal["kitchen", "bar"]] = {}
    default_station: Literal["kitchen", "bar"] = "kitchen"

    # Inventory
    # Force-completing an order (payment) deducts recipes for items that were
    # never marked served, so a later void can restore them symmetrically.
    deduct_on_force_complete: bool = True

    # Loyalty
    loyalty_enabled: bool = True
    loyalty_spend_rate: Decimal = Decimal("100")  # amount spent per point earned
    silver_tier_points: int = 100_000
    gold_tier_points: int = 500_000

    # Notifications
    in_app_notifications: bool = True
    notification_buffer_size: int = 200

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("vat_rate")
    @classmethod
    def validate_vat_rate(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("vat_rate cannot be negative")
        return v

    @field_validator("loyalty_spend_rate")
    @classmethod
    def validate_spend_rate(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("loyalty_spend_rate must be positive")
        return v

    @model_validator(mode="after")
    def validate_tier_thresholds(self) -> "Settings":
        """Tiers must be strictly ordered Bronze < Silver < Gold."""
        if self.silver_tier_points <= 0:
            raise ValueError("silver_tier_points must be positive")
        if self.silver_tier_points >= self.gold_tier_points:
            raise ValueError(
                f"silver_tier_points ({self.silver_tier_points}) must be below "
                f"gold_tier_points ({self.gold_tier_points})"
            )
        return self

    @property
    def vat_multiplier(self) -> Decimal:
        return 1 + self.vat_rate / 100

    def is_takeout(self, table_id: str) -> bool:
        """Takeout orders use the sentinel id, optionally suffixed (``takeout-1234``)."""
        if not table_id:
            return False
        sentinel = self.takeout_table_id
        return table_id == sentinel or table_id.startswith(f"{sentinel}-")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
