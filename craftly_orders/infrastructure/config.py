"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from datetime import timedelta
from zoneinfo import ZoneInfo

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CRAFTLY_",
        extra="ignore",
    )

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Logging
    log_level: str = "INFO"

    # Order store
    order_store_backend: str = "memory"
    database_url: str = "postgresql+asyncpg://craftly:craftly_dev_password@db:5432/craftly"
    store_timeout_seconds: float = 5.0
    max_write_retries: int = 3

    # Order rules
    edit_lock_hours: int = 24
    local_delivery_fee_cents: int = 5000
    commission_rate_bps: int = 0
    currency: str = "PHP"
    timezone: str = "Asia/Manila"

    # Caching
    orders_cache_ttl_seconds: float = 1.0
    idempotency_ttl_hours: int = 24
    idempotency_purge_every: int = 100

    # Roles
    admin_user_ids: list[str] = []

    @field_validator("order_store_backend")
    @classmethod
    def _known_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in ("memory", "sql"):
            raise ValueError("order_store_backend must be 'memory' or 'sql'")
        return value

    @field_validator("commission_rate_bps")
    @classmethod
    def _commission_in_range(cls, value: int) -> int:
        if not 0 <= value <= 10_000:
            raise ValueError("commission_rate_bps must be between 0 and 10000")
        return value

    @property
    def edit_window(self) -> timedelta:
        return timedelta(hours=self.edit_lock_hours)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


settings = Settings()
