import os
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: Optional[str] = Field(None, alias="SALESPRO_DATABASE_URL")
    database_pool_size: int = Field(5, alias="SALESPRO_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(5, alias="SALESPRO_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="SALESPRO_DATABASE_ECHO")

    local_store_path: Optional[str] = Field(None, alias="SALESPRO_LOCAL_STORE_PATH")
    storage_prefix: str = Field("salesPro_", alias="SALESPRO_STORAGE_PREFIX")
    storage_quota_bytes: int = Field(5 * 1024 * 1024, alias="SALESPRO_STORAGE_QUOTA_BYTES")
    avatar_inline_limit: int = Field(1000, alias="SALESPRO_AVATAR_INLINE_LIMIT")

    diagnostic_capacity: int = Field(100, alias="SALESPRO_DIAGNOSTIC_CAPACITY")
    health_enabled: bool = Field(True, alias="SALESPRO_HEALTH_ENABLED")
    health_auto_fix: bool = Field(True, alias="SALESPRO_HEALTH_AUTO_FIX")
    health_interval_seconds: float = Field(15.0, alias="SALESPRO_HEALTH_INTERVAL")
    health_error_window_seconds: float = Field(30.0, alias="SALESPRO_HEALTH_ERROR_WINDOW")

    leaderboard_limit: int = Field(50, alias="SALESPRO_LEADERBOARD_LIMIT")

    outbox_max_attempts: int = Field(5, alias="SALESPRO_OUTBOX_MAX_ATTEMPTS")
    outbox_backoff_base_seconds: float = Field(2.0, alias="SALESPRO_OUTBOX_BACKOFF_BASE")
    outbox_backoff_max_seconds: float = Field(300.0, alias="SALESPRO_OUTBOX_BACKOFF_MAX")
    outbox_interval_seconds: float = Field(10.0, alias="SALESPRO_OUTBOX_INTERVAL")

    telegram_bot_token: Optional[str] = Field(None, alias="SALESPRO_TELEGRAM_BOT_TOKEN")
    init_data_max_age_seconds: int = Field(14400, alias="SALESPRO_INIT_DATA_MAX_AGE")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        populate_by_name = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid SalesPro configuration: {exc}") from exc
