from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "HR Leave Engine"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "postgresql+asyncpg://hr:hr@db:5432/hr"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]
    log_level: str = "INFO"

    # Work schedule defaults used when the employee record has none.
    default_workday_minutes: int = 480
    pay_week_start: int = 0  # 0 = Monday, matches date.weekday()

    # Background worker
    accrual_interval_seconds: int = 86400
    auto_clock_out_after_hours: int = 16

    # Time tracking limits
    max_daily_minutes: int = 24 * 60

    # Storage retry budget for transient failures (deadlocks, dropped connections)
    storage_retry_attempts: int = 3


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
