"""Application configuration using Pydantic settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Authoritative store
    database_url: str = "postgresql+asyncpg://localhost:5432/fieldserve"

    # Mirror store (spreadsheet values API)
    mirror_enabled: bool = True
    sheets_base_url: str = "https://sheets.googleapis.com/v4"
    sheets_spreadsheet_id: str = ""
    sheets_access_token: str | None = None

    # Per-call timeout applied to both stores
    store_timeout_seconds: float = 10.0

    # Reconciliation
    # Empty refuses every sync call until configured
    admin_sync_secret: str = ""
    sync_schedule_enabled: bool = False
    sync_interval_minutes: int = 60

    # Domain
    id_country_code: str = "+91"
    history_hide_completed_after_minutes: int = 60

    # API settings
    api_prefix: str = ""
    cors_origins: list[str] = ["*"]  # Restrict in production
    rate_limit_per_minute: int = 60

    # Environment
    debug: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
