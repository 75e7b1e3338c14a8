"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "EVE Tracker"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Database ---
    database_url: str  # postgres connection string for asyncpg and pg_dump

    # --- EVE SSO ---
    eve_client_id: str
    eve_client_secret: str  # server-side only
    sso_token_url: str = "https://login.eveonline.com/v2/oauth/token"

    # --- ESI ---
    esi_base_url: str = "https://esi.evetech.net/latest"
    esi_datasource: str = "tranquility"
    user_agent: str = "eve-tracker/0.1.0"
    journal_limit: int = 100

    # --- Workers ---
    scheduler_timezone: str = "UTC"
    data_refresh_interval: int = 30  # minutes
    data_refresh_delay_seconds: float = 2.0
    token_refresh_interval: int = 15  # minutes
    token_refresh_lookahead_minutes: int = 30
    token_refresh_delay_seconds: float = 1.0
    db_maintenance_time: str = "03:00"
    backup_time: str = "02:00"
    backup_retention_days: int = 7
    backup_dir: str = "backups"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @model_validator(mode="after")
    def _check_token_window(self) -> "Settings":
        # A sweep must get at least one chance inside the lookahead window
        if self.token_refresh_interval >= self.token_refresh_lookahead_minutes:
            raise ValueError(
                "token_refresh_interval must be shorter than "
                "token_refresh_lookahead_minutes"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
