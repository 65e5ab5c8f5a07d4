from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.
    Uses pydantic for validation and type safety.
    """
    app_name: str = "Renewal Tracker"
    environment: str = "development"
    debug: bool = False

    database_url: str = "sqlite:///./renewals.db"
    sql_echo: bool = False

    log_level: str = "INFO"

    # Token lifetime in hours. None means tokens stay valid until logout.
    token_expire_hours: Optional[int] = None

    # Renewals ending within this many days (inclusive) are "expiring-soon"
    expiring_soon_days: int = 30

    # When enabled, non-admin users only see their own renewals
    scope_renewals_to_owner: bool = False

    # Seeded on startup when both email and password are set
    default_admin_email: Optional[str] = None
    default_admin_password: Optional[str] = None
    default_admin_name: str = "Administrator"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance. Load once, reuse throughout application lifecycle.
    """
    return Settings()
