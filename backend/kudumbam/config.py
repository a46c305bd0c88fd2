"""
Kudumbam — Application Configuration
All config from the environment / .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- App ---
    app_env: str = "development"
    app_debug: bool = True
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_secret: str = "default-dev-key-change-me-in-production"
    log_level: str = "INFO"

    # --- Storage ---
    database_path: str = "data/kudumbam.sqlite3"

    # --- Accounts & Sessions ---
    session_ttl_hours: int = 24
    invitation_ttl_days: int = 7
    minimum_member_age: int = 18
    invitations_page_size: int = 10
    admin_page_size: int = 10

    # --- Community ---
    list_page_size: int = 20
    max_pinned_announcements: int = 3

    # --- Password reset ---
    password_reset_ttl_hours: int = 24
    password_reset_repeat_minutes: int = 60
    password_reset_page_size: int = 10
    password_reset_url: str = "http://localhost:8000/reset_password?token="

    # --- Default admin (seeded on first start) ---
    admin_username: str = "admin"
    admin_email: str = "admin@kudumbam.local"
    admin_password: str = "admin123"

    # --- HTTP ---
    rate_limit_per_minute: int = 120
    cors_origins_csv: str = "*"

    # --- Client ---
    api_base_url: str = "http://localhost:8000/api/v1"
    api_timeout_seconds: float = 15.0
    client_storage_path: str = ""
    feature_cache_ttl_seconds: int = 300
    location_cache_ttl_seconds: int = 1800
    pin_lookup_debounce_ms: int = 500
    spouse_gender_debounce_ms: int = 100

    # --- Derived ---
    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins_csv.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Cached singleton for application settings."""
    return Settings()
