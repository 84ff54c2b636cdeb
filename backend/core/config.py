"""
Configuration management for the menu builder client.

Settings are loaded from environment variables (and an optional .env
file) so deployments can point the editor at a different menu service
or tune the synchronization windows without code changes.
"""

from typing import Optional
from functools import lru_cache

from pydantic import field_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Menu builder settings with environment variable support.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment Settings
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Menu Service Connection
    menu_api_base_url: str = "http://localhost:3000"
    menu_api_token: Optional[str] = None

    # Loading
    menu_load_timeout_seconds: float = 20.0  # blanket timeout for the full load
    catalog_page_size: int = 1000

    # Synchronization
    lock_fence_window_seconds: float = 0.5  # ignore external refreshes after a local transition
    reauth_redirect_delay_seconds: float = 2.0
    statistics_refresh_enabled: bool = True

    # Pricing
    price_match_tolerance: float = 0.01  # actual price this close to recommended is stored as null
    price_drift_tolerance: float = 0.005  # smaller recalculation differences are not reported

    # Read-through cache
    cache_ttl_seconds: int = 300
    cache_max_size: int = 100

    @field_validator("log_level")
    def validate_log_level(cls, v):
        """Normalize and validate the log level name."""
        level = v.upper()
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if level not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return level

    @field_validator("menu_api_base_url")
    def validate_menu_api_base_url(cls, v, info: ValidationInfo):
        """Require HTTPS for the menu service in production."""
        env = (info.data.get("environment") or "development").lower()
        if env == "production" and not v.startswith("https://"):
            raise ValueError("MENU_API_BASE_URL must use https in production")
        return v.rstrip("/")

    @field_validator(
        "menu_load_timeout_seconds",
        "lock_fence_window_seconds",
        "reauth_redirect_delay_seconds",
        "price_match_tolerance",
        "price_drift_tolerance",
    )
    def validate_non_negative(cls, v, info: ValidationInfo):
        if v < 0:
            raise ValueError(f"{info.field_name.upper()} must not be negative")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get menu builder settings (cached).

    Returns:
        Settings instance with environment variables loaded
    """
    return Settings()


# Global settings instance
settings = get_settings()
