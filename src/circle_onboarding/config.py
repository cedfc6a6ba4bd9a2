"""
Circle Onboarding - Configuration and settings.

OnboardingSettings contains what the wizard engine and its Supabase-backed
collaborators need. Everything has a default so the engine can run offline
(tests, CLI) without a .env file.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class OnboardingSettings(BaseSettings):
    """
    Onboarding engine settings.

    Read from environment variables or a local .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Supabase (durable channel + equipment catalog)
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Application
    onboarding_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Persistence
    durable_write_debounce_seconds: float = 0.5
    local_cache_dir: str = ".onboarding_cache"
    # Live wizards untouched for this long are flushed and dropped
    wizard_idle_seconds: float = 1800

    # Tables
    progress_table: str = "onboarding_progress"
    equipment_table: str = "equipment"

    @property
    def is_development(self) -> bool:
        return self.onboarding_env == "development"

    @property
    def is_production(self) -> bool:
        return self.onboarding_env == "production"

    @property
    def supabase_configured(self) -> bool:
        return self.supabase_url.startswith("https://") and bool(self.supabase_service_role_key)


@lru_cache
def get_settings() -> OnboardingSettings:
    """Get cached settings instance."""
    return OnboardingSettings()


class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    _instance: OnboardingSettings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _SettingsProxy()
