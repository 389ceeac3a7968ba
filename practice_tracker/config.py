"""
Environment configuration.

The service URL and the public anonymous key are required; a missing value
is a fatal startup condition.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_STORAGE_PATH = Path.home() / ".practice_tracker" / "storage.json"


class ConfigurationError(Exception):
    """Raised when required configuration is missing."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    supabase_url: str = Field(default="", validation_alias="SUPABASE_URL")
    supabase_anon_key: str = Field(default="", validation_alias="SUPABASE_ANON_KEY")
    storage_path: Path = Field(default=DEFAULT_STORAGE_PATH, validation_alias="PRACTICE_TRACKER_STORAGE")
    log_level: str = Field(default="WARNING", validation_alias="LOG_LEVEL")
    log_file: Optional[str] = Field(default=None, validation_alias="LOG_FILE")

    @field_validator("supabase_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("supabase_anon_key")
    @classmethod
    def strip_key(cls, v: str) -> str:
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


def load_settings(**overrides) -> Settings:
    """
    Load settings from the environment and fail fast when incomplete.

    Args:
        **overrides: Explicit values taking precedence over the environment

    Returns:
        Settings with both backend credentials present

    Raises:
        ConfigurationError: If SUPABASE_URL or SUPABASE_ANON_KEY is missing
    """
    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    missing = []
    if not settings.supabase_url:
        missing.append("SUPABASE_URL")
    if not settings.supabase_anon_key:
        missing.append("SUPABASE_ANON_KEY")
    if missing:
        raise ConfigurationError(f"Missing {' or '.join(missing)} in environment or .env file")

    return settings
