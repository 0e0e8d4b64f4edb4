"""Configuration management for Unblocked.

Uses Pydantic Settings for type-safe, environment-based configuration. These
settings are the process-level defaults; composition options passed to the
host explicitly always take precedence over them.
"""

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv(override=True)

DEFAULT_SECRET = "unblocked-secret-change-me"


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # App configuration
    app_name: str = Field("Unblocked", alias="UNBLOCKED_APP_NAME")
    environment: str = Field("development", alias="UNBLOCKED_ENVIRONMENT")
    debug: bool = Field(False, alias="UNBLOCKED_DEBUG")
    secret: str | None = Field(None, alias="UNBLOCKED_SECRET")

    # API configuration
    base_url: str | None = Field(None, alias="UNBLOCKED_URL")
    base_path: str = Field("/api/unblocked", alias="UNBLOCKED_BASE_PATH")
    # Comma-separated list of extra trusted origins
    trusted_origins: str | None = Field(None, alias="UNBLOCKED_TRUSTED_ORIGINS")

    # Storage configuration
    # Omit both to run entirely in memory.
    database_url: str | None = Field(None, alias="UNBLOCKED_DATABASE_URL")
    redis_url: str | None = Field(None, alias="UNBLOCKED_REDIS_URL")
    use_number_id: bool = Field(False, alias="UNBLOCKED_USE_NUMBER_ID")

    # Rate limiting defaults
    rate_limit_enabled: bool | None = Field(None, alias="UNBLOCKED_RATE_LIMIT_ENABLED")
    rate_limit_window: int = Field(10, alias="UNBLOCKED_RATE_LIMIT_WINDOW")
    rate_limit_max: int = Field(100, alias="UNBLOCKED_RATE_LIMIT_MAX")
    rate_limit_storage: str = Field("memory", alias="UNBLOCKED_RATE_LIMIT_STORAGE")

    # Logging configuration
    log_level: str = Field("INFO", alias="UNBLOCKED_LOG_LEVEL")
    log_format: str = Field("text", alias="UNBLOCKED_LOG_FORMAT")  # text or json

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def trusted_origin_list(self) -> list[str]:
        """Parse trusted origins from the comma-separated setting."""
        if not self.trusted_origins:
            return []
        return [origin.strip() for origin in self.trusted_origins.split(",")]

    @property
    def redis_enabled(self) -> bool:
        """Whether Redis should back the cache, based on UNBLOCKED_REDIS_URL being set."""
        return bool(self.redis_url)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["text", "json"]
        if v.lower() not in valid_formats:
            raise ValueError(f"Log format must be one of: {valid_formats}")
        return v.lower()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment setting."""
        valid_environments = ["development", "test", "staging", "production"]
        if v.lower() not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v.lower()

    @field_validator("rate_limit_storage")
    @classmethod
    def validate_rate_limit_storage(cls, v: str) -> str:
        valid_storages = ["memory", "database"]
        if v.lower() not in valid_storages:
            raise ValueError(f"Rate limit storage must be one of: {valid_storages}")
        return v.lower()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


def get_settings() -> Settings:
    """Build a fresh settings instance from the environment."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance - will be created when first accessed
settings = None


def get_settings_instance() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global settings  # noqa: PLW0603
    if settings is None:
        settings = get_settings()
    return settings


def reset_settings_instance() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global settings  # noqa: PLW0603
    settings = None
