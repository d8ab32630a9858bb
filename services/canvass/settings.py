from typing import Optional

from services.common.settings import (
    AliasChoices,
    BaseSettings,
    Field,
    SettingsConfigDict,
)


class Settings(BaseSettings):
    """Canvass Service settings and configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Database configuration
    db_url_canvass: str = Field(
        ...,  # Required field - no default to prevent production mistakes
        description="Database connection URL",
        validation_alias=AliasChoices("DB_URL_CANVASS"),
    )
    DB_ECHO: bool = Field(default=False, description="Echo SQL statements")

    # Service configuration
    SERVICE_NAME: str = Field(default="canvass-service", description="Service name")
    PORT: int = Field(default=8010, description="Port to bind to")
    HOST: str = Field(default="0.0.0.0", description="Host to bind to")
    DEBUG: bool = Field(default=False, description="Debug mode")

    # API Keys for service communication
    api_frontend_canvass_key: str = Field(
        ...,  # Required field - no default to prevent production mistakes
        description="Frontend API key to access this Canvass service",
    )
    api_admin_canvass_key: Optional[str] = Field(
        default=None,
        description="Admin console API key (audit feed and undo)",
    )

    # Search configuration
    SEARCH_PAGE_SIZE: int = Field(
        default=20, description="Fixed number of contacts per search page"
    )
    FILTER_TOKEN_SECRET: str = Field(
        default="change-me-filter-token-secret",
        description="Secret used to sign search filter tokens",
    )
    FILTER_TOKEN_EXPIRY: int = Field(
        default=3600, description="Filter token lifetime in seconds"
    )

    # Mutation configuration
    NOTES_MAX_LENGTH: int = Field(
        default=2000, description="Maximum length of contact notes"
    )
    CONTACT_AUDIT_LIMIT: int = Field(
        default=50, description="Audit entries returned with a contact"
    )

    # Logging configuration
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Log format (json or text)")

    # Application info
    APP_NAME: str = Field(default="canvass-service", description="Application name")
    APP_VERSION: str = Field(default="0.1.0", description="Application version")
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment (development, staging, production)",
    )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global _settings
    if _settings is None:
        _settings = Settings()  # type: ignore[call-arg]
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
