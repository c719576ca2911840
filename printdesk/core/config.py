"""
printdesk/core/config.py

Purpose: Application configuration

- Loads environment variables
- Centralizes config values (DB URI, Messenger secrets, etc.)
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, validator
from pydantic_settings import BaseSettings
from typing import Optional, Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Validates all required configs on startup.
    """

    # Environment
    ENVIRONMENT: Literal["development", "test", "staging", "production"] = "development"

    # Persistence
    STORE_BACKEND: Literal["mongo", "memory"] = Field(
        default="mongo",
        description="Conversation store backend (mongo or in-process memory)"
    )
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGODB_DB_NAME: str = Field(
        default="printdesk",
        description="MongoDB database name"
    )

    # Messenger
    MESSENGER_APP_SECRET: Optional[str] = Field(
        default=None,
        description="App secret used to verify X-Hub-Signature"
    )
    MESSENGER_VALIDATION_TOKEN: Optional[str] = Field(
        default=None,
        description="Token echoed back during webhook verification"
    )
    MESSENGER_PAGE_ACCESS_TOKEN: Optional[str] = Field(
        default=None,
        description="Page access token for the Send and Graph APIs"
    )
    SERVER_URL: str = Field(
        default="http://localhost:8000",
        description="Public base URL of this service"
    )
    GRAPH_API_URL: str = Field(
        default="https://graph.facebook.com",
        description="Graph API base URL"
    )
    GRAPH_API_VERSION: str = Field(
        default="v2.6",
        description="Graph API version segment"
    )
    GRAPH_API_TIMEOUT: float = Field(
        default=10.0,
        description="Graph/Send API request timeout in seconds"
    )

    # Conversation
    NOTIFY_ON_STORE_FAILURE: bool = Field(
        default=True,
        description="Tell the user about transient storage failures"
    )

    # Application
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    API_PREFIX: str = Field(
        default="",
        description="API route prefix"
    )

    @validator("MESSENGER_APP_SECRET", "MESSENGER_VALIDATION_TOKEN", "MESSENGER_PAGE_ACCESS_TOKEN")
    def validate_messenger_secrets(cls, v, values):
        """Ensure Messenger credentials are set in production."""
        if values.get("ENVIRONMENT") == "production" and not v:
            raise ValueError("Messenger credentials are required in production environment")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def graph_base_url(self) -> str:
        return f"{self.GRAPH_API_URL.rstrip('/')}/{self.GRAPH_API_VERSION}"

    class Config:
        env_file = ".env"
        case_sensitive = True
        env_file_encoding = "utf-8"


# Global settings instance
settings = Settings()


def validate_settings():
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    errors = []

    if settings.STORE_BACKEND == "mongo" and not settings.MONGODB_URL:
        errors.append("MONGODB_URL is required for the mongo store backend")

    # Production-specific validations
    if settings.is_production:
        if not settings.MESSENGER_APP_SECRET:
            errors.append("MESSENGER_APP_SECRET is required in production")
        if not settings.MESSENGER_PAGE_ACCESS_TOKEN:
            errors.append("MESSENGER_PAGE_ACCESS_TOKEN is required in production")
        if settings.STORE_BACKEND == "memory":
            errors.append("STORE_BACKEND=memory is not allowed in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
