"""
Configuration module for the FitConnect coaching core.
Loads settings from environment variables and an optional .env file.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    app_host: str = Field(
        default="0.0.0.0",
        alias="APP_HOST",
        description="Host to bind the application"
    )
    app_port: int = Field(
        default=8000,
        alias="APP_PORT",
        description="Port to bind the application"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level"
    )

    # Data Store Configuration
    store_backend: str = Field(
        default="memory",
        alias="STORE_BACKEND",
        description="Persistence backend: 'memory' or 'cosmos'"
    )
    cosmos_endpoint: str = Field(
        default="https://localhost:8081/",
        alias="COSMOS_ENDPOINT",
        description="Azure Cosmos DB account endpoint"
    )
    cosmos_database: str = Field(
        default="fitconnect",
        alias="COSMOS_DATABASE",
        description="Cosmos DB database name"
    )
    cosmos_key: str = Field(
        default="",
        alias="COSMOS_KEY",
        description="Account key; when empty DefaultAzureCredential is used"
    )

    # Scheduling
    schedule_commit_attempts: int = Field(
        default=3,
        alias="SCHEDULE_COMMIT_ATTEMPTS",
        description="Re-read/re-check rounds before a contended booking gives up"
    )
    display_timezone: str = Field(
        default="UTC",
        alias="DISPLAY_TIMEZONE",
        description="IANA timezone used for appointment time strings"
    )

    # Messaging
    message_send_attempts: int = Field(
        default=3,
        alias="MESSAGE_SEND_ATTEMPTS",
        description="Attempts for a message send that fails with a retryable error"
    )
    typing_throttle_seconds: float = Field(
        default=1.0,
        alias="TYPING_THROTTLE_SECONDS",
        description="Minimum interval between typing indicator writes per user"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()
