"""Base configuration settings for the behavioral fraud review engine."""

from typing import Optional
from enum import Enum
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .detection import DetectionSettings


class Environment(str, Enum):
    """Application environment types."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class BaseConfig(BaseSettings):
    """Base configuration settings shared across all environments."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Environment = Field(default=Environment.DEVELOPMENT)

    # Application
    app_name: str = "Behavior Fraud Review"
    app_version: str = "1.0.0"
    debug: bool = False

    # Logging
    log_level: LogLevel = LogLevel.INFO
    log_format: str = Field(default="standard", description="'json' or 'standard'")
    log_file: Optional[str] = None
    enable_audit_log: bool = True

    # Database Configuration
    database_url: Optional[str] = None
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "fraud_review"
    database_user: str = "fraud_user"
    database_password: str = "fraud_pass"
    database_pool_size: int = 10
    database_max_overflow: int = 20
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    database_echo: bool = False

    # Notifications
    notification_webhook_url: Optional[str] = None
    notification_timeout_seconds: float = 10.0
    security_operator_id: str = Field(default="admin", description="Recipient of alert notifications")

    # Fraud signal tunables
    detection: DetectionSettings = Field(default_factory=DetectionSettings)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log format."""
        if v not in ("json", "standard"):
            raise ValueError("log_format must be 'json' or 'standard'")
        return v

    def get_database_url(self) -> str:
        """Get the complete database URL."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING
