"""Production environment configuration."""

from pydantic import Field

from .base import BaseConfig, Environment, LogLevel


class ProductionConfig(BaseConfig):
    """Production environment configuration."""

    # Environment
    environment: Environment = Environment.PRODUCTION

    # Application
    debug: bool = False
    log_level: LogLevel = LogLevel.INFO
    log_format: str = "json"
    log_file: str = "logs/fraud_review.log"

    # Database Configuration (required secrets)
    database_host: str = Field(...)
    database_name: str = Field(...)
    database_user: str = Field(...)
    database_password: str = Field(...)
    database_pool_size: int = 20
    database_max_overflow: int = 30
    database_echo: bool = False  # Never log SQL in production
