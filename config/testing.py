"""Testing environment configuration."""

from typing import Optional

from .base import BaseConfig, Environment, LogLevel


class TestingConfig(BaseConfig):
    """Testing environment configuration."""

    # Environment
    environment: Environment = Environment.TESTING

    # Application
    debug: bool = True
    log_level: LogLevel = LogLevel.DEBUG
    enable_audit_log: bool = False

    # Database Configuration (In-memory SQLite)
    database_url: Optional[str] = "sqlite+aiosqlite:///:memory:"
    database_pool_size: int = 1  # Minimal pool for testing
    database_max_overflow: int = 2
    database_echo: bool = False  # Disable SQL logging during tests

    # Notifications stay local during tests
    notification_webhook_url: Optional[str] = None
    notification_timeout_seconds: float = 1.0
