"""Development environment configuration."""

from pydantic import Field

from .base import BaseConfig, Environment, LogLevel
from .detection import DetectionSettings, EscalationConfig


def _development_detection() -> DetectionSettings:
    # Short cooldown so repeated manual runs keep producing alerts.
    return DetectionSettings(escalation=EscalationConfig(alert_cooldown_minutes=5))


class DevelopmentConfig(BaseConfig):
    """Local development against a PostgreSQL database."""

    environment: Environment = Environment.DEVELOPMENT

    debug: bool = True
    log_level: LogLevel = LogLevel.DEBUG
    log_format: str = "standard"

    database_name: str = "fraud_review_dev"
    database_user: str = "fraud_dev_user"
    database_password: str = "fraud_dev_pass"
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_echo: bool = True  # SQL logging

    security_operator_id: str = "dev_operator"
    detection: DetectionSettings = Field(default_factory=_development_detection)
