"""Selects and validates the settings class for the running environment."""

import os
import logging
from typing import Type, Dict, Optional, List
from functools import lru_cache

from .base import BaseConfig, Environment
from .development import DevelopmentConfig
from .production import ProductionConfig
from .testing import TestingConfig

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Settings could not be loaded or are unsafe for the environment."""
    pass


class ConfigFactory:
    """Maps ``ENVIRONMENT`` to a settings class and builds it."""

    _config_map: Dict[Environment, Type[BaseConfig]] = {
        Environment.DEVELOPMENT: DevelopmentConfig,
        Environment.PRODUCTION: ProductionConfig,
        Environment.TESTING: TestingConfig,
    }

    @classmethod
    def get_config_class(cls, environment: Environment) -> Type[BaseConfig]:
        """Settings class registered for ``environment``.

        Raises:
            ConfigurationError: If no class is registered
        """
        try:
            return cls._config_map[environment]
        except KeyError:
            raise ConfigurationError(f"Unsupported environment: {environment}") from None

    @classmethod
    def resolve_environment(cls) -> Environment:
        """Read ``ENVIRONMENT``; unknown values fall back to development."""
        env_str = os.getenv("ENVIRONMENT", Environment.DEVELOPMENT.value).lower()
        try:
            return Environment(env_str)
        except ValueError:
            logger.warning(f"Invalid environment '{env_str}', defaulting to development")
            return Environment.DEVELOPMENT

    @classmethod
    def create_config(cls, environment: Optional[Environment] = None) -> BaseConfig:
        """Build settings for ``environment`` (default: from ``ENVIRONMENT``).

        Raises:
            ConfigurationError: If the settings fail validation or are unsafe
                for production
        """
        environment = environment or cls.resolve_environment()
        config_class = cls.get_config_class(environment)

        try:
            config = config_class()
        except Exception as e:
            raise ConfigurationError(f"Failed to create {environment.value} configuration: {e}") from e

        if environment == Environment.PRODUCTION:
            cls._validate_production_config(config)

        logger.info(f"Loaded {environment.value} configuration")
        return config

    @classmethod
    def _validate_production_config(cls, config: BaseConfig):
        """Reject production settings that would lose data; warn on weaker ones."""
        if config.get_database_url().startswith("sqlite"):
            raise ConfigurationError("Production must not run on SQLite")

        warnings: List[str] = []
        if not config.notification_webhook_url:
            warnings.append("no notification webhook configured, alerts are only logged")
        if not config.enable_audit_log:
            warnings.append("audit logging is disabled")
        if config.detection.escalation.alert_cooldown_minutes == 0:
            warnings.append("alert cooldown is disabled")

        for warning in warnings:
            logger.warning(f"Production configuration: {warning}")


@lru_cache()
def get_settings() -> BaseConfig:
    """Settings for the current environment, built once per process."""
    return ConfigFactory.create_config()


def get_settings_for_environment(environment: Environment) -> BaseConfig:
    """Settings for ``environment``, bypassing the cache."""
    return ConfigFactory.create_config(environment)


def reload_settings() -> BaseConfig:
    """Drop cached settings and load them again from the environment."""
    get_settings.cache_clear()
    return get_settings()
