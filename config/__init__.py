"""Configuration package for the behavioral fraud review engine."""

from .base import BaseConfig, Environment, LogLevel
from .detection import DetectionSettings, ScoringConfig, DetectionConfig, EscalationConfig
from .development import DevelopmentConfig
from .production import ProductionConfig
from .testing import TestingConfig
from .factory import (
    ConfigFactory,
    ConfigurationError,
    get_settings,
    get_settings_for_environment,
    reload_settings,
)

__all__ = [
    # Base classes
    "BaseConfig",
    "Environment",
    "LogLevel",

    # Fraud signal tunables
    "DetectionSettings",
    "ScoringConfig",
    "DetectionConfig",
    "EscalationConfig",

    # Environment-specific configs
    "DevelopmentConfig",
    "ProductionConfig",
    "TestingConfig",

    # Factory and utilities
    "ConfigFactory",
    "ConfigurationError",
    "get_settings",
    "get_settings_for_environment",
    "reload_settings",
]
