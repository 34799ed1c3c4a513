"""Logging configuration for the behavioral fraud review engine.

This module provides:
- Centralized logging configuration (stdlib dictConfig + structlog)
- JSON formatting through python-json-logger
- Audit logging for alerts, review cases and account freezes
"""

import logging
import logging.config
from typing import Dict, Any, Optional, List
from pathlib import Path
from datetime import datetime

import structlog
from pythonjsonlogger import jsonlogger

from .base import BaseConfig

AUDIT_LOGGER_NAME = 'audit'


class CustomJSONFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps service metadata on every record."""

    def __init__(self, *args, service_version: str = "unknown", environment: str = "unknown", **kwargs):
        super().__init__(*args, **kwargs)
        self.service_version = service_version
        self.environment = environment

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]):
        super().add_fields(log_record, record, message_dict)

        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.utcnow().isoformat()

        log_record['service'] = 'behavior-fraud-review'
        log_record['version'] = self.service_version
        log_record['environment'] = self.environment

        if log_record.get('level'):
            log_record['level'] = log_record['level'].upper()
        else:
            log_record['level'] = record.levelname


class AuditLogger:
    """Specialized logger for operator-relevant fraud events."""

    def __init__(self, enabled: bool = True):
        self.logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self.enabled = enabled

    def _emit(self, message: str, event_type: str, **fields):
        if not self.enabled:
            return
        self.logger.info(
            message,
            extra={
                'event_type': event_type,
                'timestamp': datetime.utcnow().isoformat(),
                **fields
            }
        )

    def log_alert_created(self, alert_id: str, user_id: str, alert_type: str, severity: str):
        """Log creation of an anomaly alert."""
        self._emit(
            "Anomaly alert created",
            'alert_created',
            alert_id=alert_id,
            user_id=user_id,
            alert_type=alert_type,
            severity=severity
        )

    def log_alert_status_changed(self, alert_id: str, old_status: str, new_status: str, reviewer_id: Optional[str]):
        self._emit(
            "Anomaly alert status changed",
            'alert_status_changed',
            alert_id=alert_id,
            old_status=old_status,
            new_status=new_status,
            reviewer_id=reviewer_id
        )

    def log_case_created(self, case_id: str, user_id: str, case_type: str, priority: str, alert_ids: List[str]):
        self._emit(
            "Review case created",
            'case_created',
            case_id=case_id,
            user_id=user_id,
            case_type=case_type,
            priority=priority,
            alert_ids=alert_ids
        )

    def log_case_transition(self,
                            case_id: str,
                            old_status: str,
                            new_status: str,
                            operator_id: Optional[str],
                            decision_action: Optional[str] = None):
        """Log a review case status transition.

        Args:
            case_id: Review case ID
            old_status: Status before the transition
            new_status: Status after the transition
            operator_id: Operator who moved the case
            decision_action: Decision action when the case was closed
        """
        self._emit(
            "Review case transitioned",
            'case_transition',
            case_id=case_id,
            old_status=old_status,
            new_status=new_status,
            operator_id=operator_id,
            decision_action=decision_action
        )

    def log_account_frozen(self,
                           user_id: str,
                           freeze_id: str,
                           reason: str,
                           frozen_by: str,
                           frozen_features: List[str],
                           expires_at: Optional[datetime],
                           superseded: int):
        self._emit(
            "Account frozen",
            'account_frozen',
            user_id=user_id,
            freeze_id=freeze_id,
            reason=reason,
            frozen_by=frozen_by,
            frozen_features=frozen_features,
            expires_at=expires_at.isoformat() if expires_at else None,
            superseded_freezes=superseded
        )

    def log_account_unfrozen(self, user_id: str, lifted_by: str, reason: Optional[str], lifted: int):
        self._emit(
            "Account unfrozen",
            'account_unfrozen',
            user_id=user_id,
            lifted_by=lifted_by,
            reason=reason,
            lifted_freezes=lifted
        )


def build_logging_config(settings: BaseConfig) -> Dict[str, Any]:
    """Build the dictConfig for the given settings.

    Returns:
        Logging configuration dictionary
    """
    log_level = settings.log_level.value
    formatter = 'json' if settings.log_format == 'json' else 'standard'
    json_formatter = {
        '()': CustomJSONFormatter,
        'format': '%(timestamp)s %(level)s %(name)s %(message)s',
        'service_version': settings.app_version,
        'environment': settings.environment.value,
    }

    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'json': json_formatter,
            'standard': {
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S',
            }
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'level': log_level,
                'formatter': formatter,
                'stream': 'ext://sys.stdout'
            },
            'audit_console': {
                'class': 'logging.StreamHandler',
                'level': 'INFO',
                'formatter': 'json',
                'stream': 'ext://sys.stdout'
            }
        },
        'loggers': {
            '': {  # Root logger
                'level': log_level,
                'handlers': ['console'],
                'propagate': False
            },
            AUDIT_LOGGER_NAME: {
                'level': 'INFO',
                'handlers': ['audit_console'],
                'propagate': False
            },
            'sqlalchemy': {
                'level': 'WARNING',
                'handlers': ['console'],
                'propagate': False
            },
            'aiohttp': {
                'level': 'WARNING',
                'handlers': ['console'],
                'propagate': False
            }
        }
    }

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        config['handlers']['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'level': log_level,
            'formatter': formatter,
            'filename': str(log_path),
            'maxBytes': 10485760,  # 10MB
            'backupCount': 5,
            'encoding': 'utf-8'
        }
        config['handlers']['audit_file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'level': 'INFO',
            'formatter': 'json',
            'filename': str(log_path.with_name('audit.log')),
            'maxBytes': 10485760,
            'backupCount': 5,
            'encoding': 'utf-8'
        }
        for logger_name, logger_config in config['loggers'].items():
            logger_config['handlers'].append('audit_file' if logger_name == AUDIT_LOGGER_NAME else 'file')

    return config


def configure_structlog(settings: BaseConfig):
    """Configure structlog for structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if settings.log_format == 'json' else structlog.dev.ConsoleRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def setup_logging(settings: BaseConfig) -> AuditLogger:
    """Initialize logging for the process.

    Returns:
        Audit logger honoring ``settings.enable_audit_log``
    """
    logging.config.dictConfig(build_logging_config(settings))
    configure_structlog(settings)

    logger = structlog.get_logger("fraud_review.startup")
    logger.info(
        "Logging configured",
        log_level=settings.log_level.value,
        environment=settings.environment.value,
        version=settings.app_version
    )

    return AuditLogger(enabled=settings.enable_audit_log)


__all__ = [
    "AuditLogger",
    "CustomJSONFormatter",
    "build_logging_config",
    "configure_structlog",
    "setup_logging",
]
