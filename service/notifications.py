"""Notification dispatchers and message templates."""

import logging
from datetime import datetime
from typing import Optional, List

import aiohttp
from jinja2 import Template

from monitoring.metrics import NOTIFICATION_FAILURES
from shared.exceptions import FraudDetectionException
from shared.models import AnomalyAlertCreate, Notification
from .collaborators import NotificationService

logger = logging.getLogger(__name__)

SECURITY_ALERT = "security_alert"
ACCOUNT_SECURITY = "account_security"

ALERT_TEMPLATE = Template(
    "Detected {{ severity }} severity {{ alert_type }} for user {{ user_id }}: {{ description }}"
)
FREEZE_TEMPLATE = Template(
    "Your account has been frozen for the following reason: {{ reason }}."
    "{% if features != ['all'] %} Restricted features: {{ features | join(', ') }}.{% endif %}"
    "{% if expires_at %} The restriction ends at {{ expires_at }} UTC.{% endif %}"
    " Please contact support if you have questions."
)
UNFREEZE_TEMPLATE = Template(
    "The restriction on your account has been lifted.{% if reason %} Note: {{ reason }}{% endif %}"
)


class NotificationError(FraudDetectionException):
    """Raised by dispatchers when a notification could not be delivered."""


def build_alert_notification(alert_id: str, alert: AnomalyAlertCreate, recipient_id: str) -> Notification:
    """Operator notification for a newly created anomaly alert."""
    return Notification(
        recipient_id=recipient_id,
        notification_type=SECURITY_ALERT,
        title="Security alert",
        content=ALERT_TEMPLATE.render(
            severity=alert.severity,
            alert_type=alert.alert_type,
            user_id=alert.user_id,
            description=alert.description
        ),
        metadata={
            "alert_id": alert_id,
            "user_id": alert.user_id,
            "alert_type": alert.alert_type,
            "severity": alert.severity,
        }
    )


def build_freeze_notification(user_id: str,
                              reason: str,
                              frozen_features: List[str],
                              expires_at: Optional[datetime]) -> Notification:
    """User notification for an account freeze."""
    return Notification(
        recipient_id=user_id,
        notification_type=ACCOUNT_SECURITY,
        title="Your account has been frozen",
        content=FREEZE_TEMPLATE.render(
            reason=reason,
            features=frozen_features,
            expires_at=expires_at.strftime("%Y-%m-%d %H:%M") if expires_at else None
        ),
        metadata={"reason": reason, "frozen_features": frozen_features}
    )


def build_unfreeze_notification(user_id: str, reason: Optional[str]) -> Notification:
    return Notification(
        recipient_id=user_id,
        notification_type=ACCOUNT_SECURITY,
        title="Your account has been unfrozen",
        content=UNFREEZE_TEMPLATE.render(reason=reason),
        metadata={"reason": reason}
    )


async def dispatch_best_effort(service: Optional[NotificationService], notification: Notification) -> bool:
    """Send a notification, logging instead of raising on failure.

    Returns:
        True when the dispatcher accepted the notification
    """
    if service is None:
        return False
    try:
        await service.send_notification(notification)
        return True
    except Exception as e:
        NOTIFICATION_FAILURES.labels(notification_type=notification.notification_type).inc()
        logger.error(
            f"Failed to send {notification.notification_type} notification "
            f"to {notification.recipient_id}: {e}"
        )
        return False


class LoggingNotificationService:
    """Dispatcher that only records notifications in the log."""

    async def send_notification(self, notification: Notification) -> None:
        logger.info(
            f"Notification [{notification.notification_type}] to {notification.recipient_id}: "
            f"{notification.title} - {notification.content}"
        )


class WebhookNotificationService:
    """Posts notifications as JSON to an HTTP webhook."""

    def __init__(self, webhook_url: str, timeout_seconds: float = 10.0, environment: str = "development"):
        self.webhook_url = webhook_url
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.environment = environment

    async def send_notification(self, notification: Notification) -> None:
        """Send webhook notification.

        Raises:
            NotificationError: If the webhook answers with an error status
        """
        payload = {
            **notification.model_dump(mode="json"),
            "environment": self.environment,
            "service": "behavior-fraud-review",
            "timestamp": datetime.utcnow().isoformat(),
        }

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(self.webhook_url, json=payload) as response:
                if response.status >= 400:
                    raise NotificationError(
                        "Webhook notification failed",
                        details=f"HTTP {response.status}"
                    )
                logger.info(f"Webhook notification sent to {notification.recipient_id}")


def create_notification_service(settings) -> NotificationService:
    """Pick the dispatcher configured in settings."""
    if settings.notification_webhook_url:
        return WebhookNotificationService(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_timeout_seconds,
            environment=settings.environment.value
        )
    return LoggingNotificationService()
