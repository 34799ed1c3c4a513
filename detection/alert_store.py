"""Persistence and lifecycle of anomaly alerts."""

import logging
from datetime import datetime
from typing import Dict, Any, List, Optional, Union

from sqlalchemy import select, insert, update, and_

from config.logging import AuditLogger
from database.models import anomaly_alerts
from database.storage import Storage
from monitoring.metrics import ALERTS_CREATED
from service.collaborators import NotificationService
from service.notifications import build_alert_notification, dispatch_best_effort
from shared.exceptions import (
    ConcurrentModificationException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from shared.ids import Clock, IdGenerator, random_id, utc_now
from shared.models import (
    ACTIVE_ALERT_STATUSES,
    AlertSeverity,
    AlertStatus,
    AnomalyAlert,
    AnomalyAlertCreate,
)
from shared.serialization import dump_alert_evidence, load_alert_evidence

logger = logging.getLogger(__name__)

ALERT_TRANSITIONS = {
    AlertStatus.PENDING.value: {
        AlertStatus.INVESTIGATING.value, AlertStatus.REVIEWED.value, AlertStatus.DISMISSED.value
    },
    AlertStatus.INVESTIGATING.value: {AlertStatus.REVIEWED.value, AlertStatus.DISMISSED.value},
    AlertStatus.REVIEWED.value: set(),
    AlertStatus.DISMISSED.value: set(),
}


def alert_from_row(row: Dict[str, Any]) -> AnomalyAlert:
    return AnomalyAlert(
        id=row["id"],
        user_id=row["user_id"],
        alert_type=row["alert_type"],
        severity=row["severity"],
        description=row["description"],
        evidence=load_alert_evidence(row.get("evidence")),
        status=row["status"],
        created_at=row["created_at"],
        resolved_at=row.get("resolved_at"),
        resolved_by=row.get("resolved_by")
    )


class AlertStore:
    """Creates, lists and moves anomaly alerts through their review lifecycle."""

    def __init__(self,
                 storage: Storage,
                 notification_service: Optional[NotificationService] = None,
                 id_generator: IdGenerator = random_id,
                 clock: Clock = utc_now,
                 audit_logger: Optional[AuditLogger] = None,
                 operator_id: str = "admin"):
        self.storage = storage
        self.notification_service = notification_service
        self.id_generator = id_generator
        self.clock = clock
        self.audit_logger = audit_logger
        self.operator_id = operator_id

    async def create_anomaly_alert(self, alert: AnomalyAlertCreate) -> str:
        """Persist an alert and notify the operators.

        Returns:
            The new alert id, ``alert_<random>``

        Raises:
            DatabaseException: If the alert row could not be written
        """
        stored = await self.store_alert(alert)
        return stored.id

    async def store_alert(self, alert: AnomalyAlertCreate) -> AnomalyAlert:
        """Like :meth:`create_anomaly_alert`, returning the alert as written."""
        stored = AnomalyAlert(id=self.id_generator("alert"), created_at=self.clock(), **alert.model_dump())
        await self.storage.execute(
            insert(anomaly_alerts).values(
                id=stored.id,
                user_id=stored.user_id,
                alert_type=stored.alert_type,
                severity=stored.severity,
                description=stored.description,
                evidence=dump_alert_evidence(stored.evidence),
                status=stored.status,
                created_at=stored.created_at
            )
        )

        ALERTS_CREATED.labels(alert_type=stored.alert_type, severity=stored.severity).inc()
        if self.audit_logger:
            self.audit_logger.log_alert_created(stored.id, stored.user_id, stored.alert_type, stored.severity)
        logger.info(f"Created {stored.severity} {stored.alert_type} alert {stored.id} for user {stored.user_id}")

        await dispatch_best_effort(
            self.notification_service,
            build_alert_notification(stored.id, alert, self.operator_id)
        )
        return stored

    async def get_active_alerts(self,
                                severity: Optional[Union[AlertSeverity, str]] = None,
                                limit: int = 50) -> List[AnomalyAlert]:
        """Pending and investigating alerts, newest first.

        Read failures are logged and yield an empty list.
        """
        statement = select(anomaly_alerts).where(anomaly_alerts.c.status.in_(ACTIVE_ALERT_STATUSES))
        if severity:
            try:
                severity = AlertSeverity(severity).value
            except ValueError:
                raise ValidationException(f"Unknown alert severity: {severity}")
            statement = statement.where(anomaly_alerts.c.severity == severity)
        statement = statement.order_by(anomaly_alerts.c.created_at.desc()).limit(limit)

        try:
            rows = await self.storage.query(statement)
        except Exception as e:
            logger.error(f"Failed to get active alerts: {e}")
            return []
        return [alert_from_row(row) for row in rows]

    async def get_alert(self, alert_id: str) -> Optional[AnomalyAlert]:
        row = await self.storage.query_one(select(anomaly_alerts).where(anomaly_alerts.c.id == alert_id))
        return alert_from_row(row) if row else None

    async def has_recent_alert(self, user_id: str, alert_type: str, since: datetime) -> bool:
        """True when the user already has an alert of this type created after ``since``."""
        row = await self.storage.query_one(
            select(anomaly_alerts.c.id).where(
                and_(
                    anomaly_alerts.c.user_id == user_id,
                    anomaly_alerts.c.alert_type == alert_type,
                    anomaly_alerts.c.created_at >= since
                )
            ).limit(1)
        )
        return row is not None

    async def update_alert_status(self,
                                  alert_id: str,
                                  status: Union[AlertStatus, str],
                                  reviewer_id: Optional[str] = None) -> AnomalyAlert:
        """Move an alert forward in its lifecycle.

        Terminal statuses stamp ``resolved_at`` and ``resolved_by``.

        Raises:
            ValidationException: If the status is unknown
            NotFoundException: If the alert does not exist
            InvalidTransitionException: If the move is not a forward transition
            ConcurrentModificationException: If another reviewer moved the alert first
        """
        try:
            target = AlertStatus(status).value
        except ValueError:
            raise ValidationException(f"Unknown alert status: {status}")

        current = await self.get_alert(alert_id)
        if current is None:
            raise NotFoundException("Alert", alert_id)
        if target not in ALERT_TRANSITIONS[current.status]:
            raise InvalidTransitionException("alert", current.status, target)

        values = {"status": target}
        if target not in ACTIVE_ALERT_STATUSES:
            values["resolved_at"] = self.clock()
            values["resolved_by"] = reviewer_id

        updated = await self.storage.execute(
            update(anomaly_alerts)
            .where(and_(anomaly_alerts.c.id == alert_id, anomaly_alerts.c.status == current.status))
            .values(**values)
        )
        if updated == 0:
            raise ConcurrentModificationException("Alert", alert_id)

        if self.audit_logger:
            self.audit_logger.log_alert_status_changed(alert_id, current.status, target, reviewer_id)
        logger.info(f"Alert {alert_id} moved from {current.status} to {target}")

        return current.model_copy(update=values)
