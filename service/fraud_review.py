"""Public facade of the behavioral fraud review engine.

Wires the analyzer, detector, alert store, review case manager and freeze
manager over one storage and exposes the operations callers use.
"""

import logging
from datetime import timedelta
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from config.base import BaseConfig
from config.detection import DetectionSettings
from config.logging import AuditLogger
from database.storage import Storage
from detection.alert_store import AlertStore
from detection.anomaly_detector import AnomalyDetector
from features.behavior_analyzer import BehaviorPatternAnalyzer
from features.feature_extractor import FeatureExtractor
from monitoring.metrics import ALERTS_SUPPRESSED
from review.account_freeze import AccountFreezeManager
from review.case_manager import ReviewCaseManager
from shared.ids import Clock, IdGenerator, random_id, utc_now
from shared.models import (
    AccountFreeze,
    AccountStatus,
    AlertSeverity,
    AlertStatus,
    AnomalyAlert,
    AnomalyAlertCreate,
    BehaviorPattern,
    CasePriority,
    CaseStatus,
    CaseType,
    DecisionAction,
    EvidenceType,
    ReviewCase,
    ReviewCaseCreate,
    ReviewDecision,
    ReviewEvidence,
)
from .collaborators import BasicFraudService, NotificationService, RewardLedger
from .notifications import create_notification_service
from .risk_oracle import StoredRiskProfileService

logger = logging.getLogger(__name__)


class BehaviorEventOutcome(BaseModel):
    """Result of running one event through analysis, detection and escalation."""

    pattern: BehaviorPattern
    alerts: List[AnomalyAlert] = Field(default_factory=list)
    review_case_id: Optional[str] = None


class BehaviorFraudService:
    """Behavioral fraud detection and review operations."""

    def __init__(self,
                 storage: Storage,
                 detection_settings: Optional[DetectionSettings] = None,
                 risk_service: Optional[BasicFraudService] = None,
                 notification_service: Optional[NotificationService] = None,
                 reward_ledger: Optional[RewardLedger] = None,
                 id_generator: IdGenerator = random_id,
                 clock: Clock = utc_now,
                 audit_logger: Optional[AuditLogger] = None,
                 operator_id: str = "admin"):
        self.storage = storage
        self.settings = detection_settings or DetectionSettings()
        self.risk_service = risk_service
        self.clock = clock

        self.analyzer = BehaviorPatternAnalyzer(
            storage, FeatureExtractor(self.settings.scoring), self.settings.scoring, clock
        )
        self.detector = AnomalyDetector(storage, self.settings.detection, clock)
        self.alert_store = AlertStore(
            storage, notification_service, id_generator, clock, audit_logger, operator_id
        )
        self.case_manager = ReviewCaseManager(storage, id_generator, clock, audit_logger)
        self.freeze_manager = AccountFreezeManager(
            storage,
            risk_service=risk_service,
            notification_service=notification_service,
            case_manager=self.case_manager,
            reward_ledger=reward_ledger,
            id_generator=id_generator,
            clock=clock,
            audit_logger=audit_logger
        )

    # Behavior analysis

    async def analyze_behavior_pattern(self, user_id: str, pattern_type: str, context: Optional[dict] = None) -> BehaviorPattern:
        return await self.analyzer.analyze_behavior_pattern(user_id, pattern_type, context)

    async def detect_pattern_anomalies(self,
                                       user_id: str,
                                       time_window: Optional[timedelta] = None) -> List[AnomalyAlert]:
        """Run detection and persist what it finds.

        Alerts whose (user, type) already has an alert inside the cooldown are
        skipped. Never raises; failures are logged.

        Returns:
            The alerts persisted by this call
        """
        detected = await self.detector.detect_pattern_anomalies(user_id, time_window)

        persisted = []
        for alert in detected:
            try:
                if await self._in_cooldown(alert):
                    ALERTS_SUPPRESSED.labels(alert_type=alert.alert_type).inc()
                    logger.info(f"Suppressed {alert.alert_type} alert for user {user_id}: cooldown active")
                    continue
                stored = await self.alert_store.store_alert(alert)
            except Exception as e:
                logger.error(f"Failed to persist {alert.alert_type} alert for user {user_id}: {e}")
                continue
            persisted.append(stored)

        return persisted

    async def _in_cooldown(self, alert: AnomalyAlertCreate) -> bool:
        cooldown = self.settings.escalation.alert_cooldown_minutes
        if cooldown <= 0:
            return False
        since = self.clock() - timedelta(minutes=cooldown)
        return await self.alert_store.has_recent_alert(alert.user_id, alert.alert_type, since)

    async def handle_behavior_event(self,
                                    user_id: str,
                                    pattern_type: str,
                                    context: Optional[dict] = None) -> BehaviorEventOutcome:
        """Analyze an event, run detection and escalate severe alerts to review.

        Only the analysis is mandatory: its failure propagates, while detection
        and escalation failures are logged.
        """
        pattern = await self.analyze_behavior_pattern(user_id, pattern_type, context)
        alerts = await self.detect_pattern_anomalies(user_id)

        outcome = BehaviorEventOutcome(pattern=pattern, alerts=alerts)
        try:
            outcome.review_case_id = await self.escalate_alerts(user_id, alerts)
        except Exception as e:
            logger.error(f"Failed to escalate alerts for user {user_id}: {e}")
        return outcome

    async def escalate_alerts(self, user_id: str, alerts: List[AnomalyAlert]) -> Optional[str]:
        """Open one review case for the severe alerts of a user.

        No case is opened when none of the alerts is severe enough or the user
        already has an active case.

        Returns:
            The new case id, if any
        """
        escalation = self.settings.escalation
        severe = [a for a in alerts if a.severity in escalation.review_case_severities]
        if not severe:
            return None

        active = await self.case_manager.count_active_cases(user_id)
        if active:
            logger.info(f"User {user_id} already has {active} active review case(s); not escalating")
            return None

        urgent = any(a.severity in escalation.urgent_severities for a in severe)
        case = ReviewCaseCreate(
            user_id=user_id,
            case_type=CaseType.SUSPICIOUS_BEHAVIOR,
            priority=CasePriority.URGENT if urgent else CasePriority.HIGH,
            status=CaseStatus.PENDING,
            evidence=[
                ReviewEvidence(
                    type=EvidenceType.USER_BEHAVIOR,
                    data={
                        "alert_id": a.id,
                        "alert_type": a.alert_type,
                        "severity": a.severity,
                        "description": a.description,
                        **a.evidence.model_dump(mode="json"),
                    },
                    timestamp=a.created_at,
                    source="anomaly_detector"
                )
                for a in severe
            ],
            alert_ids=[a.id for a in severe]
        )
        return await self.case_manager.create_review_case(case)

    # Alerts

    async def create_anomaly_alert(self, alert: AnomalyAlertCreate) -> str:
        return await self.alert_store.create_anomaly_alert(alert)

    async def get_active_alerts(self,
                                severity: Optional[Union[AlertSeverity, str]] = None,
                                limit: int = 50) -> List[AnomalyAlert]:
        return await self.alert_store.get_active_alerts(severity, limit)

    async def update_alert_status(self,
                                  alert_id: str,
                                  status: Union[AlertStatus, str],
                                  reviewer_id: Optional[str] = None) -> AnomalyAlert:
        return await self.alert_store.update_alert_status(alert_id, status, reviewer_id)

    # Review cases

    async def create_review_case(self, case: ReviewCaseCreate) -> str:
        return await self.case_manager.create_review_case(case)

    async def get_review_cases(self,
                               status: Optional[Union[CaseStatus, str]] = None,
                               assigned_to: Optional[str] = None) -> List[ReviewCase]:
        return await self.case_manager.get_review_cases(status, assigned_to)

    async def assign_review_case(self, case_id: str, operator_id: str) -> ReviewCase:
        return await self.case_manager.assign_case(case_id, operator_id)

    async def resolve_review_case(self, case_id: str, decision: ReviewDecision) -> ReviewCase:
        """Carry out the decided action, then close the case.

        ``freeze`` freezes the whole account and ``ban`` bans the user through
        the risk service; other actions are only recorded. The case is closed
        only once the action succeeded, so a failed action leaves it in review
        and the call can be retried.
        """
        case = await self.case_manager.check_transition(case_id, CaseStatus.RESOLVED)

        if decision.action == DecisionAction.FREEZE.value:
            await self.freeze_account(case.user_id, decision.reason, decision.reviewer_id)
        elif decision.action == DecisionAction.BAN.value:
            if self.risk_service is None:
                logger.warning(f"Ban decided on case {case_id} but no risk service is configured")
            else:
                await self.risk_service.ban_user(case.user_id, decision.reason)

        return await self.case_manager.resolve_case(case_id, decision)

    async def reject_review_case(self, case_id: str, reviewer_id: str, reason: str) -> ReviewCase:
        return await self.case_manager.reject_case(case_id, reviewer_id, reason)

    # Account freezes

    async def freeze_account(self,
                             user_id: str,
                             reason: str,
                             frozen_by: str,
                             frozen_features: Optional[List[str]] = None,
                             expires_at=None) -> AccountFreeze:
        return await self.freeze_manager.freeze_account(user_id, reason, frozen_by, frozen_features, expires_at)

    async def unfreeze_account(self, user_id: str, lifted_by: str, reason: Optional[str] = None) -> int:
        return await self.freeze_manager.unfreeze_account(user_id, lifted_by, reason)

    async def get_account_status(self, user_id: str) -> AccountStatus:
        return await self.freeze_manager.get_account_status(user_id)


def create_service(settings: BaseConfig,
                   storage: Storage,
                   risk_service: Optional[BasicFraudService] = None,
                   notification_service: Optional[NotificationService] = None,
                   reward_ledger: Optional[RewardLedger] = None,
                   audit_logger: Optional[AuditLogger] = None) -> BehaviorFraudService:
    """Build the service from settings, defaulting the collaborators.

    The risk service defaults to the stored risk profiles and notifications to
    the dispatcher configured in settings.
    """
    return BehaviorFraudService(
        storage,
        detection_settings=settings.detection,
        risk_service=risk_service or StoredRiskProfileService(storage),
        notification_service=notification_service or create_notification_service(settings),
        reward_ledger=reward_ledger,
        audit_logger=audit_logger or AuditLogger(enabled=settings.enable_audit_log),
        operator_id=settings.security_operator_id
    )
