"""Rule-based anomaly detection over recent behavior patterns."""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import numpy as np
from sqlalchemy import select

from config.detection import DetectionConfig
from database.models import behavior_patterns
from database.storage import Storage
from features.behavior_analyzer import pattern_from_row
from monitoring.metrics import ANOMALIES_DETECTED, DETECTION_FAILURES
from shared.ids import Clock, utc_now
from shared.models import (
    AlertEvidence,
    AlertSeverity,
    AlertType,
    AnomalyAlertCreate,
    BehaviorPattern,
)

logger = logging.getLogger(__name__)

DetectionRule = Callable[[List[BehaviorPattern]], Optional[AnomalyAlertCreate]]


class AnomalyDetector:
    """Runs independent detection rules over a user's recent patterns.

    Patterns of every type are considered together, since scripted abuse
    usually spreads over registrations, invitations and claims alike.
    Detection is best-effort: read failures yield no alerts.
    """

    def __init__(self, storage: Storage, config: Optional[DetectionConfig] = None, clock: Clock = utc_now):
        self.storage = storage
        self.config = config or DetectionConfig()
        self.clock = clock
        self.rules: List[DetectionRule] = [
            self.detect_velocity_spike,
            self.detect_pattern_deviation,
            self.detect_high_risk_pattern,
        ]

    async def load_patterns(self, user_id: str, start: datetime, end: datetime) -> List[BehaviorPattern]:
        """Patterns of all types in ``[start, end]``, oldest first."""
        rows = await self.storage.query(
            select(behavior_patterns)
            .where(behavior_patterns.c.user_id == user_id)
            .where(behavior_patterns.c.timestamp.between(start, end))
            .order_by(behavior_patterns.c.timestamp.desc(), behavior_patterns.c.id.desc())
            .limit(self.config.history_limit)
        )
        # Newest rows win the limit; rules expect ascending order.
        return [pattern_from_row(row) for row in reversed(rows)]

    async def detect_pattern_anomalies(self,
                                       user_id: str,
                                       time_window: Optional[timedelta] = None) -> List[AnomalyAlertCreate]:
        """Evaluate every rule against the user's patterns inside the window.

        Args:
            user_id: User identifier
            time_window: Lookback, defaults to ``time_window_hours``

        Returns:
            Detected (not yet persisted) alerts, possibly empty
        """
        time_window = time_window or timedelta(hours=self.config.time_window_hours)
        end = self.clock()

        try:
            patterns = await self.load_patterns(user_id, end - time_window, end)
        except Exception as e:
            DETECTION_FAILURES.inc()
            logger.error(f"Failed to load behavior patterns for user {user_id}: {e}")
            return []

        if len(patterns) < self.config.min_patterns_for_detection:
            return []

        alerts = []
        for rule in self.rules:
            try:
                alert = rule(patterns)
            except Exception as e:
                DETECTION_FAILURES.inc()
                logger.error(f"Detection rule {rule.__name__} failed for user {user_id}: {e}")
                continue
            if alert is not None:
                ANOMALIES_DETECTED.labels(alert_type=alert.alert_type, severity=alert.severity).inc()
                alerts.append(alert)

        if alerts:
            logger.info(f"Detected {len(alerts)} anomalies for user {user_id}")
        return alerts

    def detect_velocity_spike(self, patterns: List[BehaviorPattern]) -> Optional[AnomalyAlertCreate]:
        """Densest sliding window of ``velocity_window_seconds`` over the event timestamps."""
        threshold = self.config.velocity_event_threshold
        if len(patterns) < threshold:
            return None

        window = timedelta(seconds=self.config.velocity_window_seconds)
        timestamps = [p.timestamp for p in patterns]

        best_count, best_start, best_end = 0, 0, 0
        start = 0
        for end, ts in enumerate(timestamps):
            while ts - timestamps[start] > window:
                start += 1
            count = end - start + 1
            if count > best_count:
                best_count, best_start, best_end = count, start, end

        if best_count < threshold:
            return None

        ratio = best_count / threshold
        if ratio < 1.5:
            severity = AlertSeverity.MEDIUM
        elif ratio < 2.5:
            severity = AlertSeverity.HIGH
        else:
            severity = AlertSeverity.CRITICAL

        window_patterns = patterns[best_start:best_end + 1]
        span_seconds = (timestamps[best_end] - timestamps[best_start]).total_seconds()
        return AnomalyAlertCreate(
            user_id=patterns[0].user_id,
            alert_type=AlertType.VELOCITY_SPIKE,
            severity=severity,
            description=(
                f"Abnormally frequent activity: {best_count} events within "
                f"{self.config.velocity_window_seconds // 60} minutes"
            ),
            evidence=AlertEvidence(
                reason="event count in sliding window reached threshold",
                metrics={
                    "event_count": best_count,
                    "threshold": threshold,
                    "window_seconds": self.config.velocity_window_seconds,
                    "span_seconds": span_seconds,
                    "window_start": timestamps[best_start].isoformat(),
                    "window_end": timestamps[best_end].isoformat(),
                    "pattern_types": sorted({p.pattern_type for p in window_patterns}),
                    "pattern_count": len(patterns),
                }
            )
        )

    def detect_pattern_deviation(self, patterns: List[BehaviorPattern]) -> Optional[AnomalyAlertCreate]:
        """Newest risk score against the mean of the earlier ones."""
        if len(patterns) < self.config.min_patterns_for_deviation:
            return None

        baseline = float(np.mean([p.risk_score for p in patterns[:-1]]))
        recent = patterns[-1].risk_score
        deviation = recent - baseline
        margin = self.config.deviation_margin
        if deviation <= margin:
            return None

        if deviation >= 2 * margin:
            severity = AlertSeverity.CRITICAL
        elif deviation >= 1.5 * margin:
            severity = AlertSeverity.HIGH
        else:
            severity = AlertSeverity.MEDIUM

        return AnomalyAlertCreate(
            user_id=patterns[-1].user_id,
            alert_type=AlertType.PATTERN_DEVIATION,
            severity=severity,
            description=f"Behavior deviates from history: risk {recent:.2f} against baseline {baseline:.2f}",
            evidence=AlertEvidence(
                reason="latest risk score exceeds historical baseline by more than the margin",
                metrics={
                    "recent_score": recent,
                    "baseline_score": baseline,
                    "deviation": deviation,
                    "margin": margin,
                    "pattern_type": patterns[-1].pattern_type,
                    "pattern_count": len(patterns),
                }
            )
        )

    def detect_high_risk_pattern(self, patterns: List[BehaviorPattern]) -> Optional[AnomalyAlertCreate]:
        latest = patterns[-1]
        if latest.risk_score < self.config.anomaly_score_threshold:
            return None

        severity = (
            AlertSeverity.CRITICAL
            if latest.risk_score >= self.config.critical_score_threshold
            else AlertSeverity.HIGH
        )
        return AnomalyAlertCreate(
            user_id=latest.user_id,
            alert_type=AlertType.BEHAVIOR_ANOMALY,
            severity=severity,
            description=f"High-risk {latest.pattern_type} behavior: risk {latest.risk_score:.2f}",
            evidence=AlertEvidence(
                reason="latest risk score above anomaly threshold",
                metrics={
                    "risk_score": latest.risk_score,
                    "threshold": self.config.anomaly_score_threshold,
                    "pattern_type": latest.pattern_type,
                    "timestamp": latest.timestamp.isoformat(),
                    "features": dict(latest.features),
                }
            )
        )
