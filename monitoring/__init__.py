"""Monitoring package for the behavioral fraud review engine."""

from .metrics import (
    BEHAVIOR_PATTERNS_ANALYZED,
    BEHAVIOR_RISK_SCORE,
    ANOMALIES_DETECTED,
    DETECTION_FAILURES,
    ALERTS_CREATED,
    ALERTS_SUPPRESSED,
    REVIEW_CASES_CREATED,
    ACCOUNT_FREEZES,
    NOTIFICATION_FAILURES,
)

__all__ = [
    "BEHAVIOR_PATTERNS_ANALYZED",
    "BEHAVIOR_RISK_SCORE",
    "ANOMALIES_DETECTED",
    "DETECTION_FAILURES",
    "ALERTS_CREATED",
    "ALERTS_SUPPRESSED",
    "REVIEW_CASES_CREATED",
    "ACCOUNT_FREEZES",
    "NOTIFICATION_FAILURES",
]
