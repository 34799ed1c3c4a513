"""Prometheus metrics for the fraud review engine."""

from prometheus_client import Counter, Histogram

BEHAVIOR_PATTERNS_ANALYZED = Counter(
    'behavior_patterns_analyzed_total',
    'Total number of behavior patterns scored and persisted',
    ['pattern_type', 'has_history']
)

BEHAVIOR_RISK_SCORE = Histogram(
    'behavior_pattern_risk_score',
    'Distribution of behavior pattern risk scores',
    ['pattern_type'],
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0]
)

ANOMALIES_DETECTED = Counter(
    'anomalies_detected_total',
    'Anomalies found by the detection rules',
    ['alert_type', 'severity']
)

DETECTION_FAILURES = Counter(
    'anomaly_detection_failures_total',
    'Detection runs that degraded to an empty result'
)

ALERTS_CREATED = Counter(
    'anomaly_alerts_created_total',
    'Total number of persisted anomaly alerts',
    ['alert_type', 'severity']
)

ALERTS_SUPPRESSED = Counter(
    'anomaly_alerts_suppressed_total',
    'Detected anomalies skipped because of the alert cooldown',
    ['alert_type']
)

REVIEW_CASES_CREATED = Counter(
    'review_cases_created_total',
    'Total number of review cases opened',
    ['case_type', 'priority']
)

ACCOUNT_FREEZES = Counter(
    'account_freezes_total',
    'Account freeze and unfreeze operations',
    ['action']
)

NOTIFICATION_FAILURES = Counter(
    'fraud_notification_failures_total',
    'Best-effort notifications that failed to send',
    ['notification_type']
)
