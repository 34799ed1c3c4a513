"""Tunable thresholds for scoring, detection and escalation."""

from typing import List

from pydantic import BaseModel, Field, model_validator


class ScoringConfig(BaseModel):
    """Configuration for behavior pattern risk scoring."""

    # History
    history_limit: int = Field(default=100, ge=1)
    frequency_window_hours: int = Field(default=24, ge=1)

    # Static heuristics
    base_risk: float = Field(default=0.3, ge=0, le=1)
    night_risk: float = Field(default=0.2, ge=0, le=1)
    automated_agent_risk: float = Field(default=0.3, ge=0, le=1)
    high_frequency_risk: float = Field(default=0.3, ge=0, le=1)
    high_frequency_threshold: int = Field(default=10, ge=1)
    night_start_hour: int = Field(default=22, ge=0, le=23)  # hours after this are night
    night_end_hour: int = Field(default=6, ge=0, le=23)  # hours before this are night

    # Deviation from history
    deviation_saturation: float = Field(default=3.0, gt=0)  # z-score mapped to 1.0
    min_spread: float = Field(default=1.0, gt=0)  # floor for the std used in z-scores
    hour_min_spread: float = Field(default=2.0, gt=0)

    # Risk scoring weights
    static_weight: float = Field(default=0.4, ge=0)
    deviation_weight: float = Field(default=0.35, ge=0)
    novelty_weight: float = Field(default=0.1, ge=0)
    history_weight: float = Field(default=0.15, ge=0)


class DetectionConfig(BaseModel):
    """Configuration for the anomaly detection rules."""

    time_window_hours: int = Field(default=24, ge=1)
    history_limit: int = Field(default=500, ge=2)
    min_patterns_for_detection: int = Field(default=2, ge=1)

    # Velocity spike
    velocity_window_seconds: int = Field(default=3600, ge=1)
    velocity_event_threshold: int = Field(default=10, ge=2)

    # Pattern deviation
    min_patterns_for_deviation: int = Field(default=3, ge=2)
    deviation_margin: float = Field(default=0.3, gt=0, le=1)

    # High-risk pattern
    anomaly_score_threshold: float = Field(default=0.8, ge=0, le=1)
    critical_score_threshold: float = Field(default=0.95, ge=0, le=1)

    @model_validator(mode="after")
    def _check_thresholds(self):
        if self.critical_score_threshold < self.anomaly_score_threshold:
            raise ValueError("critical_score_threshold must not be below anomaly_score_threshold")
        return self


class EscalationConfig(BaseModel):
    """When detected alerts are persisted and turned into review cases."""

    alert_cooldown_minutes: int = Field(default=30, ge=0)
    review_case_severities: List[str] = Field(default_factory=lambda: ["high", "critical"])
    urgent_severities: List[str] = Field(default_factory=lambda: ["critical"])


class DetectionSettings(BaseModel):
    """All fraud-signal tunables, nested under ``detection`` in the settings."""

    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    escalation: EscalationConfig = Field(default_factory=EscalationConfig)
