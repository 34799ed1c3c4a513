"""Shared data models for the behavioral fraud review engine."""

from datetime import datetime
from typing import Dict, Any, Optional, List, Union
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PatternType(str, Enum):
    """Well-known behavior pattern tags. Any string is accepted."""
    REGISTRATION = "registration"
    INVITATION = "invitation"
    ACTIVITY = "activity"
    REWARD_CLAIM = "reward_claim"


class AlertType(str, Enum):
    """Anomaly alert types."""
    VELOCITY_SPIKE = "velocity_spike"
    PATTERN_DEVIATION = "pattern_deviation"
    BEHAVIOR_ANOMALY = "behavior_anomaly"
    NETWORK_ABUSE = "network_abuse"


class AlertSeverity(str, Enum):
    """Alert severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, Enum):
    """Alert review status."""
    PENDING = "pending"
    INVESTIGATING = "investigating"
    REVIEWED = "reviewed"
    DISMISSED = "dismissed"


class CaseType(str, Enum):
    """Review case types."""
    SUSPICIOUS_BEHAVIOR = "suspicious_behavior"
    FRAUD_DETECTION = "fraud_detection"
    REWARD_DISPUTE = "reward_dispute"
    ACCOUNT_VERIFICATION = "account_verification"


class CasePriority(str, Enum):
    """Review case priority."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class CaseStatus(str, Enum):
    """Review case status."""
    PENDING = "pending"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class EvidenceType(str, Enum):
    """Source category of a review evidence item."""
    SYSTEM_LOG = "system_log"
    USER_BEHAVIOR = "user_behavior"
    DEVICE_INFO = "device_info"
    NETWORK_DATA = "network_data"
    MANUAL_NOTE = "manual_note"


class DecisionAction(str, Enum):
    """Operator decision on a review case."""
    APPROVE = "approve"
    REJECT = "reject"
    FREEZE = "freeze"
    BAN = "ban"
    RECOVER_REWARDS = "recover_rewards"
    REQUIRE_VERIFICATION = "require_verification"


class RiskLevel(str, Enum):
    """Risk level enumeration."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


ACTIVE_ALERT_STATUSES = (AlertStatus.PENDING.value, AlertStatus.INVESTIGATING.value)
ACTIVE_CASE_STATUSES = (CaseStatus.PENDING.value, CaseStatus.IN_REVIEW.value)
ALL_FEATURES = "all"


def clamp_score(value: float) -> float:
    """Clamp a score into [0, 1]; NaN maps to 0."""
    if value != value:
        return 0.0
    return max(0.0, min(1.0, float(value)))


class BehaviorPattern(BaseModel):
    """Timestamped, scored snapshot of a user's features for one event type."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., description="User identifier")
    pattern_type: str = Field(..., description="Free-form event tag, e.g. registration")
    features: Dict[str, float] = Field(default_factory=dict, description="Numeric feature map")
    timestamp: datetime = Field(..., description="Event timestamp")
    risk_score: float = Field(..., ge=0, le=1, description="Risk score in [0, 1]")


class AlertEvidence(BaseModel):
    """Structured evidence attached to an anomaly alert."""

    reason: str = ""
    metrics: Dict[str, Any] = Field(default_factory=dict)


class AnomalyAlertCreate(BaseModel):
    """Alert payload before an id and creation time are assigned."""

    model_config = ConfigDict(use_enum_values=True)

    user_id: str
    alert_type: Union[AlertType, str]
    severity: AlertSeverity
    description: str
    evidence: AlertEvidence = Field(default_factory=AlertEvidence)
    status: AlertStatus = AlertStatus.PENDING


class AnomalyAlert(AnomalyAlertCreate):
    """Persisted anomaly alert."""

    id: str = Field(..., description="Alert identifier, alert_<random>")
    created_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None


class ReviewEvidence(BaseModel):
    """One ordered evidence item of a review case."""

    model_config = ConfigDict(use_enum_values=True)

    type: EvidenceType = EvidenceType.SYSTEM_LOG
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    source: str = "system"


class ReviewDecision(BaseModel):
    """Operator decision recorded when a case reaches a terminal status."""

    model_config = ConfigDict(use_enum_values=True)

    action: DecisionAction
    reason: str
    reviewer_id: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    notes: Optional[str] = None


class ReviewCaseCreate(BaseModel):
    """Review case payload before an id and timestamps are assigned."""

    model_config = ConfigDict(use_enum_values=True)

    user_id: str
    case_type: Union[CaseType, str] = CaseType.SUSPICIOUS_BEHAVIOR
    priority: CasePriority = CasePriority.MEDIUM
    status: CaseStatus = CaseStatus.PENDING
    assigned_to: Optional[str] = None
    evidence: List[ReviewEvidence] = Field(default_factory=list)
    decision: Optional[ReviewDecision] = None
    alert_ids: List[str] = Field(default_factory=list)


class ReviewCase(ReviewCaseCreate):
    """Persisted review case."""

    id: str = Field(..., description="Case identifier, case_<random>")
    created_at: datetime
    updated_at: datetime


class AccountFreeze(BaseModel):
    """Restriction on some or all of a user's account capabilities."""

    id: str
    user_id: str
    reason: str
    frozen_features: List[str] = Field(default_factory=lambda: [ALL_FEATURES])
    frozen_by: str
    expires_at: Optional[datetime] = None
    created_at: datetime
    is_active: bool = True
    lifted_at: Optional[datetime] = None
    lifted_by: Optional[str] = None

    def is_effective(self, now: datetime) -> bool:
        """True when the freeze is active and not yet expired."""
        return self.is_active and (self.expires_at is None or self.expires_at > now)


class AccountStatus(BaseModel):
    """Aggregate account state computed on demand."""

    model_config = ConfigDict(use_enum_values=True)

    user_id: str
    is_frozen: bool = False
    frozen_features: List[str] = Field(default_factory=list)
    freeze_reason: Optional[str] = None
    freeze_expires_at: Optional[datetime] = None
    risk_level: RiskLevel = RiskLevel.LOW
    total_recovered_rewards: float = 0.0
    active_review_cases: int = 0

    @field_validator("active_review_cases", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        try:
            return max(int(value or 0), 0)
        except (TypeError, ValueError):
            return 0


class Notification(BaseModel):
    """Message handed to the notification dispatcher."""

    recipient_id: str
    notification_type: str
    title: str
    content: str
    channel: str = "email"
    metadata: Dict[str, Any] = Field(default_factory=dict)
