"""Database ORM models."""

from sqlalchemy import String, DateTime, Boolean, Float, Integer, Text, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func
from datetime import datetime
from typing import Optional


class Base(DeclarativeBase):
    pass


class BehaviorPatternModel(Base):
    """Scored behavior snapshot, one row per analyzed event."""

    __tablename__ = 'behavior_patterns'
    __table_args__ = (
        Index('ix_behavior_patterns_user_type_ts', 'user_id', 'pattern_type', 'timestamp'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    pattern_type: Mapped[str] = mapped_column(String, nullable=False)
    features: Mapped[str] = mapped_column(Text, nullable=False, default='{}')  # JSON object
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    risk_score: Mapped[float] = mapped_column(Float, nullable=False)


class AnomalyAlertModel(Base):
    """Anomaly alert raised by the detector."""

    __tablename__ = 'anomaly_alerts'
    __table_args__ = (
        Index('ix_anomaly_alerts_user_type_created', 'user_id', 'alert_type', 'created_at'),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    alert_type: Mapped[str] = mapped_column(String, nullable=False)
    severity: Mapped[str] = mapped_column(String, nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    evidence: Mapped[str] = mapped_column(Text, nullable=False, default='{}')  # JSON {reason, metrics}
    status: Mapped[str] = mapped_column(String, nullable=False, default='pending', index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=func.now())
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class ReviewCaseModel(Base):
    """Human triage case."""

    __tablename__ = 'review_cases'

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    case_type: Mapped[str] = mapped_column(String, nullable=False)
    priority: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default='pending', index=True)
    assigned_to: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    evidence: Mapped[str] = mapped_column(Text, nullable=False, default='[]')  # JSON list
    decision: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON object
    alert_ids: Mapped[str] = mapped_column(Text, nullable=False, default='[]')  # JSON list
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=func.now(), onupdate=func.now())


class AccountFreezeModel(Base):
    """Account capability freeze."""

    __tablename__ = 'account_freezes'

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    frozen_features: Mapped[str] = mapped_column(Text, nullable=False, default='["all"]')  # JSON list
    frozen_by: Mapped[str] = mapped_column(String, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=func.now())
    lifted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    lifted_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class UserRiskProfileModel(Base):
    """Baseline risk level maintained by the risk oracle."""

    __tablename__ = 'user_risk_profiles'

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    risk_level: Mapped[str] = mapped_column(String, nullable=False, default='low')
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=func.now(), onupdate=func.now())


class UserBanModel(Base):
    """Ban from referral activities, optionally time-bounded."""

    __tablename__ = 'user_bans'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=func.now())


# Core tables used by the services' statements.
behavior_patterns = BehaviorPatternModel.__table__
anomaly_alerts = AnomalyAlertModel.__table__
review_cases = ReviewCaseModel.__table__
account_freezes = AccountFreezeModel.__table__
user_risk_profiles = UserRiskProfileModel.__table__
user_bans = UserBanModel.__table__
