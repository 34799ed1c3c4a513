"""Interfaces of the collaborators consumed by the fraud review engine."""

from typing import Optional, Protocol, runtime_checkable

from shared.models import Notification


@runtime_checkable
class NotificationService(Protocol):
    """Dispatches operator and user notifications."""

    async def send_notification(self, notification: Notification) -> None:
        ...


@runtime_checkable
class BasicFraudService(Protocol):
    """Baseline risk-level oracle."""

    async def get_user_risk_level(self, user_id: str) -> str:
        """Return one of ``low``, ``medium``, ``high``, ``critical``."""
        ...

    async def ban_user(self, user_id: str, reason: str, duration_minutes: Optional[int] = None) -> None:
        ...


@runtime_checkable
class RewardLedger(Protocol):
    """Reward bookkeeping, queried for amounts clawed back from a user."""

    async def get_total_recovered_rewards(self, user_id: str) -> float:
        ...
