"""Mock collaborators and deterministic capabilities for testing."""

from datetime import datetime, timedelta
from typing import List, Optional
from unittest.mock import AsyncMock

from database.storage import Storage
from shared.exceptions import DatabaseException
from shared.models import Notification


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class TickingClock(FixedClock):
    """Clock that moves one second forward every time it is read."""

    def __call__(self) -> datetime:
        current = self.now
        self.advance(seconds=1)
        return current


class RecordingNotificationService:
    """Notification dispatcher that keeps what it was asked to send."""

    def __init__(self, fail: bool = False):
        self.sent: List[Notification] = []
        self.fail = fail

    async def send_notification(self, notification: Notification) -> None:
        if self.fail:
            raise ConnectionError("notification channel unavailable")
        self.sent.append(notification)


def make_risk_service(level: str = "low") -> AsyncMock:
    """Baseline risk oracle mock."""
    service = AsyncMock()
    service.get_user_risk_level.return_value = level
    service.ban_user.return_value = None
    return service


def make_reward_ledger(total: float = 0.0) -> AsyncMock:
    ledger = AsyncMock()
    ledger.get_total_recovered_rewards.return_value = total
    return ledger


class FailingStorage:
    """Storage whose every statement fails like an unreachable database."""

    def __init__(self, fail_reads: bool = True, fail_writes: bool = True, inner: Optional[Storage] = None):
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes
        self.inner = inner

    def _error(self, operation: str) -> DatabaseException:
        return DatabaseException("Database unavailable", operation=operation, details="connection refused")

    async def query(self, statement, params=None):
        if self.fail_reads or self.inner is None:
            raise self._error("query")
        return await self.inner.query(statement, params)

    async def query_one(self, statement, params=None):
        if self.fail_reads or self.inner is None:
            raise self._error("query")
        return await self.inner.query_one(statement, params)

    async def execute(self, statement, params=None):
        if self.fail_writes or self.inner is None:
            raise self._error("execute")
        return await self.inner.execute(statement, params)

    def transaction(self):
        if self.fail_writes or self.inner is None:
            raise self._error("transaction")
        return self.inner.transaction()
