"""Storage-backed baseline risk oracle."""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update, insert, and_, or_

from database.models import user_risk_profiles, user_bans
from database.storage import Storage
from shared.exceptions import DatabaseException, ValidationException
from shared.ids import Clock, utc_now
from shared.models import RiskLevel

logger = logging.getLogger(__name__)


class StoredRiskProfileService:
    """Implements ``BasicFraudService`` over ``user_risk_profiles`` and ``user_bans``."""

    def __init__(self, storage: Storage, clock: Clock = utc_now):
        self.storage = storage
        self.clock = clock

    async def get_user_risk_level(self, user_id: str) -> str:
        """Return the stored risk level, ``low`` when unknown or unreadable."""
        try:
            row = await self.storage.query_one(
                select(user_risk_profiles.c.risk_level).where(user_risk_profiles.c.user_id == user_id)
            )
        except DatabaseException as e:
            logger.error(f"Failed to get risk level for user {user_id}: {e}")
            return RiskLevel.LOW.value

        if not row:
            return RiskLevel.LOW.value
        try:
            return RiskLevel(row["risk_level"]).value
        except ValueError:
            logger.warning(f"Unknown risk level {row['risk_level']!r} stored for user {user_id}")
            return RiskLevel.LOW.value

    async def update_user_risk_level(self, user_id: str, level: str, reason: str) -> None:
        """Insert or update the user's risk profile."""
        try:
            level = RiskLevel(level).value
        except ValueError:
            raise ValidationException(f"Unknown risk level: {level}")

        now = self.clock()
        async with self.storage.transaction() as tx:
            updated = await tx.execute(
                update(user_risk_profiles)
                .where(user_risk_profiles.c.user_id == user_id)
                .values(risk_level=level, reason=reason, updated_at=now)
            )
            if updated == 0:
                await tx.execute(
                    insert(user_risk_profiles).values(
                        user_id=user_id, risk_level=level, reason=reason, updated_at=now
                    )
                )

    async def is_user_banned(self, user_id: str) -> bool:
        now = self.clock()
        row = await self.storage.query_one(
            select(user_bans.c.id).where(
                and_(
                    user_bans.c.user_id == user_id,
                    user_bans.c.is_active.is_(True),
                    or_(user_bans.c.expires_at.is_(None), user_bans.c.expires_at > now)
                )
            ).limit(1)
        )
        return row is not None

    async def ban_user(self, user_id: str, reason: str, duration_minutes: Optional[int] = None) -> None:
        """Ban the user from referral activities and raise their risk level to high."""
        now = self.clock()
        expires_at = now + timedelta(minutes=duration_minutes) if duration_minutes else None
        await self.storage.execute(
            insert(user_bans).values(
                user_id=user_id, reason=reason, expires_at=expires_at, is_active=True, created_at=now
            )
        )
        await self.update_user_risk_level(user_id, RiskLevel.HIGH.value, f"Banned: {reason}")
        logger.warning(f"User {user_id} banned: {reason}")
