"""Account freezes and the derived account status."""

import logging
from datetime import datetime
from typing import Dict, Any, List, Optional

from sqlalchemy import select, insert, update, and_, or_

from config.logging import AuditLogger
from database.models import account_freezes
from database.storage import Storage
from monitoring.metrics import ACCOUNT_FREEZES
from service.collaborators import BasicFraudService, NotificationService, RewardLedger
from service.notifications import (
    build_freeze_notification,
    build_unfreeze_notification,
    dispatch_best_effort,
)
from shared.exceptions import ValidationException
from shared.ids import Clock, IdGenerator, random_id, to_naive_utc, utc_now
from shared.models import ALL_FEATURES, AccountFreeze, AccountStatus, RiskLevel
from shared.serialization import dump_frozen_features, load_frozen_features
from .case_manager import ReviewCaseManager

logger = logging.getLogger(__name__)


def freeze_from_row(row: Dict[str, Any]) -> AccountFreeze:
    return AccountFreeze(
        id=row["id"],
        user_id=row["user_id"],
        reason=row["reason"],
        frozen_features=load_frozen_features(row.get("frozen_features")),
        frozen_by=row["frozen_by"],
        expires_at=row.get("expires_at"),
        created_at=row["created_at"],
        is_active=bool(row["is_active"]),
        lifted_at=row.get("lifted_at"),
        lifted_by=row.get("lifted_by")
    )


def normalize_features(frozen_features: Optional[List[str]]) -> List[str]:
    """Deduplicated capability tags; ``all`` absorbs everything else.

    ``None`` means the whole account. An explicit list must name at least one tag.
    """
    if frozen_features is None:
        return [ALL_FEATURES]
    features = [f.strip() for f in frozen_features if f and f.strip()]
    if not features:
        raise ValidationException("At least one capability must be frozen")
    if ALL_FEATURES in features:
        return [ALL_FEATURES]
    return sorted(set(features))


class AccountFreezeManager:
    """Freezes and unfreezes accounts and computes their status."""

    def __init__(self,
                 storage: Storage,
                 risk_service: Optional[BasicFraudService] = None,
                 notification_service: Optional[NotificationService] = None,
                 case_manager: Optional[ReviewCaseManager] = None,
                 reward_ledger: Optional[RewardLedger] = None,
                 id_generator: IdGenerator = random_id,
                 clock: Clock = utc_now,
                 audit_logger: Optional[AuditLogger] = None):
        self.storage = storage
        self.risk_service = risk_service
        self.notification_service = notification_service
        self.case_manager = case_manager or ReviewCaseManager(storage, id_generator, clock, audit_logger)
        self.reward_ledger = reward_ledger
        self.id_generator = id_generator
        self.clock = clock
        self.audit_logger = audit_logger

    async def freeze_account(self,
                             user_id: str,
                             reason: str,
                             frozen_by: str,
                             frozen_features: Optional[List[str]] = None,
                             expires_at: Optional[datetime] = None) -> AccountFreeze:
        """Freeze account capabilities, superseding any active freeze.

        Args:
            user_id: User to freeze
            reason: Reason shown to the user and operators
            frozen_by: Operator or system component applying the freeze
            frozen_features: Capability tags, ``["all"]`` when omitted
            expires_at: End of the freeze, indefinite when omitted

        Returns:
            The stored freeze

        Raises:
            ValidationException: If the reason or the capability list is empty, or
                the expiry is in the past
            DatabaseException: If the freeze could not be written
        """
        if not reason or not reason.strip():
            raise ValidationException("A freeze reason is required")

        now = self.clock()
        if expires_at is not None:
            expires_at = to_naive_utc(expires_at)
        if expires_at is not None and expires_at <= now:
            raise ValidationException("Freeze expiry must be in the future", details=expires_at.isoformat())

        freeze = AccountFreeze(
            id=self.id_generator("freeze"),
            user_id=user_id,
            reason=reason,
            frozen_features=normalize_features(frozen_features),
            frozen_by=frozen_by,
            expires_at=expires_at,
            created_at=now
        )

        async with self.storage.transaction() as tx:
            superseded = await tx.execute(
                update(account_freezes)
                .where(and_(account_freezes.c.user_id == user_id, account_freezes.c.is_active.is_(True)))
                .values(is_active=False, lifted_at=now, lifted_by=frozen_by)
            )
            await tx.execute(
                insert(account_freezes).values(
                    id=freeze.id,
                    user_id=freeze.user_id,
                    reason=freeze.reason,
                    frozen_features=dump_frozen_features(freeze.frozen_features),
                    frozen_by=freeze.frozen_by,
                    expires_at=freeze.expires_at,
                    is_active=True,
                    created_at=freeze.created_at
                )
            )

        ACCOUNT_FREEZES.labels(action="freeze").inc()
        if self.audit_logger:
            self.audit_logger.log_account_frozen(
                user_id, freeze.id, reason, frozen_by, freeze.frozen_features, expires_at, superseded
            )
        logger.warning(f"Account {user_id} frozen by {frozen_by}: {reason}")

        await dispatch_best_effort(
            self.notification_service,
            build_freeze_notification(user_id, reason, freeze.frozen_features, expires_at)
        )
        return freeze

    async def unfreeze_account(self, user_id: str, lifted_by: str, reason: Optional[str] = None) -> int:
        """Lift every active freeze of the user.

        Returns:
            Number of freezes lifted; 0 when the account was not frozen
        """
        lifted = await self.storage.execute(
            update(account_freezes)
            .where(and_(account_freezes.c.user_id == user_id, account_freezes.c.is_active.is_(True)))
            .values(is_active=False, lifted_at=self.clock(), lifted_by=lifted_by)
        )
        if lifted == 0:
            logger.info(f"No active freeze to lift for user {user_id}")
            return 0

        ACCOUNT_FREEZES.labels(action="unfreeze").inc()
        if self.audit_logger:
            self.audit_logger.log_account_unfrozen(user_id, lifted_by, reason, lifted)
        logger.info(f"Account {user_id} unfrozen by {lifted_by}")

        await dispatch_best_effort(self.notification_service, build_unfreeze_notification(user_id, reason))
        return lifted

    async def get_active_freeze(self, user_id: str) -> Optional[AccountFreeze]:
        """Most recent active, unexpired freeze of the user."""
        now = self.clock()
        row = await self.storage.query_one(
            select(account_freezes).where(
                and_(
                    account_freezes.c.user_id == user_id,
                    account_freezes.c.is_active.is_(True),
                    or_(account_freezes.c.expires_at.is_(None), account_freezes.c.expires_at > now)
                )
            ).order_by(account_freezes.c.created_at.desc()).limit(1)
        )
        return freeze_from_row(row) if row else None

    async def get_account_status(self, user_id: str) -> AccountStatus:
        """Aggregate freeze, review and risk state of an account.

        Each part is read independently; a failing part falls back to its
        default instead of failing the whole status.
        """
        status = AccountStatus(user_id=user_id)

        try:
            freeze = await self.get_active_freeze(user_id)
        except Exception as e:
            logger.error(f"Failed to read freeze state for user {user_id}: {e}")
            freeze = None
        if freeze is not None:
            status.is_frozen = True
            status.frozen_features = freeze.frozen_features
            status.freeze_reason = freeze.reason
            status.freeze_expires_at = freeze.expires_at

        try:
            status.active_review_cases = await self.case_manager.count_active_cases(user_id)
        except Exception as e:
            logger.error(f"Failed to count review cases for user {user_id}: {e}")

        if self.risk_service is not None:
            try:
                status.risk_level = RiskLevel(await self.risk_service.get_user_risk_level(user_id)).value
            except Exception as e:
                logger.error(f"Failed to get risk level for user {user_id}: {e}")

        if self.reward_ledger is not None:
            try:
                status.total_recovered_rewards = float(
                    await self.reward_ledger.get_total_recovered_rewards(user_id) or 0.0
                )
            except Exception as e:
                logger.error(f"Failed to get recovered rewards for user {user_id}: {e}")

        return status
