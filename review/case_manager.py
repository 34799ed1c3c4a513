"""Review case workflow.

Cases move strictly forward: ``pending -> in_review -> {resolved, rejected}``.
Every transition is a compare-and-set update on the expected current status,
so two operators racing on the same case cannot both win.
"""

import logging
from typing import Dict, Any, List, Optional, Union

from sqlalchemy import select, insert, update, func, and_

from config.logging import AuditLogger
from database.models import review_cases
from database.storage import Storage
from monitoring.metrics import REVIEW_CASES_CREATED
from shared.exceptions import (
    ConcurrentModificationException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from shared.ids import Clock, IdGenerator, random_id, utc_now
from shared.models import (
    ACTIVE_CASE_STATUSES,
    CaseStatus,
    DecisionAction,
    ReviewCase,
    ReviewCaseCreate,
    ReviewDecision,
    ReviewEvidence,
)
from shared.serialization import (
    dump_decision,
    dump_review_evidence,
    dump_string_list,
    load_decision,
    load_review_evidence,
    load_string_list,
)

logger = logging.getLogger(__name__)

CASE_TRANSITIONS = {
    CaseStatus.PENDING.value: {CaseStatus.IN_REVIEW.value},
    CaseStatus.IN_REVIEW.value: {CaseStatus.RESOLVED.value, CaseStatus.REJECTED.value},
    CaseStatus.RESOLVED.value: set(),
    CaseStatus.REJECTED.value: set(),
}


def case_from_row(row: Dict[str, Any]) -> ReviewCase:
    return ReviewCase(
        id=row["id"],
        user_id=row["user_id"],
        case_type=row["case_type"],
        priority=row["priority"],
        status=row["status"],
        assigned_to=row.get("assigned_to"),
        evidence=load_review_evidence(row.get("evidence")),
        decision=load_decision(row.get("decision")),
        alert_ids=load_string_list(row.get("alert_ids")),
        created_at=row["created_at"],
        updated_at=row["updated_at"]
    )


class ReviewCaseManager:
    """Creates review cases and drives them through the review state machine."""

    def __init__(self,
                 storage: Storage,
                 id_generator: IdGenerator = random_id,
                 clock: Clock = utc_now,
                 audit_logger: Optional[AuditLogger] = None):
        self.storage = storage
        self.id_generator = id_generator
        self.clock = clock
        self.audit_logger = audit_logger

    async def create_review_case(self, case: ReviewCaseCreate) -> str:
        """Persist a case with the status chosen by the caller.

        Returns:
            The new case id, ``case_<random>``

        Raises:
            DatabaseException: If the case row could not be written
        """
        case_id = self.id_generator("case")
        now = self.clock()
        await self.storage.execute(
            insert(review_cases).values(
                id=case_id,
                user_id=case.user_id,
                case_type=case.case_type,
                priority=case.priority,
                status=case.status,
                assigned_to=case.assigned_to,
                evidence=dump_review_evidence(case.evidence),
                decision=dump_decision(case.decision),
                alert_ids=dump_string_list(case.alert_ids),
                created_at=now,
                updated_at=now
            )
        )

        REVIEW_CASES_CREATED.labels(case_type=case.case_type, priority=case.priority).inc()
        if self.audit_logger:
            self.audit_logger.log_case_created(case_id, case.user_id, case.case_type, case.priority, case.alert_ids)
        logger.info(f"Created {case.priority} review case {case_id} for user {case.user_id}")
        return case_id

    async def get_review_cases(self,
                               status: Optional[Union[CaseStatus, str]] = None,
                               assigned_to: Optional[str] = None,
                               user_id: Optional[str] = None,
                               limit: Optional[int] = None) -> List[ReviewCase]:
        """List cases, newest first; filters combine with AND.

        Read failures are logged and yield an empty list.
        """
        statement = select(review_cases)
        if status:
            try:
                status = CaseStatus(status).value
            except ValueError:
                raise ValidationException(f"Unknown review case status: {status}")
            statement = statement.where(review_cases.c.status == status)
        if assigned_to:
            statement = statement.where(review_cases.c.assigned_to == assigned_to)
        if user_id:
            statement = statement.where(review_cases.c.user_id == user_id)
        statement = statement.order_by(review_cases.c.created_at.desc())
        if limit:
            statement = statement.limit(limit)

        try:
            rows = await self.storage.query(statement)
        except Exception as e:
            logger.error(f"Failed to get review cases: {e}")
            return []
        return [case_from_row(row) for row in rows]

    async def get_review_case(self, case_id: str) -> Optional[ReviewCase]:
        row = await self.storage.query_one(select(review_cases).where(review_cases.c.id == case_id))
        return case_from_row(row) if row else None

    async def count_active_cases(self, user_id: str) -> int:
        """Number of pending or in-review cases for a user."""
        row = await self.storage.query_one(
            select(func.count().label("count")).select_from(review_cases).where(
                and_(
                    review_cases.c.user_id == user_id,
                    review_cases.c.status.in_(ACTIVE_CASE_STATUSES)
                )
            )
        )
        return int(row["count"]) if row and row.get("count") else 0

    async def assign_case(self, case_id: str, operator_id: str) -> ReviewCase:
        """Take a pending case into review.

        Raises:
            NotFoundException: If the case does not exist
            InvalidTransitionException: If the case is not pending
            ConcurrentModificationException: If another operator took it first
        """
        if not operator_id:
            raise ValidationException("An operator is required to review a case")
        return await self._transition(
            case_id,
            CaseStatus.IN_REVIEW.value,
            operator_id,
            {"assigned_to": operator_id}
        )

    async def resolve_case(self,
                           case_id: str,
                           decision: ReviewDecision,
                           evidence: Optional[List[ReviewEvidence]] = None) -> ReviewCase:
        """Close an in-review case with the operator's decision."""
        return await self._close(case_id, CaseStatus.RESOLVED.value, decision, evidence)

    async def reject_case(self,
                          case_id: str,
                          reviewer_id: str,
                          reason: str,
                          notes: Optional[str] = None) -> ReviewCase:
        """Close an in-review case as unfounded."""
        decision = ReviewDecision(
            action=DecisionAction.REJECT,
            reason=reason,
            reviewer_id=reviewer_id,
            timestamp=self.clock(),
            notes=notes
        )
        return await self._close(case_id, CaseStatus.REJECTED.value, decision, None)

    async def check_transition(self, case_id: str, target: Union[CaseStatus, str]) -> ReviewCase:
        """Current case, if it may move to ``target``.

        Raises:
            NotFoundException: If the case does not exist
            InvalidTransitionException: If the move is not allowed from its status
        """
        target = CaseStatus(target).value
        case = await self._require_case(case_id)
        if target not in CASE_TRANSITIONS[case.status]:
            raise InvalidTransitionException("review case", case.status, target)
        return case

    async def _close(self,
                     case_id: str,
                     target: str,
                     decision: ReviewDecision,
                     evidence: Optional[List[ReviewEvidence]]) -> ReviewCase:
        extra = {"decision": dump_decision(decision)}
        if evidence:
            current = await self._require_case(case_id)
            extra["evidence"] = dump_review_evidence(current.evidence + list(evidence))
        return await self._transition(case_id, target, decision.reviewer_id, extra, decision.action)

    async def _require_case(self, case_id: str) -> ReviewCase:
        case = await self.get_review_case(case_id)
        if case is None:
            raise NotFoundException("Review case", case_id)
        return case

    async def _transition(self,
                          case_id: str,
                          target: str,
                          operator_id: Optional[str],
                          extra: Dict[str, Any],
                          decision_action: Optional[str] = None) -> ReviewCase:
        case = await self.check_transition(case_id, target)

        updated = await self.storage.execute(
            update(review_cases)
            .where(and_(review_cases.c.id == case_id, review_cases.c.status == case.status))
            .values(status=target, updated_at=self.clock(), **extra)
        )
        if updated == 0:
            raise ConcurrentModificationException("Review case", case_id)

        if self.audit_logger:
            self.audit_logger.log_case_transition(case_id, case.status, target, operator_id, decision_action)
        logger.info(f"Review case {case_id} moved from {case.status} to {target}")

        return await self._require_case(case_id)
