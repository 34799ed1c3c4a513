"""Unit tests for the review case workflow."""

import re
import pytest
from unittest.mock import AsyncMock, patch

from review.case_manager import ReviewCaseManager
from shared.exceptions import (
    ConcurrentModificationException,
    DatabaseException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from shared.models import (
    CasePriority,
    CaseStatus,
    CaseType,
    DecisionAction,
    EvidenceType,
    ReviewCaseCreate,
    ReviewDecision,
    ReviewEvidence,
)
from tests.fixtures.mock_objects import FailingStorage
from tests.fixtures.test_data import BASE_TIME


def make_case(user_id: str = "user_1", **overrides) -> ReviewCaseCreate:
    values = {
        "user_id": user_id,
        "case_type": CaseType.SUSPICIOUS_BEHAVIOR,
        "priority": CasePriority.HIGH,
        "evidence": [
            ReviewEvidence(type=EvidenceType.USER_BEHAVIOR, data={"alert_id": "alert_1"}, timestamp=BASE_TIME)
        ],
        "alert_ids": ["alert_1"],
    }
    values.update(overrides)
    return ReviewCaseCreate(**values)


def make_decision(action: DecisionAction = DecisionAction.FREEZE, reviewer_id: str = "op_1") -> ReviewDecision:
    return ReviewDecision(action=action, reason="Confirmed referral farming", reviewer_id=reviewer_id, timestamp=BASE_TIME)


@pytest.fixture
def case_manager(storage, id_generator, clock):
    return ReviewCaseManager(storage, id_generator, clock)


class TestCreateReviewCase:
    """Test cases for case creation."""

    @pytest.mark.asyncio
    async def test_prefixed_id_and_round_trip(self, storage, clock):
        manager = ReviewCaseManager(storage, clock=clock)

        case_id = await manager.create_review_case(make_case())

        assert re.match(r"^case_[0-9a-f]{32}$", case_id)
        case = await manager.get_review_case(case_id)
        assert case.status == "pending"
        assert case.priority == "high"
        assert case.alert_ids == ["alert_1"]
        assert case.evidence[0].data == {"alert_id": "alert_1"}
        assert case.evidence[0].type == "user_behavior"
        assert case.decision is None
        assert case.created_at == case.updated_at == BASE_TIME

    @pytest.mark.asyncio
    async def test_initial_status_as_supplied(self, case_manager):
        case_id = await case_manager.create_review_case(
            make_case(status=CaseStatus.IN_REVIEW, assigned_to="op_1")
        )

        case = await case_manager.get_review_case(case_id)

        assert case.status == "in_review"
        assert case.assigned_to == "op_1"

    @pytest.mark.asyncio
    async def test_write_failure_propagates(self, clock):
        manager = ReviewCaseManager(FailingStorage(), clock=clock)

        with pytest.raises(DatabaseException):
            await manager.create_review_case(make_case())


class TestGetReviewCases:
    """Test cases for listing cases."""

    @pytest.mark.asyncio
    async def test_filters_compose_with_and(self, case_manager, clock):
        pending = await case_manager.create_review_case(make_case())
        clock.advance(minutes=1)
        mine = await case_manager.create_review_case(make_case(status=CaseStatus.IN_REVIEW, assigned_to="op_1"))
        clock.advance(minutes=1)
        theirs = await case_manager.create_review_case(make_case(status=CaseStatus.IN_REVIEW, assigned_to="op_2"))

        everything = await case_manager.get_review_cases()
        in_review = await case_manager.get_review_cases(status="in_review")
        mine_in_review = await case_manager.get_review_cases(status=CaseStatus.IN_REVIEW, assigned_to="op_1")
        mine_pending = await case_manager.get_review_cases(status="pending", assigned_to="op_1")

        assert [c.id for c in everything] == [theirs, mine, pending]
        assert [c.id for c in in_review] == [theirs, mine]
        assert [c.id for c in mine_in_review] == [mine]
        assert mine_pending == []

    @pytest.mark.asyncio
    async def test_unknown_status_is_rejected(self, case_manager):
        with pytest.raises(ValidationException):
            await case_manager.get_review_cases(status="closed")

    @pytest.mark.asyncio
    async def test_read_failure_returns_empty(self, clock):
        manager = ReviewCaseManager(FailingStorage(), clock=clock)

        assert await manager.get_review_cases() == []

    @pytest.mark.asyncio
    async def test_malformed_json_columns_are_tolerated(self, case_manager, db_helper):
        await db_helper.insert_case_row(
            id="case_legacy",
            user_id="user_1",
            case_type="fraud_detection",
            priority="low",
            status="pending",
            evidence='[{"type": "manual_note", "data": {"note": "ok"}, "timestamp": "2024-01-01T00:00:00", "source": "ops"}, 42]',
            decision="garbage",
            alert_ids="null",
            created_at=BASE_TIME,
            updated_at=BASE_TIME
        )

        case = await case_manager.get_review_case("case_legacy")

        assert len(case.evidence) == 1
        assert case.evidence[0].data == {"note": "ok"}
        assert case.decision is None
        assert case.alert_ids == []


class TestCaseTransitions:
    """Test cases for the review state machine."""

    @pytest.mark.asyncio
    async def test_assign_then_resolve(self, case_manager, clock):
        case_id = await case_manager.create_review_case(make_case())

        clock.advance(minutes=3)
        assigned = await case_manager.assign_case(case_id, "op_1")
        clock.advance(minutes=7)
        resolved = await case_manager.resolve_case(case_id, make_decision())

        assert assigned.status == "in_review"
        assert assigned.assigned_to == "op_1"
        assert resolved.status == "resolved"
        assert resolved.decision.action == "freeze"
        assert resolved.decision.reviewer_id == "op_1"
        assert resolved.updated_at > resolved.created_at

    @pytest.mark.asyncio
    async def test_resolve_appends_evidence(self, case_manager):
        case_id = await case_manager.create_review_case(make_case())
        await case_manager.assign_case(case_id, "op_1")
        note = ReviewEvidence(type=EvidenceType.MANUAL_NOTE, data={"note": "same device as 14 invitees"}, source="op_1")

        resolved = await case_manager.resolve_case(case_id, make_decision(), evidence=[note])

        assert [e.type for e in resolved.evidence] == ["user_behavior", "manual_note"]

    @pytest.mark.asyncio
    async def test_reject(self, case_manager):
        case_id = await case_manager.create_review_case(make_case())
        await case_manager.assign_case(case_id, "op_1")

        rejected = await case_manager.reject_case(case_id, "op_1", "False positive", notes="shared office IP")

        assert rejected.status == "rejected"
        assert rejected.decision.action == "reject"
        assert rejected.decision.notes == "shared office IP"

    @pytest.mark.asyncio
    async def test_cannot_skip_review(self, case_manager):
        case_id = await case_manager.create_review_case(make_case())

        with pytest.raises(InvalidTransitionException):
            await case_manager.resolve_case(case_id, make_decision())

    @pytest.mark.asyncio
    async def test_check_transition_does_not_move_the_case(self, case_manager):
        case_id = await case_manager.create_review_case(make_case())

        with pytest.raises(InvalidTransitionException):
            await case_manager.check_transition(case_id, CaseStatus.RESOLVED)

        await case_manager.assign_case(case_id, "op_1")
        case = await case_manager.check_transition(case_id, "resolved")

        assert case.status == "in_review"
        assert (await case_manager.get_review_case(case_id)).status == "in_review"
        with pytest.raises(NotFoundException):
            await case_manager.check_transition("case_missing", CaseStatus.RESOLVED)

    @pytest.mark.asyncio
    async def test_terminal_cases_cannot_move(self, case_manager):
        case_id = await case_manager.create_review_case(make_case())
        await case_manager.assign_case(case_id, "op_1")
        await case_manager.reject_case(case_id, "op_1", "False positive")

        with pytest.raises(InvalidTransitionException):
            await case_manager.assign_case(case_id, "op_2")
        with pytest.raises(InvalidTransitionException):
            await case_manager.resolve_case(case_id, make_decision())

    @pytest.mark.asyncio
    async def test_assign_requires_operator(self, case_manager):
        case_id = await case_manager.create_review_case(make_case())

        with pytest.raises(ValidationException):
            await case_manager.assign_case(case_id, "")

    @pytest.mark.asyncio
    async def test_unknown_case(self, case_manager):
        with pytest.raises(NotFoundException):
            await case_manager.assign_case("case_missing", "op_1")

    @pytest.mark.asyncio
    async def test_lost_race_raises(self, case_manager):
        case_id = await case_manager.create_review_case(make_case())
        stale = await case_manager.get_review_case(case_id)
        await case_manager.assign_case(case_id, "op_1")

        with patch.object(case_manager, "get_review_case", AsyncMock(return_value=stale)):
            with pytest.raises(ConcurrentModificationException):
                await case_manager.assign_case(case_id, "op_2")

        case = await case_manager.get_review_case(case_id)
        assert case.assigned_to == "op_1"


class TestCountActiveCases:
    """Test cases for the active case counter."""

    @pytest.mark.asyncio
    async def test_counts_pending_and_in_review(self, case_manager):
        await case_manager.create_review_case(make_case())
        await case_manager.create_review_case(make_case(status=CaseStatus.IN_REVIEW, assigned_to="op_1"))
        await case_manager.create_review_case(make_case(status=CaseStatus.RESOLVED))
        await case_manager.create_review_case(make_case(user_id="user_2"))

        assert await case_manager.count_active_cases("user_1") == 2
        assert await case_manager.count_active_cases("user_3") == 0
