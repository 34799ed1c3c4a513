"""Unit tests for behavior pattern scoring."""

import pytest
from datetime import datetime, timedelta
from typing import List

from config.detection import ScoringConfig
from features.behavior_analyzer import BehaviorPatternAnalyzer
from shared.exceptions import DatabaseException
from shared.models import BehaviorPattern
from shared.serialization import load_features
from tests.fixtures.mock_objects import FailingStorage
from tests.fixtures.test_data import BASE_TIME, SCRIPTED_AGENT, event_context


def history_of(features_list: List[dict], risk_score: float = 0.3) -> List[BehaviorPattern]:
    return [
        BehaviorPattern(
            user_id="user_1",
            pattern_type="registration",
            features=features,
            timestamp=BASE_TIME - timedelta(days=i + 1),
            risk_score=risk_score
        )
        for i, features in enumerate(features_list)
    ]


@pytest.fixture
def analyzer(storage, clock):
    return BehaviorPatternAnalyzer(storage, clock=clock)


class TestStaticScoring:
    """Test cases for users without history."""

    @pytest.mark.asyncio
    async def test_ordinary_first_event_scores_base_risk(self, analyzer):
        pattern = await analyzer.analyze_behavior_pattern("user_1", "registration", event_context(BASE_TIME))

        assert pattern.risk_score == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_night_scripted_first_event_adds_heuristics(self, analyzer):
        context = event_context(BASE_TIME.replace(hour=3), user_agent=SCRIPTED_AGENT)

        pattern = await analyzer.analyze_behavior_pattern("user_1", "registration", context)

        assert pattern.risk_score == pytest.approx(0.8)

    def test_static_risk_is_clamped(self):
        config = ScoringConfig(base_risk=0.9, night_risk=0.9, automated_agent_risk=0.9)
        analyzer = BehaviorPatternAnalyzer(storage=None, config=config)

        risk = analyzer.static_risk({"is_night": 1.0, "automated_agent": 1.0, "daily_frequency": 50.0})

        assert risk == 1.0


class TestHistoryScoring:
    """Test cases for scoring against history."""

    def test_score_stays_in_unit_interval(self):
        config = ScoringConfig(static_weight=3.0, deviation_weight=3.0, novelty_weight=3.0, history_weight=3.0)
        analyzer = BehaviorPatternAnalyzer(storage=None, config=config)
        history = history_of([{"meta_amount": 1.0}] * 5, risk_score=1.0)

        score = analyzer.calculate_risk_score({"meta_amount": 500.0, "is_night": 1.0, "ip_hash": 7.0}, history)

        assert 0.0 <= score <= 1.0

    def test_monotone_in_deviation(self):
        analyzer = BehaviorPatternAnalyzer(storage=None)
        history = history_of([{"meta_amount": v} for v in (9.0, 10.0, 11.0, 10.0)])

        near = analyzer.calculate_risk_score({"meta_amount": 10.5}, history)
        far = analyzer.calculate_risk_score({"meta_amount": 14.0}, history)
        farther = analyzer.calculate_risk_score({"meta_amount": 400.0}, history)

        assert near < far <= farther

    def test_monotone_in_historical_average(self):
        analyzer = BehaviorPatternAnalyzer(storage=None)
        features = {"meta_amount": 10.0}

        low = analyzer.calculate_risk_score(features, history_of([{"meta_amount": 10.0}] * 3, risk_score=0.1))
        high = analyzer.calculate_risk_score(features, history_of([{"meta_amount": 10.0}] * 3, risk_score=0.9))

        assert low < high

    def test_hour_deviation_wraps_around_midnight(self):
        analyzer = BehaviorPatternAnalyzer(storage=None)
        history = history_of([{"hour_of_day": h} for h in (23.0, 23.0, 0.0, 0.0)])

        # Mean hour 23.5, distance to 01:00 is 1.5h against the 2h floor.
        assert analyzer.deviation_score({"hour_of_day": 1.0}, history) == pytest.approx(0.25, abs=1e-6)

    def test_deviation_saturates(self):
        analyzer = BehaviorPatternAnalyzer(storage=None)
        history = history_of([{"daily_frequency": 1.0}] * 4)

        assert analyzer.deviation_score({"daily_frequency": 1000.0}, history) == 1.0

    def test_novelty_counts_unseen_hashes(self):
        history = history_of([{"ip_hash": 1.0, "user_agent_hash": 2.0}] * 2)

        assert BehaviorPatternAnalyzer.novelty_score({"ip_hash": 1.0, "user_agent_hash": 2.0}, history) == 0.0
        assert BehaviorPatternAnalyzer.novelty_score({"ip_hash": 9.0, "user_agent_hash": 2.0}, history) == 0.5
        assert BehaviorPatternAnalyzer.novelty_score({}, history) == 0.0


class TestPersistence:
    """Test cases for pattern storage."""

    @pytest.mark.asyncio
    async def test_every_pattern_is_persisted(self, analyzer, db_helper, clock):
        for _ in range(3):
            await analyzer.analyze_behavior_pattern("user_1", "registration", event_context(clock.now))
            clock.advance(days=1)

        rows = await db_helper.patterns("user_1")

        assert len(rows) == 3
        assert all(0.0 <= row["risk_score"] <= 1.0 for row in rows)
        assert load_features(rows[-1]["features"])["daily_frequency"] == 0.0

    @pytest.mark.asyncio
    async def test_pattern_timestamp_is_ingest_time(self, analyzer, db_helper, clock):
        event_time = datetime(2024, 1, 14, 3, 15)

        pattern = await analyzer.analyze_behavior_pattern("user_1", "invitation", {"timestamp": event_time})

        rows = await db_helper.patterns("user_1")
        assert pattern.timestamp == clock.now
        assert rows[0]["timestamp"] == clock.now
        assert rows[0]["pattern_type"] == "invitation"
        assert pattern.features["is_night"] == 1.0

    @pytest.mark.asyncio
    async def test_history_is_same_type_newest_first(self, analyzer, db_helper):
        await db_helper.insert_pattern("user_1", BASE_TIME - timedelta(hours=3), 0.1)
        await db_helper.insert_pattern("user_1", BASE_TIME - timedelta(hours=1), 0.2)
        await db_helper.insert_pattern("user_1", BASE_TIME - timedelta(hours=2), 0.9, pattern_type="invitation")
        await db_helper.insert_pattern("user_2", BASE_TIME, 0.5)

        history = await analyzer.get_history("user_1", "registration")

        assert [p.risk_score for p in history] == [0.2, 0.1]

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, storage, clock, db_helper):
        analyzer = BehaviorPatternAnalyzer(storage, config=ScoringConfig(history_limit=3), clock=clock)
        for i in range(5):
            await db_helper.insert_pattern("user_1", BASE_TIME - timedelta(hours=i + 1), 0.3)

        history = await analyzer.get_history("user_1", "registration")

        assert len(history) == 3
        assert history[0].timestamp == BASE_TIME - timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_persistence_failure_propagates(self, storage, clock):
        analyzer = BehaviorPatternAnalyzer(FailingStorage(fail_reads=False, inner=storage), clock=clock)

        with pytest.raises(DatabaseException):
            await analyzer.analyze_behavior_pattern("user_1", "registration", event_context(BASE_TIME))

    @pytest.mark.asyncio
    async def test_repeated_scripted_burst_scores_higher_than_routine(self, analyzer, clock):
        for _ in range(5):
            await analyzer.analyze_behavior_pattern("routine", "registration", event_context(clock.now))
            await analyzer.analyze_behavior_pattern("burst", "registration", event_context(clock.now))
            clock.advance(days=1)

        routine = await analyzer.analyze_behavior_pattern("routine", "registration", event_context(clock.now))
        burst = await analyzer.analyze_behavior_pattern(
            "burst",
            "registration",
            event_context(clock.now.replace(hour=3), ip="192.0.2.99", user_agent=SCRIPTED_AGENT)
        )

        assert burst.risk_score > routine.risk_score
