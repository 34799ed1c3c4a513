"""Unit tests for behavior feature extraction."""

import pytest
from datetime import datetime, timedelta, timezone

from config.detection import ScoringConfig
from features.feature_extractor import FeatureExtractor, stable_hash
from shared.models import BehaviorPattern
from tests.fixtures.test_data import BASE_TIME, BROWSER_AGENT, SCRIPTED_AGENT, event_context


def make_pattern(timestamp: datetime, risk_score: float = 0.3) -> BehaviorPattern:
    return BehaviorPattern(
        user_id="user_1",
        pattern_type="registration",
        features={"hour_of_day": float(timestamp.hour)},
        timestamp=timestamp,
        risk_score=risk_score
    )


@pytest.fixture
def extractor():
    return FeatureExtractor(ScoringConfig())


class TestTemporalFeatures:
    """Test cases for time-derived features."""

    def test_features_from_context_timestamp(self, extractor):
        context = event_context(datetime(2024, 1, 17, 3, 30))  # Wednesday

        features = extractor.extract(context, [], BASE_TIME)

        assert features["hour_of_day"] == 3.0
        assert features["day_of_week"] == 2.0
        assert features["is_night"] == 1.0

    def test_falls_back_to_now_without_timestamp(self, extractor):
        features = extractor.extract({}, [], BASE_TIME)

        assert features["hour_of_day"] == 12.0
        assert features["day_of_week"] == 0.0  # Monday
        assert features["is_night"] == 0.0

    @pytest.mark.parametrize("hour,expected", [(5, 1.0), (6, 0.0), (22, 0.0), (23, 1.0)])
    def test_night_boundaries(self, extractor, hour, expected):
        features = extractor.extract({"timestamp": BASE_TIME.replace(hour=hour)}, [], BASE_TIME)
        assert features["is_night"] == expected

    def test_iso_string_with_zone_is_converted_to_utc(self, extractor):
        assert extractor.resolve_event_time({"timestamp": "2024-01-15T10:00:00Z"}, BASE_TIME) == datetime(2024, 1, 15, 10)
        assert extractor.resolve_event_time(
            {"timestamp": "2024-01-15T10:00:00+02:00"}, BASE_TIME
        ) == datetime(2024, 1, 15, 8)

    def test_aware_datetime_and_epoch_seconds(self, extractor):
        aware = datetime(2024, 1, 15, 9, tzinfo=timezone(timedelta(hours=-1)))
        assert extractor.resolve_event_time({"timestamp": aware}, BASE_TIME) == datetime(2024, 1, 15, 10)

        epoch = datetime(2024, 1, 15, 12, tzinfo=timezone.utc).timestamp()
        assert extractor.resolve_event_time({"timestamp": epoch}, BASE_TIME) == datetime(2024, 1, 15, 12)

    def test_invalid_timestamp_falls_back_to_now(self, extractor):
        assert extractor.resolve_event_time({"timestamp": "yesterday-ish"}, BASE_TIME) == BASE_TIME
        assert extractor.resolve_event_time({"timestamp": ["2024"]}, BASE_TIME) == BASE_TIME


class TestFrequencyFeatures:
    """Test cases for history-relative features."""

    def test_daily_frequency_counts_last_24_hours(self, extractor):
        history = [
            make_pattern(BASE_TIME - timedelta(hours=1)),
            make_pattern(BASE_TIME - timedelta(hours=23)),
            make_pattern(BASE_TIME - timedelta(hours=25)),
        ]

        features = extractor.extract({}, history, BASE_TIME)

        assert features["daily_frequency"] == 2.0

    def test_seconds_since_last_uses_newest_history(self, extractor):
        history = [
            make_pattern(BASE_TIME - timedelta(hours=5)),
            make_pattern(BASE_TIME - timedelta(minutes=2)),
        ]

        features = extractor.extract({}, history, BASE_TIME)

        assert features["seconds_since_last"] == 120.0

    def test_no_history_has_no_recency_feature(self, extractor):
        features = extractor.extract({}, [], BASE_TIME)

        assert features["daily_frequency"] == 0.0
        assert "seconds_since_last" not in features

    def test_frequency_ignores_skewed_event_timestamp(self, extractor):
        history = [make_pattern(BASE_TIME - timedelta(minutes=5))]

        features = extractor.extract({"timestamp": BASE_TIME - timedelta(days=2)}, history, BASE_TIME)

        assert features["daily_frequency"] == 1.0
        assert features["seconds_since_last"] == 300.0
        assert features["hour_of_day"] == float(BASE_TIME.hour)


class TestContextFeatures:
    """Test cases for IP, user agent and metadata features."""

    def test_hashes_are_stable_and_bounded(self, extractor):
        context = event_context(BASE_TIME, ip="198.51.100.7")

        first = extractor.extract(context, [], BASE_TIME)
        second = extractor.extract(context, [], BASE_TIME)

        assert first["ip_hash"] == second["ip_hash"] == float(stable_hash("198.51.100.7"))
        assert 0 <= first["ip_hash"] < 1000
        assert 0 <= first["user_agent_hash"] < 1000

    def test_user_agent_alias(self, extractor):
        features = extractor.extract({"userAgent": BROWSER_AGENT}, [], BASE_TIME)

        assert features["user_agent_hash"] == float(stable_hash(BROWSER_AGENT))
        assert features["automated_agent"] == 0.0

    @pytest.mark.parametrize("agent", [SCRIPTED_AGENT, "Googlebot/2.1", "HeadlessChrome/119.0", "curl/8.4.0"])
    def test_scripted_agents_are_flagged(self, extractor, agent):
        features = extractor.extract({"user_agent": agent}, [], BASE_TIME)
        assert features["automated_agent"] == 1.0

    def test_missing_ip_and_agent(self, extractor):
        features = extractor.extract({}, [], BASE_TIME)

        assert "ip_hash" not in features
        assert "user_agent_hash" not in features
        assert "automated_agent" not in features

    def test_numeric_metadata(self, extractor):
        context = {
            "metadata": {
                "invite_count": 4,
                "email_verified": True,
                "score": "0.5",
                "channel": "wechat",
                "missing": None,
                "ratio": float("nan"),
            }
        }

        features = extractor.extract(context, [], BASE_TIME)

        assert features["meta_invite_count"] == 4.0
        assert features["meta_email_verified"] == 1.0
        assert features["meta_score"] == 0.5
        assert "meta_channel" not in features
        assert "meta_missing" not in features
        assert "meta_ratio" not in features

    def test_all_features_are_floats(self, extractor):
        history = [make_pattern(BASE_TIME - timedelta(minutes=5))]
        features = extractor.extract(event_context(BASE_TIME, plan=3), history, BASE_TIME)

        assert all(isinstance(value, float) for value in features.values())


class TestContinuousValues:
    """Test cases for the distance-measured feature subset."""

    def test_event_rate_replaces_seconds_since_last(self):
        values = FeatureExtractor.continuous_values({
            "hour_of_day": 12.0,
            "daily_frequency": 3.0,
            "seconds_since_last": 60.0,
            "ip_hash": 42.0,
            "meta_amount": 9.0,
        })

        assert values == {
            "hour_of_day": 12.0,
            "daily_frequency": 3.0,
            "event_rate": 60.0,
            "meta_amount": 9.0,
        }

    def test_event_rate_bounded_for_simultaneous_events(self):
        values = FeatureExtractor.continuous_values({"seconds_since_last": 0.0})
        assert values["event_rate"] == 3600.0
