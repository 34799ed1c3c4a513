"""Behavior pattern analysis and risk scoring.

This module provides:
- Loading of a user's scored pattern history
- Static heuristic scoring for users without history
- Deviation and novelty scoring against the user's own history
- Persistence of every analyzed pattern
"""

import logging
import math
from typing import Dict, Any, List, Optional

import numpy as np
from sqlalchemy import select, insert

from config.detection import ScoringConfig
from database.models import behavior_patterns
from database.storage import Storage
from monitoring.metrics import BEHAVIOR_PATTERNS_ANALYZED, BEHAVIOR_RISK_SCORE
from shared.ids import Clock, utc_now
from shared.models import BehaviorPattern, clamp_score
from shared.serialization import dump_features, load_features
from .feature_extractor import (
    FeatureExtractor,
    CATEGORICAL_FEATURES,
    HOUR_OF_DAY,
    IS_NIGHT,
    AUTOMATED_AGENT,
    DAILY_FREQUENCY,
)

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24.0


def pattern_from_row(row: Dict[str, Any]) -> BehaviorPattern:
    """Build a pattern from a ``behavior_patterns`` row."""
    return BehaviorPattern(
        user_id=row["user_id"],
        pattern_type=row["pattern_type"],
        features=load_features(row.get("features")),
        timestamp=row["timestamp"],
        risk_score=clamp_score(row.get("risk_score") or 0.0)
    )


def _circular_hour_stats(hours: np.ndarray):
    """Mean hour on the 24h circle and the spread of distances to it."""
    angles = hours / HOURS_PER_DAY * 2 * np.pi
    mean_angle = math.atan2(np.sin(angles).mean(), np.cos(angles).mean())
    mean_hour = (mean_angle / (2 * np.pi) * HOURS_PER_DAY) % HOURS_PER_DAY
    distances = np.array([_hour_distance(h, mean_hour) for h in hours])
    return mean_hour, float(np.sqrt(np.mean(distances ** 2)))


def _hour_distance(a: float, b: float) -> float:
    diff = abs(a - b) % HOURS_PER_DAY
    return min(diff, HOURS_PER_DAY - diff)


class BehaviorPatternAnalyzer:
    """Scores behavior events against the user's own history and records them."""

    def __init__(self,
                 storage: Storage,
                 extractor: Optional[FeatureExtractor] = None,
                 config: Optional[ScoringConfig] = None,
                 clock: Clock = utc_now):
        self.storage = storage
        self.config = config or ScoringConfig()
        self.extractor = extractor or FeatureExtractor(self.config)
        self.clock = clock

        logger.info("Behavior pattern analyzer initialized")

    async def get_history(self, user_id: str, pattern_type: str, limit: Optional[int] = None) -> List[BehaviorPattern]:
        """Most recent patterns of one type for a user, newest first."""
        limit = limit or self.config.history_limit
        rows = await self.storage.query(
            select(behavior_patterns)
            .where(behavior_patterns.c.user_id == user_id)
            .where(behavior_patterns.c.pattern_type == pattern_type)
            .order_by(behavior_patterns.c.timestamp.desc(), behavior_patterns.c.id.desc())
            .limit(limit)
        )
        return [pattern_from_row(row) for row in rows]

    async def analyze_behavior_pattern(self,
                                       user_id: str,
                                       pattern_type: str,
                                       context: Optional[Dict[str, Any]] = None) -> BehaviorPattern:
        """Extract features for one event, score it and persist the pattern.

        The pattern is stamped with the clock at ingestion; the event's own
        timestamp only feeds the time-of-day features.

        Args:
            user_id: User identifier
            pattern_type: Event tag, e.g. ``registration``
            context: Raw event context (timestamp, ip, user_agent, metadata)

        Returns:
            The persisted behavior pattern

        Raises:
            DatabaseException: If the history cannot be read or the pattern cannot be stored
        """
        context = context or {}
        now = self.clock()

        history = await self.get_history(user_id, pattern_type)
        features = self.extractor.extract(context, history, now)
        risk_score = self.calculate_risk_score(features, history)

        pattern = BehaviorPattern(
            user_id=user_id,
            pattern_type=pattern_type,
            features=features,
            timestamp=now,
            risk_score=risk_score
        )
        await self.storage.execute(
            insert(behavior_patterns).values(
                user_id=pattern.user_id,
                pattern_type=pattern.pattern_type,
                features=dump_features(pattern.features),
                timestamp=pattern.timestamp,
                risk_score=pattern.risk_score
            )
        )

        BEHAVIOR_PATTERNS_ANALYZED.labels(
            pattern_type=pattern_type, has_history=str(bool(history)).lower()
        ).inc()
        BEHAVIOR_RISK_SCORE.labels(pattern_type=pattern_type).observe(risk_score)
        logger.debug(
            f"Analyzed {pattern_type} pattern for user {user_id}: "
            f"risk={risk_score:.3f}, history={len(history)}"
        )
        return pattern

    def calculate_risk_score(self, features: Dict[str, float], history: List[BehaviorPattern]) -> float:
        """Combine static, deviation, novelty and historical risk into [0, 1]."""
        static_risk = self.static_risk(features)
        if not history:
            return clamp_score(static_risk)

        avg_historical = float(np.mean([p.risk_score for p in history]))
        risk = (
            self.config.static_weight * static_risk
            + self.config.deviation_weight * self.deviation_score(features, history)
            + self.config.novelty_weight * self.novelty_score(features, history)
            + self.config.history_weight * avg_historical
        )
        return clamp_score(risk)

    def static_risk(self, features: Dict[str, float]) -> float:
        """Heuristic risk from the event alone."""
        risk = self.config.base_risk
        if features.get(IS_NIGHT):
            risk += self.config.night_risk
        if features.get(AUTOMATED_AGENT):
            risk += self.config.automated_agent_risk
        if features.get(DAILY_FREQUENCY, 0.0) > self.config.high_frequency_threshold:
            risk += self.config.high_frequency_risk
        return clamp_score(risk)

    def deviation_score(self, features: Dict[str, float], history: List[BehaviorPattern]) -> float:
        """Largest z-score over continuous features, saturated into [0, 1]."""
        current = self.extractor.continuous_values(features)
        past = [self.extractor.continuous_values(p.features) for p in history]

        max_z = 0.0
        for name, value in current.items():
            samples = np.array([values[name] for values in past if name in values], dtype=float)
            if samples.size == 0:
                continue

            if name == HOUR_OF_DAY:
                mean, spread = _circular_hour_stats(samples)
                distance = _hour_distance(value, mean)
                spread = max(spread, self.config.hour_min_spread)
            else:
                mean = float(samples.mean())
                distance = abs(value - mean)
                spread = max(float(samples.std()), self.config.min_spread)

            max_z = max(max_z, distance / spread)

        return min(max_z / self.config.deviation_saturation, 1.0)

    @staticmethod
    def novelty_score(features: Dict[str, float], history: List[BehaviorPattern]) -> float:
        """Share of the event's categorical hashes never seen in history."""
        present = [name for name in CATEGORICAL_FEATURES if name in features]
        if not present:
            return 0.0

        unseen = 0
        for name in present:
            seen = {p.features[name] for p in history if name in p.features}
            if features[name] not in seen:
                unseen += 1
        return unseen / len(present)
